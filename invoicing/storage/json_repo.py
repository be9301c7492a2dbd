from __future__ import annotations

import glob
import json
import shutil
import threading
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, TypeVar, Union
from uuid import uuid4

from pydantic import BaseModel

from invoicing.errors import ConcurrencyConflict
from invoicing.logging_config import get_logger

logger = get_logger("storage.json_repo")

T = TypeVar("T", bound=Union[BaseModel, Mapping[str, Any]])


def _json_default(o: Any) -> Any:
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    if isinstance(o, Decimal):
        return str(o)
    return str(o)


class JsonRepository(Generic[T]):
    """
    Repo JSON générique avec clé primaire configurable.
    - Rotation de backups (backup_enabled, backup_keep)
    - N'écrit pas si le contenu ne change pas (réduction du bruit et des .bak)
    - compare_and_swap : écriture conditionnée à la version stockée
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        entity_name: str = "entity",
        key: str = "id",
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> None:
        self.filepath = Path(filepath)
        self.entity_name = entity_name
        self.key = key
        self.lock = threading.RLock()
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))

        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        if not self.filepath.exists():
            self._write_raw([])

    # ---------------- I/O bas niveau ---------------- #

    def _read_raw(self) -> List[Dict[str, Any]]:
        try:
            with self.filepath.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, list) else []
        except FileNotFoundError:
            return []
        except json.JSONDecodeError:
            # Fichier corrompu → sauvegarde et repart sur liste vide
            backup = self.filepath.with_suffix(".corrupt.json")
            logger.error("repository_corrupt", extra={"path": str(self.filepath), "backup": str(backup)})
            shutil.copy2(self.filepath, backup)
            return []

    def _rotate_backups(self) -> None:
        if not self.backup_enabled or self.backup_keep <= 0:
            return
        pattern = str(self.filepath.with_suffix(".*.bak.json"))
        files = sorted(glob.glob(pattern))
        # garde les plus récents
        if len(files) > self.backup_keep:
            for old in files[: len(files) - self.backup_keep]:
                Path(old).unlink(missing_ok=True)

    def _write_raw(self, data: Iterable[Mapping[str, Any]]) -> None:
        with self.lock:
            new_dump = json.dumps(list(data), ensure_ascii=False, indent=2, default=_json_default)

            # si contenu identique → ne rien faire
            if self.filepath.exists() and self.filepath.read_text(encoding="utf-8") == new_dump:
                return

            # backup
            if self.backup_enabled and self.filepath.exists():
                ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
                backup = self.filepath.with_suffix(f".{ts}.bak.json")
                try:
                    shutil.copy2(self.filepath, backup)
                except OSError as e:
                    logger.warning("backup_failed", extra={"path": str(backup), "error": str(e)})
                self._rotate_backups()

            with self.filepath.open("w", encoding="utf-8") as f:
                f.write(new_dump)

    # ---------------- Helpers ---------------- #

    @staticmethod
    def _to_dict(item: T) -> Dict[str, Any]:
        if isinstance(item, BaseModel):
            return item.model_dump(mode="json")
        return dict(item)

    def _index_of(self, data: List[Dict[str, Any]], obj_id: Any) -> int:
        for idx, existing in enumerate(data):
            if str(existing.get(self.key)) == str(obj_id):
                return idx
        return -1

    # ---------------- CRUD ---------------- #

    def list_all(self) -> List[Dict[str, Any]]:
        return self._read_raw()

    def get_by_id(self, obj_id: Any) -> Optional[Dict[str, Any]]:
        data = self._read_raw()
        idx = self._index_of(data, obj_id)
        return data[idx] if idx >= 0 else None

    def add(self, item: T) -> Dict[str, Any]:
        record = self._to_dict(item)
        k = self.key
        if not record.get(k):
            record[k] = uuid4().hex
        with self.lock:
            data = self._read_raw()
            if self._index_of(data, record[k]) >= 0:
                raise ValueError(f"{self.entity_name} with {k}={record[k]} already exists")
            data.append(record)
            self._write_raw(data)
        return record

    def compare_and_swap(
        self, item: T, expected_version: int, version_key: str = "version"
    ) -> Dict[str, Any]:
        """
        Remplace l'enregistrement seulement si sa version stockée vaut
        ``expected_version`` ; lecture, contrôle et écriture sous le même verrou.
        """
        record = self._to_dict(item)
        obj_id = record.get(self.key)
        with self.lock:
            data = self._read_raw()
            idx = self._index_of(data, obj_id)
            if idx < 0:
                raise ValueError(f"{self.entity_name} with {self.key}={obj_id} not found")
            stored = int(data[idx].get(version_key) or 0)
            if stored != expected_version:
                raise ConcurrencyConflict(str(obj_id), expected_version, stored)
            data[idx] = record
            self._write_raw(data)
        return record

    # ---------------- Recherches ---------------- #

    def find(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        return [r for r in self._read_raw() if predicate(r)]

