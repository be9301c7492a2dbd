from __future__ import annotations
import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from invoicing.logging_config import get_logger

logger = get_logger("config")

# --- Chemins de base ---
ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT_DIR / "data"

ENV_DATA_DIR = "INVOICING_DATA_DIR"
ENV_LOG_LEVEL = "INVOICING_LOG_LEVEL"


class NumberingSettings(BaseModel):
    invoice_prefix: str = "INV-"


class Settings(BaseModel):
    data_dir: Path = DATA_DIR
    numbering: NumberingSettings = Field(default_factory=NumberingSettings)
    backup_enabled: bool = True
    backup_keep: int = Field(default=5, ge=0)
    log_level: str = "INFO"

    @property
    def invoices_json(self) -> Path:
        return self.data_dir / "invoices.json"

    @property
    def settings_json(self) -> Path:
        return self.data_dir / "settings.json"


def _load_json(path: Path) -> Optional[Any]:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("settings_unreadable", extra={"path": str(path), "error": str(e)})
        return None


def load_settings(data_dir: Optional[os.PathLike | str] = None) -> Settings:
    """
    Charge data/settings.json (valeurs par défaut si absent ou invalide).
    Les variables d'environnement priment sur le fichier.
    """
    base = Path(data_dir or os.environ.get(ENV_DATA_DIR) or DATA_DIR)
    raw = _load_json(base / "settings.json")
    payload = dict(raw) if isinstance(raw, dict) else {}
    payload["data_dir"] = base

    level = os.environ.get(ENV_LOG_LEVEL)
    if level:
        payload["log_level"] = level.upper()

    try:
        return Settings(**payload)
    except ValidationError as e:
        logger.warning("settings_invalid", extra={"path": str(base / "settings.json"), "error": str(e)})
        return Settings(data_dir=base)
