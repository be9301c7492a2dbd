from __future__ import annotations
from decimal import ROUND_HALF_UP, Decimal, localcontext
from datetime import date, datetime, timezone
from typing import Any, Optional
import re
import uuid

from pydantic import BaseModel, Field

CENT = Decimal("0.01")
ZERO = Decimal("0")


def gen_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# signe, symbole monétaire et % facultatifs ; séparateurs de milliers déjà retirés
_NUMBER = re.compile(r"([+-]?)\$?((?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)%?", re.ASCII)
# au-delà, aucune valeur monétaire n'a de sens
_MAX_ADJUSTED = 99
MAX_AMOUNT = Decimal("1e12")


def to_decimal(val: Any) -> Optional[Decimal]:
    """
    Conversion "souple" -> Decimal.
    Les float passent par str() pour ne jamais hériter de l'arrondi binaire.
    Chaînes acceptées : "1200.50", "$1,200.50", "-5", "12.5%".
    Tout autre texte ("x5", "abc12") est illisible.
    Retourne None si la valeur est vide, illisible, non finie ou démesurée.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, Decimal):
        d = val
    elif isinstance(val, (int, float)):
        d = Decimal(str(val))
    else:
        m = _NUMBER.fullmatch(str(val).strip().replace(",", ""))
        if m is None:
            return None
        d = Decimal(m.group(1) + m.group(2))
    if not d.is_finite() or (d and d.adjusted() > _MAX_ADJUSTED):
        return None
    return d


def round2(val: Decimal) -> Decimal:
    # précision élargie : quantize ne lève pas sur les grands montants
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, val.adjusted() + 3)
        return val.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(val: Decimal) -> str:
    return f"${round2(val):,.2f}"


def as_date(val: date | datetime) -> date:
    # comparaison à la journée : on ignore l'heure
    if isinstance(val, datetime):
        return val.date()
    return val


class TimeStamped(BaseModel):
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
