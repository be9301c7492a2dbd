from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from invoicing.logging_config import get_logger
from invoicing.models.common import ZERO, round2, to_decimal
from invoicing.models.invoice import DEFAULT_GENERAL_CONDITIONS_PCT, WorkItem

logger = get_logger("services.cost_calculator")


@dataclass(frozen=True)
class CostBreakdown:
    line_items_total: Decimal
    general_conditions: Decimal
    supervision_fee: Decimal
    percentage: Decimal
    total_cost: Decimal


def resolve_percentage(raw: Any) -> Decimal:
    """Pourcentage des frais généraux : vide ou illisible -> 18.5 (règle métier, pas une erreur)."""
    pct = to_decimal(raw)
    return DEFAULT_GENERAL_CONDITIONS_PCT if pct is None else pct


def calculate_costs(
    work_items: Iterable[WorkItem],
    supervision_fee: Any = ZERO,
    percentage: Any = None,
) -> CostBreakdown:
    """
    Calcul pur des totaux d'une facture.

    frais généraux = (total lignes + supervision) * pourcentage / 100
    total          = total lignes + frais généraux + supervision
    """
    exact = sum((wi.line_total for wi in work_items), ZERO)
    line_items_total = round2(exact)
    fee = round2(to_decimal(supervision_fee) or ZERO)
    pct = resolve_percentage(percentage)

    general_conditions = round2((line_items_total + fee) * pct / Decimal(100))
    total = line_items_total + general_conditions + fee

    logger.debug(
        "costs_calculated",
        extra={
            "line_items_total": line_items_total,
            "general_conditions": general_conditions,
            "supervision_fee": fee,
            "percentage": pct,
            "total_cost": total,
        },
    )
    return CostBreakdown(
        line_items_total=line_items_total,
        general_conditions=general_conditions,
        supervision_fee=fee,
        percentage=pct,
        total_cost=total,
    )
