"""Fixtures partagées : horloge figée, répertoire de données temporaire, lignes type."""
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from invoicing.clock import FixedClock
from invoicing.config import Settings
from invoicing.logging_config import reset_logging
from invoicing.models.invoice import Invoice, WorkItem
from invoicing.services import invoice_aggregate as aggregate
from invoicing.services.invoice_service import InvoiceService

NOW = datetime(2025, 3, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clean_logging():
    yield
    reset_logging()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def work_items():
    return [
        WorkItem(name="Demolition", quantity=Decimal("2"), unit="day", unit_price=Decimal("150.00")),
        WorkItem(name="Framing", description="Interior walls", quantity=Decimal("10"), unit="sqft", unit_price=Decimal("12.50")),
    ]


def make_invoice(total: str = "1000.00", due: date = date(2025, 3, 31), **overrides) -> Invoice:
    """Facture 'pending' dont le total vaut exactement ``total`` (0 % de frais généraux)."""
    result = aggregate.create(
        [WorkItem(name="Lump sum", quantity=Decimal("1"), unit_price=Decimal(total))],
        Decimal("0"),
        Decimal("0"),
        due,
        overrides.pop("client_reference", "ACME Builders"),
        invoice_number=overrides.pop("invoice_number", "INV-2025-0001"),
        now=NOW,
        **overrides,
    )
    return result.unwrap()


@pytest.fixture
def invoice():
    return make_invoice()


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path, backup_enabled=False)


@pytest.fixture
def service(settings, clock):
    return InvoiceService(settings=settings, clock=clock)


@pytest.fixture
def invoice_factory():
    return make_invoice


@pytest.fixture
def now():
    return NOW
