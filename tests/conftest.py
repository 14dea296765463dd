"""
Shared fixtures: a temporary sqlite database per test, a recording audit
log, a fake photo storage and an HTTP client bound to an isolated app.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

import pytest
from fastapi.testclient import TestClient

from expense_ledger.config import Settings
from expense_ledger.main import create_app
from expense_ledger.models.database import EventAction, EventLog
from expense_ledger.models.schemas import BillCreate, DirectPaymentCreate
from expense_ledger.services.bill_lifecycle import BillLifecycle
from expense_ledger.services.database_service import DatabaseService


class RecordingAuditLog:
    """In-memory audit log; set ``fail`` to simulate a broken audit store."""

    def __init__(self, fail: bool = False):
        self.events: List[EventLog] = []
        self.fail = fail

    async def record(
            self,
            actor: str,
            action: EventAction,
            entity_id: Optional[str] = None,
            old_value: Optional[str] = None,
            new_value: Optional[str] = None,
            details: Optional[str] = None,
            ip_device: Optional[str] = None,
    ) -> Optional[EventLog]:
        if self.fail:
            return None
        event = EventLog(
            timestamp=datetime(2024, 1, 1),
            actor=actor,
            action=action,
            entity_id=entity_id,
            old_value=old_value,
            new_value=new_value,
            details=details,
            ip_device=ip_device,
        )
        self.events.append(event)
        return event

    def actions(self) -> List[EventAction]:
        return [event.action for event in self.events]


class FakePhotoStorage:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.stored: List[Any] = []

    async def store_photo(self, photo_base64: str) -> Optional[str]:
        if self.fail:
            return None
        self.stored.append(photo_base64)
        return f"https://photos.test/bills/{len(self.stored)}.jpg"

    async def store_photo_bytes(self, image_data: bytes, content_type: str) -> Optional[str]:
        if self.fail:
            return None
        self.stored.append((image_data, content_type))
        return f"https://photos.test/bills/{len(self.stored)}.{content_type.split('/')[-1]}"


def bill_payload(**overrides) -> BillCreate:
    values = dict(
        entry_date=datetime(2024, 1, 2, 9, 0),
        bill_date=date(2024, 1, 1),
        person_name="Alice",
        amount=Decimal("50"),
        type="debit",
        description="Taxi fare",
        category="Travel",
        user_id="user-1",
    )
    values.update(overrides)
    return BillCreate(**values)


def direct_payment_payload(**overrides) -> DirectPaymentCreate:
    values = dict(
        bill_date=date(2024, 1, 5),
        vendor_name="Acme Supplies",
        amount=Decimal("200"),
        description="Office chairs",
        category="Furniture",
        admin_id="admin-a",
        admin_name="Ann",
    )
    values.update(overrides)
    return DirectPaymentCreate(**values)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'bills.db'}"


@pytest.fixture
async def db(database_url):
    service = DatabaseService(database_url)
    await service.initialize()
    yield service
    await service.close()


@pytest.fixture
def audit_log():
    return RecordingAuditLog()


@pytest.fixture
def photo_storage():
    return FakePhotoStorage()


@pytest.fixture
def lifecycle(db, audit_log, photo_storage):
    return BillLifecycle(db, audit_log, photo_storage)


@pytest.fixture
def client(database_url):
    app = create_app(Settings(database_url=database_url), photo_storage=FakePhotoStorage())
    with TestClient(app) as test_client:
        yield test_client
