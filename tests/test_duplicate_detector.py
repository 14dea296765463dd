from datetime import date
from decimal import Decimal

import pytest
from conftest import bill_payload

from expense_ledger.exceptions import StorageError
from expense_ledger.services.duplicate_detector import DuplicateDetector


@pytest.fixture
async def detector(db, lifecycle):
    await lifecycle.create(bill_payload(
        bill_date=date(2024, 1, 1),
        amount=Decimal("50"),
        description="Taxi fare",
        person_name="Alice",
    ))
    return DuplicateDetector(db)


async def test_partial_case_insensitive_match(detector):
    assert await detector.is_duplicate(date(2024, 1, 1), Decimal("50"), "taxi", "alic") is True


async def test_amount_must_match_exactly(detector):
    assert await detector.is_duplicate(date(2024, 1, 1), Decimal("51"), "taxi", "alic") is False


async def test_date_must_match_exactly(detector):
    assert await detector.is_duplicate(date(2024, 1, 2), Decimal("50"), "taxi", "alic") is False


async def test_text_must_be_contained(detector):
    assert await detector.is_duplicate(date(2024, 1, 1), Decimal("50"), "bus", "alice") is False
    assert await detector.is_duplicate(date(2024, 1, 1), Decimal("50"), "taxi", "bob") is False


async def test_like_wildcards_are_literal(detector):
    assert await detector.is_duplicate(date(2024, 1, 1), Decimal("50"), "%", "_") is False


async def test_empty_text_matches_any(detector):
    assert await detector.is_duplicate(date(2024, 1, 1), Decimal("50"), "", "") is True


class BrokenStore:
    async def find_duplicate(self, *args):
        raise StorageError("database unavailable")


async def test_failure_means_no_duplicate():
    detector = DuplicateDetector(BrokenStore())

    assert await detector.is_duplicate(date(2024, 1, 1), Decimal("50"), "taxi", "alice") is False
