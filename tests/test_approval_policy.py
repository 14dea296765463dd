import pytest

from expense_ledger.models.database import Bill, BillStatus, PaymentType
from expense_ledger.services.approval_policy import authorize


def direct_bill(creator="admin-a"):
    return Bill(payment_type=PaymentType.DIRECT, created_by_admin_id=creator, status=BillStatus.PENDING)


def test_creator_cannot_approve_own_direct_payment():
    assert authorize(direct_bill(), BillStatus.APPROVED, "admin-a") is False


def test_other_admin_can_approve_direct_payment():
    assert authorize(direct_bill(), BillStatus.APPROVED, "admin-b") is True


@pytest.mark.parametrize("target", [BillStatus.REJECTED, BillStatus.RETURNED])
def test_creator_can_reject_or_return_own_direct_payment(target):
    assert authorize(direct_bill(), target, "admin-a") is True


def test_reimbursements_are_always_allowed():
    bill = Bill(payment_type=PaymentType.REIMBURSEMENT, created_by_admin_id=None, status=BillStatus.PENDING)
    assert authorize(bill, BillStatus.APPROVED, None) is True
