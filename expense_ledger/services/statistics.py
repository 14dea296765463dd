# expense_ledger/services/statistics.py
from decimal import Decimal
from typing import Dict, Iterable, List

from expense_ledger.models.database import Bill, BillStatus
from expense_ledger.models.schemas import BillStatistics, UserSummary

# 状态 -> UserSummary 计数字段
_STATUS_COUNTERS = {
    BillStatus.PENDING: "pending_bills",
    BillStatus.APPROVED: "approved_bills",
    BillStatus.REJECTED: "rejected_bills",
    BillStatus.RETURNED: "returned_bills",
}


def bill_statistics(bills: List[Bill]) -> BillStatistics:
    return BillStatistics(
        total_bills=len(bills),
        approved_bills=sum(1 for b in bills if b.status == BillStatus.APPROVED),
        declined_bills=sum(1 for b in bills if b.status == BillStatus.REJECTED),
    )


def summarize_users(bills: Iterable[Bill]) -> List[UserSummary]:
    """按对方名称汇总账单数量、金额和各状态数量"""
    users: Dict[str, UserSummary] = {}
    for bill in bills:
        name = bill.counterparty_name
        summary = users.get(name)
        if summary is None:
            summary = users[name] = UserSummary(id=name, name=name)
        summary.total_bills += 1
        summary.total_amount += bill.amount or Decimal("0")
        counter = _STATUS_COUNTERS[bill.status]
        setattr(summary, counter, getattr(summary, counter) + 1)
    return list(users.values())
