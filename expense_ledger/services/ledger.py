# expense_ledger/services/ledger.py
import csv
import io
import logging
from decimal import Decimal
from typing import Iterable, List, Optional

from expense_ledger.models.database import Bill, BillStatus, BillType, EventAction, PaymentType
from expense_ledger.models.schemas import LedgerRow
from expense_ledger.services.audit_log import AuditLog
from expense_ledger.services.database_service import DatabaseService

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    ("billId", "bill_id"),
    ("entryDate", "entry_date"),
    ("billDate", "bill_date"),
    ("dateOfSettlement", "date_of_settlement"),
    ("description", "description"),
    ("personName", "person_name"),
    ("raisedBy", "raised_by"),
    ("approvedBy", "approved_by"),
    ("amount", "amount"),
    ("type", "type"),
    ("balance", "balance"),
    ("category", "category"),
    ("remarks", "remarks"),
    ("billSoftcopyUrl", "bill_softcopy_url"),
    ("paymentType", "payment_type"),
]


def build_ledger(bills: Iterable[Bill]) -> List[LedgerRow]:
    """
    按顺序累计已通过账单，生成带余额的台账

    贷方增加余额，借方减少余额；每行的 balance 是计入该账单之后的余额。
    纯函数，不做任何写入。
    """
    balance = Decimal("0")
    rows = []
    for bill in bills:
        amount = bill.amount if bill.amount is not None else Decimal("0")
        if bill.type == BillType.CREDIT:
            balance += amount
        else:
            balance -= amount

        if bill.payment_type == PaymentType.DIRECT:
            raised_by = bill.created_by_admin_name or "Admin"
        else:
            raised_by = bill.person_name or "User"

        rows.append(LedgerRow(
            bill_id=bill.record_id,
            entry_date=bill.entry_date,
            bill_date=bill.bill_date,
            date_of_settlement=bill.date_of_settlement,
            description=bill.description,
            person_name=bill.counterparty_name,
            raised_by=raised_by,
            approved_by=bill.approved_by_admin_name or "Admin",
            amount=amount,
            type=bill.type,
            balance=balance,
            category=bill.category,
            remarks=bill.remarks,
            bill_softcopy_url=bill.photo_url,
            payment_type=bill.payment_type,
        ))
    return rows


def render_csv(rows: Iterable[LedgerRow]) -> str:
    """台账导出为CSV文本"""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([header for header, _ in CSV_COLUMNS])
    for row in rows:
        record = row.model_dump(mode="json")
        writer.writerow(["" if record[attr] is None else record[attr] for _, attr in CSV_COLUMNS])
    return buffer.getvalue()


class LedgerService:
    """台账读取，每次从已通过账单重新计算"""

    def __init__(self, db: DatabaseService, audit_log: AuditLog):
        self.db = db
        self.audit_log = audit_log

    async def read(self) -> List[LedgerRow]:
        bills = await self.db.query_bills(status=BillStatus.APPROVED, order="entry_date")
        return build_ledger(bills)

    async def export_csv(self, actor: str = "Admin", origin: Optional[str] = None) -> str:
        """导出台账CSV并记录导出事件"""
        rows = await self.read()
        content = render_csv(rows)
        await self.audit_log.record(
            actor,
            EventAction.EXPORT,
            details=f"Ledger exported: {len(rows)} rows",
            ip_device=origin,
        )
        logger.info(f"台账导出完成，共 {len(rows)} 行")
        return content
