# expense_ledger/services/bill_lifecycle.py
import logging
from typing import Any, Dict, Optional

from expense_ledger.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStatusError,
    NotFoundError,
)
from expense_ledger.models.database import (
    Bill,
    BillStatus,
    EventAction,
    PaymentType,
    utcnow,
)
from expense_ledger.models.schemas import BillCreate, BillUpdate, DirectPaymentCreate
from expense_ledger.services.approval_policy import authorize
from expense_ledger.services.audit_log import AuditLog
from expense_ledger.services.database_service import DatabaseService
from expense_ledger.services.minio_client import PhotoStorage, PhotoUpload
from expense_ledger.services.validation import validate_bill

logger = logging.getLogger(__name__)

# 审批目标状态 -> (事件动作, 审批人角色)
TRANSITIONS = {
    BillStatus.APPROVED: (EventAction.APPROVE, "Approving"),
    BillStatus.REJECTED: (EventAction.DECLINE, "Rejecting"),
    BillStatus.RETURNED: (EventAction.RETURN, "Returning"),
}

# 修改时参与必填校验的字段
CANDIDATE_FIELDS = (
    "bill_date", "person_name", "vendor_name", "amount",
    "description", "category", "is_draft",
)

# 不允许置空的字段
NON_NULLABLE = ("type", "is_draft", "entry_date")


class BillLifecycle:
    """账单生命周期：创建、修改、审批、删除，每次变更写一条审计事件"""

    def __init__(
            self,
            db: DatabaseService,
            audit_log: AuditLog,
            photo_storage: Optional[PhotoStorage] = None,
            reopen_rejected: bool = False
    ):
        self.db = db
        self.audit_log = audit_log
        self.photo_storage = photo_storage
        self.reopen_rejected = reopen_rejected

    async def _store_photo(
            self,
            photo_base64: Optional[str],
            photo: Optional[PhotoUpload] = None
    ) -> Optional[str]:
        if self.photo_storage is None:
            return None
        if photo is not None and photo.content:
            return await self.photo_storage.store_photo_bytes(photo.content, photo.content_type)
        if photo_base64:
            return await self.photo_storage.store_photo(photo_base64)
        return None

    async def _get_or_raise(self, record_id: str) -> Bill:
        bill = await self.db.get_bill(record_id)
        if bill is None:
            raise NotFoundError(record_id)
        return bill

    async def create(
            self,
            data: BillCreate,
            origin: Optional[str] = None,
            photo: Optional[PhotoUpload] = None
    ) -> Bill:
        """创建报销单或草稿"""
        values = data.model_dump(exclude={"photo_base64"})
        validate_bill(values)
        if values["entry_date"] is None:
            values["entry_date"] = utcnow()

        bill = Bill(
            **values,
            payment_type=PaymentType.REIMBURSEMENT,
            status=BillStatus.PENDING,
            photo_url=await self._store_photo(data.photo_base64, photo),
        )
        bill = await self.db.create_bill(bill)

        await self.audit_log.record(
            bill.person_name or "User",
            EventAction.CREATE,
            bill.record_id,
            details=f"{'Draft' if bill.is_draft else 'Bill'} created: {bill.description}",
            ip_device=origin,
        )
        return bill

    async def create_direct_payment(
            self,
            data: DirectPaymentCreate,
            origin: Optional[str] = None,
            photo: Optional[PhotoUpload] = None
    ) -> Bill:
        """管理员录入直接付款，待另一位管理员审批"""
        admin_name = data.admin_name or "Admin"
        validate_bill({
            "bill_date": data.bill_date,
            "vendor_name": data.vendor_name,
            "amount": data.amount,
            "description": data.description,
            "category": data.category,
        })

        bill = Bill(
            entry_date=data.entry_date or utcnow(),
            bill_date=data.bill_date,
            person_name=data.vendor_name,
            vendor_name=data.vendor_name,
            amount=data.amount,
            type=data.type,
            description=data.description,
            category=data.category,
            user_id=data.admin_id,
            created_by_admin_id=data.admin_id,
            created_by_admin_name=admin_name,
            payment_type=PaymentType.DIRECT,
            status=BillStatus.PENDING,
            is_draft=False,
            photo_url=await self._store_photo(data.photo_base64, photo),
        )
        bill = await self.db.create_bill(bill)

        await self.audit_log.record(
            f"{admin_name} (Creating Admin)",
            EventAction.CREATE,
            bill.record_id,
            details=(
                f"Direct payment created by {admin_name} for "
                f"{data.vendor_name or 'Unknown Vendor'} (pending approval): {data.description}"
            ),
            ip_device=origin,
        )
        return bill

    async def update(
            self,
            record_id: str,
            data: BillUpdate,
            origin: Optional[str] = None,
            photo: Optional[PhotoUpload] = None
    ) -> Bill:
        """
        修改账单内容

        被退回（以及开启 reopen_rejected 时被拒绝）的账单修改后重新进入
        pending 状态并清空审批备注。已通过的账单不可修改。
        """
        bill = await self._get_or_raise(record_id)
        if bill.status == BillStatus.APPROVED:
            raise ConflictError("Approved bills cannot be modified")
        if bill.status == BillStatus.REJECTED and not self.reopen_rejected:
            raise ConflictError("Rejected bills cannot be modified")

        changes: Dict[str, Any] = data.model_dump(exclude_unset=True, exclude={"photo_base64"})
        for field in NON_NULLABLE:
            if field in changes and changes[field] is None:
                del changes[field]

        candidate = {field: getattr(bill, field) for field in CANDIDATE_FIELDS}
        candidate.update(changes)
        validate_bill(candidate)

        if bill.status in (BillStatus.RETURNED, BillStatus.REJECTED):
            changes["status"] = BillStatus.PENDING
            changes["remarks"] = None

        photo_url = await self._store_photo(data.photo_base64, photo)
        if photo_url:
            changes["photo_url"] = photo_url

        updated = await self.db.update_bill(record_id, changes, expected_status=bill.status)
        if updated is None:
            raise NotFoundError(record_id)

        await self.audit_log.record(
            updated.person_name or "User",
            EventAction.UPDATE,
            record_id,
            old_value=bill.status.value,
            new_value=updated.status.value,
            details=f"Bill updated: {updated.description}",
            ip_device=origin,
        )
        return updated

    async def transition(
            self,
            record_id: str,
            status: str,
            admin_id: Optional[str] = None,
            admin_name: Optional[str] = None,
            remarks: Optional[str] = None,
            origin: Optional[str] = None
    ) -> Bill:
        """审批账单：通过、拒绝或退回"""
        try:
            target = BillStatus(status)
        except ValueError:
            raise InvalidStatusError("Invalid status value")
        if target not in TRANSITIONS:
            raise InvalidStatusError("Invalid status value")

        bill = await self._get_or_raise(record_id)
        if bill.is_draft:
            raise InvalidStatusError("Draft bills must be finalized before review")
        if not authorize(bill, target, admin_id):
            logger.warning(f"拒绝自审批: 账单 {record_id}, 管理员 {admin_id}")
            raise AuthorizationError("Direct payments cannot be approved by the same admin who created them")
        if bill.status != BillStatus.PENDING:
            raise ConflictError(f"Bill is already {bill.status.value}")

        admin_name = admin_name or "Admin"
        values: Dict[str, Any] = {"status": target}
        if target == BillStatus.APPROVED:
            values["date_of_settlement"] = utcnow()
            values["approved_by_admin_id"] = admin_id
            values["approved_by_admin_name"] = admin_name
        if remarks is not None:
            values["remarks"] = remarks

        updated = await self.db.update_bill(record_id, values, expected_status=BillStatus.PENDING)
        if updated is None:
            raise NotFoundError(record_id)

        action, role = TRANSITIONS[target]
        if bill.payment_type == PaymentType.DIRECT:
            details = (
                f"Direct payment {target.value} by {admin_name} (originally created by "
                f"{bill.created_by_admin_name or 'Unknown Admin'}): {bill.description}"
                f"{f' - {remarks}' if remarks else ''}"
            )
        else:
            details = remarks if remarks is not None else f"Bill {target.value}"

        await self.audit_log.record(
            f"{admin_name} ({role} Admin)",
            action,
            record_id,
            old_value=bill.status.value,
            new_value=target.value,
            details=details,
            ip_device=origin,
        )
        logger.info(f"账单 {record_id} 状态变更: {bill.status.value} -> {target.value}")
        return updated

    async def delete(self, record_id: str, actor: str = "Admin", origin: Optional[str] = None) -> Bill:
        """删除账单"""
        bill = await self.db.delete_bill(record_id)
        if bill is None:
            raise NotFoundError(record_id)

        await self.audit_log.record(
            actor,
            EventAction.DELETE,
            record_id,
            old_value=bill.status.value,
            details=f"Bill deleted: {bill.description}",
            ip_device=origin,
        )
        return bill
