# expense_ledger/services/approval_policy.py
from typing import Optional

from expense_ledger.models.database import Bill, BillStatus, PaymentType


def authorize(bill: Bill, target: BillStatus, acting_admin_id: Optional[str]) -> bool:
    """
    判断管理员是否可以把账单改为目标状态

    直接付款不能由创建它的管理员本人审批通过，其余情况一律放行。
    角色权限检查不在这里处理。
    """
    if (
        bill.payment_type == PaymentType.DIRECT
        and target == BillStatus.APPROVED
        and acting_admin_id == bill.created_by_admin_id
    ):
        return False
    return True
