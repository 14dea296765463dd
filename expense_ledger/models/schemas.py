from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from expense_ledger.models.database import BillStatus, BillType, EventAction, PaymentType

# 金额在JSON中以数字输出
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    """JSON字段使用驼峰命名，Python属性使用下划线命名"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class BillCreate(CamelModel):
    """用户报销单创建模型，草稿可以只填部分字段"""
    entry_date: Optional[datetime] = None
    bill_date: Optional[date] = None
    person_name: Optional[str] = None
    vendor_name: Optional[str] = None
    amount: Optional[Decimal] = None
    type: BillType
    description: Optional[str] = None
    category: Optional[str] = None
    user_id: Optional[str] = None
    is_draft: bool = False
    photo_base64: Optional[str] = None

    @field_validator("amount")
    def amount_must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("amount must not be negative")
        return v


class BillUpdate(CamelModel):
    """账单修改模型，只更新请求中出现的字段"""
    entry_date: Optional[datetime] = None
    bill_date: Optional[date] = None
    person_name: Optional[str] = None
    vendor_name: Optional[str] = None
    amount: Optional[Decimal] = None
    type: Optional[BillType] = None
    description: Optional[str] = None
    category: Optional[str] = None
    is_draft: Optional[bool] = None
    photo_base64: Optional[str] = None

    @field_validator("amount")
    def amount_must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("amount must not be negative")
        return v


class DirectPaymentCreate(CamelModel):
    """管理员直接付款模型，需另一位管理员审批"""
    entry_date: Optional[datetime] = None
    bill_date: Optional[date] = None
    vendor_name: Optional[str] = None
    amount: Optional[Decimal] = None
    type: BillType = BillType.DEBIT
    description: Optional[str] = None
    category: Optional[str] = None
    admin_id: str
    admin_name: Optional[str] = None
    photo_base64: Optional[str] = None

    @field_validator("amount")
    def amount_must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("amount must not be negative")
        return v


class StatusTransition(CamelModel):
    """审批请求：通过、拒绝或退回"""
    status: str
    remarks: Optional[str] = None
    admin_id: Optional[str] = None
    admin_name: Optional[str] = None


class DuplicateCheck(CamelModel):
    bill_date: date
    amount: Decimal
    description: str = ""
    person_name: str = ""


class EmailNotification(CamelModel):
    to: Optional[str] = None
    subject: Optional[str] = None
    html: Optional[str] = None


class BillResponse(CamelModel):
    """账单响应模型"""
    record_id: str
    user_id: Optional[str] = None
    entry_date: Optional[datetime] = None
    bill_date: Optional[date] = None
    date_of_settlement: Optional[datetime] = None
    person_name: Optional[str] = None
    vendor_name: Optional[str] = None
    amount: Optional[Money] = None
    type: BillType
    description: Optional[str] = None
    category: Optional[str] = None
    payment_type: PaymentType
    status: BillStatus
    is_draft: bool
    created_by_admin_id: Optional[str] = None
    created_by_admin_name: Optional[str] = None
    approved_by_admin_id: Optional[str] = None
    approved_by_admin_name: Optional[str] = None
    remarks: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LedgerRow(CamelModel):
    """台账行，balance 为计入本行后的余额"""
    bill_id: str
    entry_date: datetime
    bill_date: Optional[date] = None
    date_of_settlement: Optional[datetime] = None
    description: Optional[str] = None
    person_name: str
    raised_by: str
    approved_by: str
    amount: Money
    type: BillType
    balance: Money
    category: Optional[str] = None
    remarks: Optional[str] = None
    bill_softcopy_url: Optional[str] = None
    payment_type: PaymentType


class EventResponse(CamelModel):
    timestamp: datetime
    actor: str
    action: EventAction
    entity_id: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    details: Optional[str] = None
    ip_device: Optional[str] = None


class UserSummary(CamelModel):
    """按对方名称汇总的账单统计"""
    id: str
    name: str
    total_bills: int = 0
    total_amount: Money = Decimal("0")
    pending_bills: int = 0
    approved_bills: int = 0
    rejected_bills: int = 0
    returned_bills: int = 0


class BillStatistics(CamelModel):
    total_bills: int
    approved_bills: int
    declined_bills: int


class BillEnvelope(CamelModel):
    success: bool = True
    bill: BillResponse


class BillListEnvelope(CamelModel):
    success: bool = True
    bills: List[BillResponse]


class BillStatsEnvelope(BillListEnvelope):
    statistics: BillStatistics


class DuplicateEnvelope(CamelModel):
    success: bool = True
    is_duplicate: bool


class LedgerEnvelope(CamelModel):
    success: bool = True
    ledger: List[LedgerRow]


class EventLogEnvelope(CamelModel):
    success: bool = True
    logs: List[EventResponse]


class UsersEnvelope(CamelModel):
    success: bool = True
    users: List[UserSummary]


class MessageEnvelope(CamelModel):
    success: bool = True
    message: str
