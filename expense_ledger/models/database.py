# expense_ledger/models/database.py
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """当前UTC时间（不带时区，与数据库DateTime列保持一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BillType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class PaymentType(str, enum.Enum):
    REIMBURSEMENT = "reimbursement"
    DIRECT = "direct"


class BillStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"


class EventAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    APPROVE = "approve"
    DECLINE = "decline"
    RETURN = "return"
    DELETE = "delete"
    EXPORT = "export"
    EMAIL = "email"


def _enum_column(enum_cls, **kwargs) -> Column:
    # 按枚举值存储为字符串，非法值无法写入
    return Column(
        Enum(
            enum_cls,
            native_enum=False,
            length=20,
            validate_strings=True,
            values_callable=lambda members: [m.value for m in members],
        ),
        **kwargs,
    )


class Bill(Base):
    """账单数据模型"""
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(String(50), unique=True, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(100), index=True)  # 提交人
    entry_date = Column(DateTime, nullable=False, default=utcnow)  # 录入时间
    bill_date = Column(Date)  # 消费日期
    date_of_settlement = Column(DateTime)  # 结算时间，审批通过时写入
    person_name = Column(String(200))
    vendor_name = Column(String(200))
    amount = Column(Numeric(14, 2))
    type = _enum_column(BillType, nullable=False)
    description = Column(Text)
    category = Column(String(100))
    payment_type = _enum_column(PaymentType, nullable=False, default=PaymentType.REIMBURSEMENT)
    status = _enum_column(BillStatus, nullable=False, default=BillStatus.PENDING, index=True)
    is_draft = Column(Boolean, nullable=False, default=False)
    created_by_admin_id = Column(String(100))
    created_by_admin_name = Column(String(200))
    approved_by_admin_id = Column(String(100))
    approved_by_admin_name = Column(String(200))
    remarks = Column(Text)
    photo_url = Column(String(500))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def counterparty_name(self) -> str:
        return self.person_name or self.vendor_name or "Unknown"


class EventLog(Base):
    """审计事件，只追加不修改"""
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    actor = Column(String(200), nullable=False)
    action = _enum_column(EventAction, nullable=False)
    entity_id = Column(String(50), index=True)
    old_value = Column(String(200))
    new_value = Column(String(200))
    details = Column(Text)
    ip_device = Column(String(100))
