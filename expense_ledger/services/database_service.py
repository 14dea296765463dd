# expense_ledger/services/database_service.py
import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

from sqlalchemy import delete, or_, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from expense_ledger.config import settings
from expense_ledger.exceptions import ConflictError, StorageError
from expense_ledger.models.database import (
    Base,
    Bill,
    BillStatus,
    EventLog,
    PaymentType,
)

logger = logging.getLogger(__name__)

# 查询排序方式
ORDERINGS = {
    "newest": (Bill.created_at.desc(), Bill.id.desc()),
    "recently_updated": (Bill.updated_at.desc(), Bill.id.desc()),
    "entry_date": (Bill.entry_date.asc(), Bill.id.asc()),
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DatabaseService:
    """异步数据库服务类，账单与审计事件的存储"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.database_dsn
        self.engine = None
        self.async_session = None
        self._initialized = False

    async def initialize(self):
        """初始化数据库连接池并建表"""
        if self._initialized:
            return

        try:
            engine_options: Dict[str, Any] = {"echo": settings.debug, "future": True}
            if not self.database_url.startswith("sqlite"):
                engine_options.update(
                    pool_size=10,  # 连接池大小
                    max_overflow=20,  # 最大溢出连接数
                    pool_pre_ping=True,  # 连接前ping检测
                    pool_recycle=3600,  # 连接回收时间(秒)
                )
            self.engine = create_async_engine(self.database_url, **engine_options)

            self.async_session = sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=True
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._initialized = True
            logger.info("数据库服务初始化成功")

        except Exception as e:
            logger.error(f"数据库服务初始化失败: {e}")
            raise

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """获取数据库会话的上下文管理器"""
        if not self._initialized:
            await self.initialize()

        session = self.async_session()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"数据库操作失败，已回滚: {e}")
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """检查数据库连接是否正常"""
        try:
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            logger.error(f"数据库连接检查失败: {e}")
            return False

    async def close(self):
        """关闭数据库连接池"""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("数据库连接池已关闭")

    async def create_bill(self, bill: Bill) -> Bill:
        """创建账单记录"""
        try:
            async with self.get_session() as session:
                session.add(bill)
                await session.flush()  # 刷新获取ID但不提交
            logger.info(f"账单记录创建成功，记录ID: {bill.record_id}")
            return bill
        except SQLAlchemyError as e:
            logger.error(f"创建账单记录失败: {e}")
            raise StorageError(f"Failed to create bill: {e}") from e

    async def get_bill(self, record_id: str) -> Optional[Bill]:
        """根据ID获取账单记录"""
        try:
            async with self.get_session() as session:
                result = await session.execute(select(Bill).where(Bill.record_id == record_id))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"获取账单记录失败: {e}")
            raise StorageError(f"Failed to load bill: {e}") from e

    async def update_bill(
            self,
            record_id: str,
            values: Dict[str, Any],
            expected_status: Optional[BillStatus] = None
    ) -> Optional[Bill]:
        """
        更新账单字段

        指定 expected_status 时按状态做比较并交换：当前状态不符则抛出
        ConflictError，保证同一账单并发审批只有一个请求成功。

        Returns:
            更新后的账单，账单不存在时返回 None
        """
        try:
            async with self.get_session() as session:
                stmt = update(Bill).where(Bill.record_id == record_id)
                if expected_status is not None:
                    stmt = stmt.where(Bill.status == expected_status)
                stmt = stmt.values(**values).execution_options(synchronize_session=False)
                result = await session.execute(stmt)

                current = (await session.execute(
                    select(Bill).where(Bill.record_id == record_id)
                )).scalar_one_or_none()

                if result.rowcount == 0:
                    if current is None:
                        logger.warning(f"未找到要更新的账单记录: {record_id}")
                        return None
                    raise ConflictError(f"Bill is already {current.status.value}")

                logger.info(f"账单更新成功，记录ID: {record_id}, 状态: {current.status.value}")
                return current
        except SQLAlchemyError as e:
            logger.error(f"更新账单失败: {e}")
            raise StorageError(f"Failed to update bill: {e}") from e

    async def delete_bill(self, record_id: str) -> Optional[Bill]:
        """删除账单记录，返回被删除的账单"""
        try:
            async with self.get_session() as session:
                bill = (await session.execute(
                    select(Bill).where(Bill.record_id == record_id)
                )).scalar_one_or_none()
                if bill is None:
                    logger.warning(f"未找到要删除的账单记录: {record_id}")
                    return None
                await session.delete(bill)
            logger.info(f"账单记录删除成功，记录ID: {record_id}")
            return bill
        except SQLAlchemyError as e:
            logger.error(f"删除账单记录失败: {e}")
            raise StorageError(f"Failed to delete bill: {e}") from e

    async def query_bills(
            self,
            user_id: Optional[str] = None,
            status: Optional[BillStatus] = None,
            payment_type: Optional[PaymentType] = None,
            exclude_status: Optional[BillStatus] = None,
            exclude_payment_type: Optional[PaymentType] = None,
            exclude_admin_id: Optional[str] = None,
            order: str = "newest"
    ) -> List[Bill]:
        """按条件查询账单"""
        stmt = select(Bill)
        if user_id is not None:
            stmt = stmt.where(Bill.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Bill.status == status)
        if payment_type is not None:
            stmt = stmt.where(Bill.payment_type == payment_type)
        if exclude_status is not None:
            stmt = stmt.where(Bill.status != exclude_status)
        if exclude_payment_type is not None:
            stmt = stmt.where(Bill.payment_type != exclude_payment_type)
        if exclude_admin_id is not None:
            stmt = stmt.where(or_(
                Bill.created_by_admin_id.is_(None),
                Bill.created_by_admin_id != exclude_admin_id,
            ))
        stmt = stmt.order_by(*ORDERINGS[order])

        try:
            async with self.get_session() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"查询账单记录失败: {e}")
            raise StorageError(f"Failed to query bills: {e}") from e

    async def find_duplicate(
            self,
            bill_date: date,
            amount: Decimal,
            description: str,
            person_name: str
    ) -> Optional[Bill]:
        """查找日期、金额相同且描述、姓名包含给定文本的账单"""
        stmt = (
            select(Bill)
            .where(Bill.bill_date == bill_date)
            .where(Bill.amount == amount)
            .where(Bill.description.ilike(f"%{_escape_like(description)}%", escape="\\"))
            .where(Bill.person_name.ilike(f"%{_escape_like(person_name)}%", escape="\\"))
            .limit(1)
        )
        async with self.get_session() as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def append_event(self, event: EventLog) -> EventLog:
        """写入一条审计事件"""
        async with self.get_session() as session:
            session.add(event)
        return event

    async def list_events(self, entity_id: Optional[str] = None) -> List[EventLog]:
        """按时间倒序获取审计事件"""
        stmt = select(EventLog)
        if entity_id is not None:
            stmt = stmt.where(EventLog.entity_id == entity_id)
        stmt = stmt.order_by(EventLog.timestamp.desc(), EventLog.id.desc())
        try:
            async with self.get_session() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"查询审计事件失败: {e}")
            raise StorageError(f"Failed to query event logs: {e}") from e

    async def clear_all(self) -> Tuple[int, int]:
        """删除全部账单与审计事件"""
        try:
            async with self.get_session() as session:
                bills = await session.execute(delete(Bill))
                events = await session.execute(delete(EventLog))
                return bills.rowcount, events.rowcount
        except SQLAlchemyError as e:
            logger.error(f"清空账单数据失败: {e}")
            raise StorageError(f"Failed to clear bills: {e}") from e


# 依赖注入函数
async def get_database_service(database_url: Optional[str] = None) -> DatabaseService:
    """创建并初始化数据库服务"""
    service = DatabaseService(database_url)
    await service.initialize()
    return service
