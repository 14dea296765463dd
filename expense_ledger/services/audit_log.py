# expense_ledger/services/audit_log.py
import logging
from typing import Optional, Protocol

from expense_ledger.models.database import EventAction, EventLog, utcnow
from expense_ledger.services.database_service import DatabaseService

logger = logging.getLogger(__name__)


class AuditLog(Protocol):
    """审计日志接口，只有追加操作"""

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
        ...


class DatabaseAuditLog:
    """
    写入数据库的审计日志

    写入失败只记录日志并返回 None，不影响已经成功的账单操作。
    连续失败次数达到阈值时输出 CRITICAL 日志作为告警。
    """

    def __init__(self, db: DatabaseService, alert_threshold: int = 3):
        self.db = db
        self.alert_threshold = alert_threshold
        self.consecutive_failures = 0
        self._last_timestamp = None

    def _next_timestamp(self):
        # 同一日志内时间戳单调不减
        now = utcnow()
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

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
        """追加一条审计事件"""
        event = EventLog(
            timestamp=self._next_timestamp(),
            actor=actor,
            action=action,
            entity_id=entity_id,
            old_value=old_value,
            new_value=new_value,
            details=details,
            ip_device=ip_device,
        )
        try:
            await self.db.append_event(event)
        except Exception as e:
            self.consecutive_failures += 1
            logger.error(f"审计事件写入失败: {action.value} {entity_id}, 错误: {e}")
            if self.consecutive_failures >= self.alert_threshold:
                logger.critical(f"审计事件已连续写入失败 {self.consecutive_failures} 次，请检查审计存储")
            return None

        self.consecutive_failures = 0
        return event
