# expense_ledger/services/notification_service.py
import logging
from typing import Optional

from expense_ledger.exceptions import ValidationError
from expense_ledger.models.database import EventAction
from expense_ledger.services.audit_log import AuditLog

logger = logging.getLogger(__name__)


class NotificationService:
    """邮件通知，目前只记录日志，未接入邮件服务"""

    def __init__(self, audit_log: AuditLog):
        self.audit_log = audit_log

    async def send_email(self, to: Optional[str], subject: Optional[str], html: Optional[str]) -> str:
        if not to or not subject or not html:
            raise ValidationError("Missing required fields: to, subject, html", [
                name for name, value in (("to", to), ("subject", subject), ("html", html)) if not value
            ])

        logger.info(f"邮件待发送: {to}, 主题: {subject}, 内容: {html[:100]}...")

        await self.audit_log.record(
            "System",
            EventAction.EMAIL,
            new_value=to,
            details=f"Email sent: {subject}",
        )
        return "Email notification logged (email service not configured yet)"
