# expense_ledger/services/duplicate_detector.py
import logging
from datetime import date
from decimal import Decimal

from expense_ledger.services.database_service import DatabaseService

logger = logging.getLogger(__name__)


class DuplicateDetector:
    """重复提交检测，仅作提示，不阻止创建"""

    def __init__(self, db: DatabaseService):
        self.db = db

    async def is_duplicate(
            self,
            bill_date: date,
            amount: Decimal,
            description: str,
            person_name: str
    ) -> bool:
        """日期和金额完全相同，描述和姓名忽略大小写包含给定文本即视为重复"""
        try:
            match = await self.db.find_duplicate(bill_date, amount, description or "", person_name or "")
        except Exception as e:
            logger.error(f"重复账单检测失败，按无重复处理: {e}")
            return False

        if match is not None:
            logger.info(f"发现疑似重复账单: {match.record_id}")
        return match is not None
