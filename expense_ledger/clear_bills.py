# expense_ledger/clear_bills.py
"""清空全部账单与审计事件：python -m expense_ledger.clear_bills --yes"""
import argparse
import asyncio
import logging
from typing import Optional

from expense_ledger.services.database_service import get_database_service

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


async def clear_all_bills(database_url: Optional[str] = None):
    db = await get_database_service(database_url)
    try:
        bills_deleted, events_deleted = await db.clear_all()
        logger.info(f"已删除 {bills_deleted} 条账单, {events_deleted} 条审计事件")
        return bills_deleted, events_deleted
    finally:
        await db.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="删除全部账单与审计事件")
    parser.add_argument("--yes", action="store_true", help="确认删除")
    parser.add_argument("--database-url", default=None, help="覆盖配置中的数据库连接串")
    args = parser.parse_args(argv)

    if not args.yes:
        parser.error("该操作不可恢复，请加 --yes 确认")

    asyncio.run(clear_all_bills(args.database_url))


if __name__ == "__main__":
    main()
