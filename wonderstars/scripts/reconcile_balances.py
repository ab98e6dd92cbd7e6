"""
余额对账脚本：对比各账本流水合计和 users 上的冗余余额

运行方式:
python -m wonderstars.scripts.reconcile_balances [--kind wallet|bonus|stars] [--user-id ID]

发现差异时以退出码 1 结束，便于定时任务告警。
"""

import argparse
import asyncio
import logging
import sys

from wonderstars.core.database import init_database, close_database
from wonderstars.models.award import BalanceKind
from wonderstars.repositories.award_repository import AwardRepository
from wonderstars.services.award_service import AwardService

logger = logging.getLogger(__name__)


async def run_reconciliation(kinds, user_id=None) -> int:
    """返回差异总数"""
    await init_database()

    from wonderstars.core.database import async_session_maker

    total = 0
    try:
        async with async_session_maker() as session:
            service = AwardService(AwardRepository(session))
            for kind in kinds:
                report = await service.reconcile(kind, user_id=user_id)
                logger.info(
                    f"[{kind.value}] 检查用户 {report.checked_users} 个，差异 {len(report.mismatches)} 个"
                )
                for entry in report.mismatches:
                    logger.warning(
                        f"[{kind.value}] user={entry.user_id} 流水合计={entry.ledger_sum} "
                        f"余额={entry.stored_balance} 差额={entry.difference}"
                    )
                total += len(report.mismatches)
    finally:
        await close_database()

    return total


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description="WonderStars 余额对账")
    parser.add_argument("--kind", choices=[kind.value for kind in BalanceKind], help="只检查一种余额")
    parser.add_argument("--user-id", help="只检查一个用户")
    args = parser.parse_args()

    kinds = [BalanceKind(args.kind)] if args.kind else list(BalanceKind)
    mismatches = asyncio.run(run_reconciliation(kinds, user_id=args.user_id))
    sys.exit(1 if mismatches else 0)


if __name__ == "__main__":
    main()
