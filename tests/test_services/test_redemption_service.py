"""
RedemptionService业务逻辑测试
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

from wonderstars.core.exceptions import DatastoreError
from wonderstars.models.database.voucher_db import UserVoucherDB
from wonderstars.repositories.user_voucher_repository import UserVoucherRepository
from wonderstars.services.redemption_service import RedemptionService


NOW = datetime(2026, 3, 10, 4, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 10)


@pytest.mark.asyncio
class TestRedemptionService:
    """RedemptionService业务逻辑测试类"""

    @pytest.fixture
    def mock_voucher_service(self):
        return AsyncMock()

    @pytest.fixture
    def mock_user_voucher_repo(self):
        """模拟UserVoucherRepository"""
        repo = AsyncMock(spec=UserVoucherRepository)
        repo.get.return_value = None
        repo.refresh.side_effect = lambda row: row
        return repo

    @pytest.fixture
    def redemption_service(self, mock_voucher_service, mock_user_voucher_repo):
        return RedemptionService(mock_voucher_service, mock_user_voucher_repo)

    @pytest.fixture
    def daily_voucher(self, make_voucher):
        return make_voucher(
            id="daily_001", code="DAILYFNB", is_daily_redeemable=True,
            application_scope="order_total", product_application_method="total_once"
        )

    @pytest.fixture
    def single_voucher(self, make_voucher):
        return make_voucher(id="single_001", code="WELCOME10")

    def _row(self, **overrides):
        data = {
            "id": "uv_001",
            "user_id": "user_001",
            "voucher_id": "daily_001",
            "status": "available",
            "is_daily_voucher": True,
            "redemption_count": 1,
            "usage_count": 0,
            "max_usage_count": 1,
            "last_redeemed_date": TODAY - timedelta(days=1),
        }
        data.update(overrides)
        return UserVoucherDB(**data)

    async def test_first_daily_redemption(
        self, redemption_service, mock_voucher_service, mock_user_voucher_repo, daily_voucher
    ):
        """首次兑换：插入记录，有效期到吉隆坡当天结束"""
        mock_voucher_service.get_voucher_by_id.return_value = daily_voucher
        inserted = self._row(redemption_count=1, last_redeemed_date=TODAY,
                             expires_at=datetime(2026, 3, 10, 16, 0, tzinfo=timezone.utc))
        mock_user_voucher_repo.insert_first_redemption.return_value = inserted

        result = await redemption_service.redeem("user_001", "daily_001", method="qr_scan", now=NOW)

        assert result.success is True
        assert result.redemption_count == 1
        args = mock_user_voucher_repo.insert_first_redemption.call_args.args
        assert args[2] == "qr_scan"
        assert args[3] == TODAY
        assert args[4] == datetime(2026, 3, 10, 16, 0, tzinfo=timezone.utc)

    async def test_daily_already_redeemed_today(
        self, redemption_service, mock_voucher_service, mock_user_voucher_repo, daily_voucher
    ):
        mock_voucher_service.get_voucher_by_id.return_value = daily_voucher
        mock_user_voucher_repo.get.return_value = self._row(last_redeemed_date=TODAY)

        result = await redemption_service.redeem("user_001", "daily_001", now=NOW)

        assert result.success is False
        assert result.message == "You've already used this voucher today"
        mock_user_voucher_repo.mark_redeemed_today.assert_not_called()

    async def test_daily_lost_race_on_update(
        self, redemption_service, mock_voucher_service, mock_user_voucher_repo, daily_voucher
    ):
        """条件UPDATE没有命中行，说明并发请求已先兑换"""
        mock_voucher_service.get_voucher_by_id.return_value = daily_voucher
        mock_user_voucher_repo.get.return_value = self._row()
        mock_user_voucher_repo.mark_redeemed_today.return_value = False

        result = await redemption_service.redeem("user_001", "daily_001", now=NOW)

        assert result.success is False
        assert result.message == "You've already used this voucher today"

    async def test_daily_next_day_redemption(
        self, redemption_service, mock_voucher_service, mock_user_voucher_repo, daily_voucher
    ):
        mock_voucher_service.get_voucher_by_id.return_value = daily_voucher
        row = self._row()
        mock_user_voucher_repo.get.return_value = row
        mock_user_voucher_repo.mark_redeemed_today.return_value = True

        result = await redemption_service.redeem("user_001", "daily_001", now=NOW)

        assert result.success is True
        mock_user_voucher_repo.mark_redeemed_today.assert_called_once_with(
            "uv_001", TODAY, datetime(2026, 3, 10, 16, 0, tzinfo=timezone.utc), "manual_code"
        )
        mock_user_voucher_repo.refresh.assert_called_once_with(row)

    async def test_first_insert_conflict_falls_back_to_existing_row(
        self, redemption_service, mock_voucher_service, mock_user_voucher_repo, daily_voucher
    ):
        mock_voucher_service.get_voucher_by_id.return_value = daily_voucher
        mock_user_voucher_repo.insert_first_redemption.return_value = None
        mock_user_voucher_repo.get.side_effect = [None, self._row(last_redeemed_date=TODAY)]

        result = await redemption_service.redeem("user_001", "daily_001", now=NOW)

        assert result.success is False
        assert result.message == "You've already used this voucher today"

    async def test_single_use_already_used(
        self, redemption_service, mock_voucher_service, mock_user_voucher_repo, single_voucher
    ):
        mock_voucher_service.get_voucher_by_id.return_value = single_voucher
        mock_user_voucher_repo.get.return_value = self._row(
            voucher_id="single_001", is_daily_voucher=False, status="used", usage_count=1
        )

        result = await redemption_service.redeem("user_001", "single_001", now=NOW)

        assert result.success is False
        assert result.message == "This voucher has already been used"
        mock_user_voucher_repo.mark_used.assert_not_called()

    async def test_single_use_claimed_then_used(
        self, redemption_service, mock_voucher_service, mock_user_voucher_repo, single_voucher
    ):
        mock_voucher_service.get_voucher_by_id.return_value = single_voucher
        mock_user_voucher_repo.get.return_value = self._row(
            voucher_id="single_001", is_daily_voucher=False, redemption_count=0, last_redeemed_date=None
        )
        mock_user_voucher_repo.mark_used.return_value = True

        result = await redemption_service.redeem("user_001", "single_001", now=NOW)

        assert result.success is True
        assert result.message == "Voucher redeemed successfully!"
        mock_user_voucher_repo.mark_used.assert_called_once_with("uv_001", TODAY, "manual_code")

    async def test_inactive_voucher(self, redemption_service, mock_voucher_service, make_voucher):
        mock_voucher_service.get_voucher_by_id.return_value = make_voucher(is_active=False)

        result = await redemption_service.redeem("user_001", "voucher_001", now=NOW)

        assert result.success is False
        assert result.message == "This voucher is no longer active"

    async def test_expired_voucher(self, redemption_service, mock_voucher_service, make_voucher):
        mock_voucher_service.get_voucher_by_id.return_value = make_voucher(expires_at=NOW - timedelta(hours=1))

        check = await redemption_service.can_redeem_today("user_001", "voucher_001", now=NOW)

        assert check.can_redeem is False
        assert check.reason == "This voucher has expired"

    async def test_invalid_method(self, redemption_service, mock_voucher_service):
        result = await redemption_service.redeem("user_001", "daily_001", method="QR Scan", now=NOW)

        assert result.success is False
        mock_voucher_service.get_voucher_by_id.assert_not_called()

    async def test_redeem_by_unknown_code(self, redemption_service, mock_voucher_service):
        mock_voucher_service.get_voucher_by_code.return_value = None

        result = await redemption_service.redeem_by_code("user_001", "NOPE")

        assert result.success is False
        assert result.message == "Invalid voucher code"

    async def test_can_redeem_today_flow(
        self, redemption_service, mock_voucher_service, mock_user_voucher_repo, daily_voucher
    ):
        mock_voucher_service.get_voucher_by_id.return_value = daily_voucher

        assert (await redemption_service.can_redeem_today("user_001", "daily_001", now=NOW)).can_redeem is True

        mock_user_voucher_repo.get.return_value = self._row(last_redeemed_date=TODAY)
        check = await redemption_service.can_redeem_today("user_001", "daily_001", now=NOW)
        assert check.can_redeem is False
        assert check.reason == "You've already used this voucher today"

        tomorrow = NOW + timedelta(days=1)
        assert (await redemption_service.can_redeem_today("user_001", "daily_001", now=tomorrow)).can_redeem is True

    async def test_datastore_error_propagates(
        self, redemption_service, mock_voucher_service, mock_user_voucher_repo, daily_voucher
    ):
        """数据库不可用时不返回"已兑换"之类的误导信息"""
        mock_voucher_service.get_voucher_by_id.return_value = daily_voucher
        mock_user_voucher_repo.insert_first_redemption.side_effect = DatastoreError()

        with pytest.raises(DatastoreError):
            await redemption_service.redeem("user_001", "daily_001", now=NOW)
