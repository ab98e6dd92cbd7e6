"""
AwardService业务逻辑测试
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

from wonderstars.core.exceptions import DuplicateOperation, InvalidAmount, UserNotFound
from wonderstars.models.award import BalanceKind, TransactionType
from wonderstars.repositories.award_repository import AwardRepository
from wonderstars.services.award_service import AwardService


@pytest.mark.asyncio
class TestAwardService:
    """AwardService业务逻辑测试类"""

    @pytest.fixture
    def user(self):
        return SimpleNamespace(
            id="user_001",
            wallet_balance=Decimal("50.00"),
            bonus_balance=Decimal("0.00"),
            stars=Decimal("100")
        )

    @pytest.fixture
    def mock_award_repo(self, user):
        """模拟AwardRepository，余额读取沿用真实实现"""
        repo = AsyncMock(spec=AwardRepository)
        repo.lock_user.return_value = user
        repo.get_user.return_value = user
        repo.find_transaction.return_value = None
        repo.current_balance.side_effect = lambda u, kind: AwardRepository.current_balance(repo, u, kind)
        return repo

    @pytest.fixture
    def award_service(self, mock_award_repo):
        return AwardService(mock_award_repo)

    def _entry(self, amount, balance_after):
        return SimpleNamespace(id="tx_001", amount=amount, balance_after=balance_after)

    async def test_award_bonus(self, award_service, mock_award_repo):
        mock_award_repo.append_entry.return_value = self._entry(Decimal("10.00"), Decimal("10.00"))

        result = await award_service.award_bonus(
            "user_001", Decimal("10"), correlation_key="wt_123"
        )

        assert result.success is True
        assert result.duplicate is False
        assert result.new_balance == Decimal("10.00")
        call = mock_award_repo.append_entry.call_args
        assert call.args[0] == BalanceKind.BONUS
        assert call.args[2] == Decimal("10.00")
        assert call.args[3] == TransactionType.TOPUP_BONUS.value
        assert call.args[4] == "topup_bonus"
        assert call.kwargs["correlation_key"] == "wt_123"

    async def test_award_existing_key_is_duplicate(self, award_service, mock_award_repo):
        """同一去重键第二次发放：不写流水，返回 duplicate"""
        mock_award_repo.find_transaction.return_value = SimpleNamespace(id="tx_existing")

        result = await award_service.award_bonus("user_001", Decimal("10"), correlation_key="wt_123")

        assert result.success is True
        assert result.duplicate is True
        assert result.transaction_id == "tx_existing"
        assert result.new_balance == Decimal("0.00")
        mock_award_repo.append_entry.assert_not_called()

    async def test_award_unique_conflict_is_duplicate(self, award_service, mock_award_repo):
        """并发插入撞上唯一约束，同样按重复处理"""
        mock_award_repo.append_entry.side_effect = DuplicateOperation("dup")
        mock_award_repo.find_transaction.side_effect = [None, SimpleNamespace(id="tx_other")]

        result = await award_service.credit_wallet("user_001", Decimal("20"), "topup", correlation_key="TU-1")

        assert result.success is True
        assert result.duplicate is True
        assert result.transaction_id == "tx_other"

    async def test_award_stars_applies_floor(self, award_service, mock_award_repo):
        mock_award_repo.append_entry.return_value = self._entry(Decimal("37"), Decimal("137"))

        await award_service.award_stars(
            "user_001", Decimal("25.90"), "purchase", correlation_key="order_1", multiplier=Decimal("1.5")
        )

        call = mock_award_repo.append_entry.call_args
        # 25.90 × 1.5 = 38.85 -> 38
        assert call.args[2] == Decimal("38")
        assert call.kwargs["metadata"]["multiplier"] == "1.5"

    async def test_award_stars_rounds_to_nothing(self, award_service, mock_award_repo):
        result = await award_service.award_stars("user_001", Decimal("0.50"), "purchase")

        assert result.success is False
        mock_award_repo.append_entry.assert_not_called()

    async def test_spend_insufficient_balance(self, award_service, mock_award_repo):
        result = await award_service.spend(BalanceKind.WALLET, "user_001", Decimal("60"), "shop_order")

        assert result.success is False
        assert result.reason == "Insufficient balance"
        assert result.new_balance == Decimal("50.00")
        mock_award_repo.append_entry.assert_not_called()

    async def test_spend_writes_negative_entry(self, award_service, mock_award_repo):
        mock_award_repo.append_entry.return_value = self._entry(Decimal("-20.00"), Decimal("30.00"))

        result = await award_service.spend(BalanceKind.WALLET, "user_001", Decimal("20"), "shop_order", "order_9")

        assert result.success is True
        assert result.new_balance == Decimal("30.00")
        call = mock_award_repo.append_entry.call_args
        assert call.args[2] == Decimal("-20.00")
        assert call.args[3] == "spend"

    async def test_admin_adjust_cannot_go_negative(self, award_service, mock_award_repo):
        result = await award_service.admin_adjust(BalanceKind.STARS, "user_001", Decimal("-101"), "admin_1", "fix")

        assert result.success is False
        mock_award_repo.append_entry.assert_not_called()

    async def test_admin_adjust_records_audit_metadata(self, award_service, mock_award_repo):
        mock_award_repo.append_entry.return_value = self._entry(Decimal("-10"), Decimal("90"))

        result = await award_service.admin_adjust(
            BalanceKind.STARS, "user_001", Decimal("-10"), "admin_1", "duplicate order"
        )

        assert result.success is True
        call = mock_award_repo.append_entry.call_args
        assert call.args[3] == "admin_adjustment"
        assert call.kwargs["metadata"] == {"admin_id": "admin_1", "reason": "duplicate order"}

    async def test_non_positive_amount_rejected(self, award_service):
        with pytest.raises(InvalidAmount):
            await award_service.award(BalanceKind.BONUS, "user_001", Decimal("0"), source="topup_bonus")

        with pytest.raises(InvalidAmount):
            await award_service.spend(BalanceKind.WALLET, "user_001", Decimal("-5"), "shop_order")

    async def test_fractional_stars_rejected(self, award_service, mock_award_repo):
        """星星消费和调整只接受整数"""
        with pytest.raises(InvalidAmount):
            await award_service.spend(BalanceKind.STARS, "user_001", Decimal("1.5"), "reward_redeem")

        with pytest.raises(InvalidAmount):
            await award_service.admin_adjust(BalanceKind.STARS, "user_001", Decimal("-0.5"), "admin_1", "fix")

        mock_award_repo.lock_user.assert_not_called()
        mock_award_repo.append_entry.assert_not_called()

    async def test_whole_stars_spend(self, award_service, mock_award_repo):
        mock_award_repo.append_entry.return_value = self._entry(Decimal("-20"), Decimal("80"))

        result = await award_service.spend(BalanceKind.STARS, "user_001", Decimal("20.00"), "reward_redeem")

        assert result.success is True
        assert mock_award_repo.append_entry.call_args.args[2] == Decimal("-20")

    async def test_unknown_user(self, award_service, mock_award_repo):
        mock_award_repo.lock_user.return_value = None

        with pytest.raises(UserNotFound):
            await award_service.award_bonus("ghost", Decimal("10"))

    async def test_get_balances(self, award_service):
        snapshot = await award_service.get_balances("user_001")

        assert snapshot.wallet_balance == Decimal("50.00")
        assert snapshot.stars == Decimal("100")
