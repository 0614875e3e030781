"""Tests for accounts and the wallet ledger."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import update

from tourney.models.user import User
from tourney.models.wallet import TransactionType, WalletTransaction
from tourney.services.user import AccountService
from tourney.services.wallet import WalletService, to_money
from tourney.utils.errors import InsufficientBalanceError, NotFoundError, ValidationError


class TestToMoney:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (Decimal("10"), Decimal("10.00")),
            (5, Decimal("5.00")),
            ("12.345", Decimal("12.34")),
            ("0", Decimal("0.00")),
        ],
    )
    def test_normalises(self, value, expected):
        assert to_money(value) == expected

    @pytest.mark.parametrize("value", [1.5, True, "abc", "-1", "NaN", "Infinity"])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            to_money(value)


class TestWalletTransferUnit:
    """Transfer arithmetic against a mocked session."""

    @pytest.fixture
    def wallet_service(self):
        mock_session = MagicMock()
        mock_session.add = MagicMock()
        mock_session.flush = AsyncMock()
        return WalletService(mock_session)

    @pytest.mark.asyncio
    async def test_credit_records_before_and_after(self, wallet_service):
        user = User(id="user-1", username="ana", email="a@example.com", wallet_balance=Decimal("10.00"))

        tx = await wallet_service.credit("user-1", Decimal("5"), description="Top up", user=user)

        assert user.wallet_balance == Decimal("15.00")
        assert tx.balance_before == Decimal("10.00")
        assert tx.balance_after == Decimal("15.00")
        assert tx.tx_type is TransactionType.CREDIT
        assert WalletService.verify_integrity(tx)
        wallet_service.session.add.assert_called_once_with(tx)

    @pytest.mark.asyncio
    async def test_debit_over_balance_changes_nothing(self, wallet_service):
        user = User(id="user-1", username="ana", email="a@example.com", wallet_balance=Decimal("3.00"))

        with pytest.raises(InsufficientBalanceError):
            await wallet_service.debit("user-1", Decimal("5"), description="Fee", user=user)

        assert user.wallet_balance == Decimal("3.00")
        wallet_service.session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, wallet_service):
        with pytest.raises(ValidationError, match="zero"):
            await wallet_service.credit("user-1", Decimal("0"), description="Nothing")


class TestAccounts:
    @pytest.mark.asyncio
    async def test_create_user_books_opening_balance(self, accounts, make_user):
        user = await make_user(balance="75")

        assert user.wallet_balance == Decimal("75.00")
        txs = await accounts.get_transactions(user.id)
        assert len(txs) == 1
        assert txs[0].description == "Opening balance"
        assert txs[0].tx_type is TransactionType.CREDIT

    @pytest.mark.asyncio
    async def test_zero_opening_balance_has_no_entry(self, accounts, make_user):
        user = await make_user()

        assert await accounts.get_transactions(user.id) == []

    @pytest.mark.asyncio
    async def test_duplicate_email(self, accounts):
        await accounts.create_user("ana", "Ana@Example.com")

        with pytest.raises(ValidationError, match="already registered"):
            await accounts.create_user("other", "ana@example.com")

        assert (await accounts.find_by_email("ANA@example.com")).username == "ana"

    @pytest.mark.asyncio
    async def test_update_username(self, accounts, make_user):
        user = await make_user(username="old")

        updated = await accounts.update_username(user.id, "  new  ")

        assert updated.username == "new"
        assert (await accounts.get_user(user.id)).username == "new"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", "x" * 51])
    async def test_update_username_rejects(self, accounts, make_user, name):
        user = await make_user()

        with pytest.raises(ValidationError):
            await accounts.update_username(user.id, name)

    @pytest.mark.asyncio
    async def test_unknown_user(self, accounts):
        with pytest.raises(NotFoundError):
            await accounts.get_user("nobody")
        with pytest.raises(NotFoundError):
            await accounts.get_transactions("nobody")
        with pytest.raises(NotFoundError):
            await accounts.simulate_deposit("nobody")


class TestSimulatedMovements:
    @pytest.mark.asyncio
    async def test_deposit_and_withdraw(self, accounts, make_user):
        user = await make_user()

        deposit = await accounts.simulate_deposit(user.id)
        withdrawal = await accounts.simulate_withdrawal(user.id)

        assert deposit.amount == Decimal("100.00")
        assert deposit.description == "Simulated deposit"
        assert withdrawal.amount == Decimal("50.00")
        assert withdrawal.balance_before == Decimal("100.00")
        assert withdrawal.balance_after == Decimal("50.00")
        assert await accounts.get_balance(user.id) == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_withdraw_more_than_balance(self, accounts, make_user):
        user = await make_user(balance="20")

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await accounts.simulate_withdrawal(user.id)

        assert exc_info.value.details == {"balance": "20.00", "required": "50.00"}
        assert await accounts.get_balance(user.id) == Decimal("20.00")
        assert len(await accounts.get_transactions(user.id)) == 1

    @pytest.mark.asyncio
    async def test_configured_amounts(self, session_factory, make_user):
        service = AccountService(
            session_factory, deposit_amount=Decimal("250"), withdrawal_amount=Decimal("25")
        )
        user = await make_user()

        await service.simulate_deposit(user.id)
        await service.simulate_withdrawal(user.id)

        assert await service.get_balance(user.id) == Decimal("225.00")

    @pytest.mark.asyncio
    async def test_transaction_filter_and_paging(self, accounts, make_user):
        user = await make_user()
        for _ in range(3):
            await accounts.simulate_deposit(user.id)
        await accounts.simulate_withdrawal(user.id)

        debits = await accounts.get_transactions(user.id, tx_type=TransactionType.DEBIT)
        page = await accounts.get_transactions(user.id, limit=2)

        assert [tx.description for tx in debits] == ["Simulated withdrawal"]
        assert len(page) == 2


class TestReconciliation:
    @pytest.mark.asyncio
    async def test_ledger_explains_balance(self, accounts, entries, settlement, make_user, make_tournament):
        user = await make_user(balance="100")
        tournament = await make_tournament(entry_fee=Decimal("30"), prize_pool=Decimal("200"))
        await entries.join_tournament(user.id, tournament.id, display_name="Solo")
        await settlement.settle_winner(tournament.id, user.id)
        await accounts.simulate_withdrawal(user.id)

        report = await accounts.reconcile(user.id)

        assert report.balance == Decimal("220.00")
        assert report.ledger_balance == Decimal("220.00")
        assert report.entries == 4
        assert report.is_consistent

    @pytest.mark.asyncio
    async def test_detects_drift_and_tampering(self, accounts, make_user, session_factory):
        user = await make_user(balance="40")
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(User).where(User.id == user.id).values(wallet_balance=Decimal("90"))
                )
                await session.execute(
                    update(WalletTransaction)
                    .where(WalletTransaction.user_id == user.id)
                    .values(amount=Decimal("45"))
                )

        report = await accounts.reconcile(user.id)

        assert not report.is_consistent
        assert report.drift == Decimal("45.00")
        assert len(report.tampered_entries) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "moves",
        [
            [],
            ["withdraw"],
            ["deposit", "withdraw", "withdraw", "withdraw"],
            ["withdraw", "deposit", "deposit", "withdraw"],
        ],
    )
    async def test_any_sequence_stays_reconciled(self, accounts, make_user, moves):
        user = await make_user(balance="10")
        for move in moves:
            try:
                if move == "deposit":
                    await accounts.simulate_deposit(user.id)
                else:
                    await accounts.simulate_withdrawal(user.id)
            except InsufficientBalanceError:
                pass

        report = await accounts.reconcile(user.id)

        assert report.is_consistent
        assert report.balance >= 0
