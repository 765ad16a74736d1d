"""
Wallet ledger: postings, conservation, transfers, gateway credits and withdrawals
"""

import asyncio

import pytest
from sqlalchemy import func, select

from scrapcore.core.constants import (
    AccountStatus,
    EntryType,
    OwnerType,
    PayoutMethod,
    TxCategory,
    TxStatus,
    WithdrawalStatus,
)
from scrapcore.core.db import Database
from scrapcore.core.errors import (
    AccountNotFoundError,
    ConflictError,
    InsufficientFundsError,
    ValidationError,
)
from scrapcore.models.wallet import WalletTransaction, WithdrawalRequest
from scrapcore.services import ledger
from scrapcore.services.ledger import AccountKey


async def _entries(session, key):
    data = await ledger.list_transactions(session, key, limit=200)
    return data["items"]


class TestPostings:
    """Single debit/credit units"""

    async def test_credit_then_debit_snapshots(self, session, requester_wallet):
        key = await requester_wallet("req-1", 1000)

        credit = await ledger.credit(session, key, 250, "bonus")
        assert credit.entry_type == EntryType.CREDIT
        assert credit.amount == 250
        assert (credit.balance_before, credit.balance_after) == (1000, 1250)

        debit = await ledger.debit(session, key, 300, "payment")
        assert debit.entry_type == EntryType.DEBIT
        assert debit.amount == -300
        assert (debit.balance_before, debit.balance_after) == (1250, 950)

        assert await ledger.get_balance(session, key) == 950

    async def test_overdraft_rejected_without_entry(self, session, collector_wallet):
        key = await collector_wallet("col-1", 100)

        with pytest.raises(InsufficientFundsError) as exc:
            await ledger.debit(session, key, 150)

        assert exc.value.shortfall == 50
        assert await ledger.get_balance(session, key) == 100
        assert await _entries(session, key) == []

    async def test_missing_account(self, session):
        with pytest.raises(AccountNotFoundError):
            await ledger.credit(session, AccountKey(OwnerType.REQUESTER, "nobody"), 10)

    async def test_frozen_account_rejects_movements(self, session, requester_wallet):
        key = await requester_wallet("req-2", 500)
        await ledger.set_account_status(session, key, AccountStatus.FROZEN)

        with pytest.raises(ConflictError):
            await ledger.credit(session, key, 10)
        with pytest.raises(ConflictError):
            await ledger.debit(session, key, 10)

        assert await ledger.get_balance(session, key) == 500

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amounts(self, session, requester_wallet, amount):
        key = await requester_wallet("req-3", 500)
        with pytest.raises(ValidationError):
            await ledger.credit(session, key, amount)

    async def test_validate_balance_names_shortfall(self, session, collector_wallet):
        key = await collector_wallet("col-2", 60)

        with pytest.raises(InsufficientFundsError) as exc:
            await ledger.validate_balance(session, key, 100)

        assert "Shortfall: 40" in str(exc.value)
        assert (await ledger.validate_balance(session, key, 60)).balance == 60

    async def test_get_or_open_is_idempotent(self, session):
        key = AccountKey(OwnerType.COLLECTOR, "col-new")
        first = await ledger.get_or_open_account(session, key)
        second = await ledger.get_or_open_account(session, key)
        assert first.id == second.id
        assert second.balance == 0


class TestConservation:
    """balance == opening balance + signed sum of entries"""

    async def test_sequence_of_movements_reconciles(self, session, requester_wallet, collector_wallet):
        req = await requester_wallet("req-10", 200)
        col = await collector_wallet("col-10", 1000)

        await ledger.credit(session, req, 75)
        await ledger.debit(session, col, 120)
        await ledger.transfer(session, col, req, 300)
        await ledger.debit(session, req, 50)

        for key in (req, col):
            report = await ledger.reconcile_account(session, key)
            assert report["consistent"], report

        assert await ledger.get_balance(session, req) == 200 + 75 + 300 - 50
        assert await ledger.get_balance(session, col) == 1000 - 120 - 300

    async def test_concurrent_debits_never_lose_updates(self, database, collector_wallet):
        key = await collector_wallet("col-11", 500)

        async def attempt():
            async with database.session() as s:
                try:
                    await ledger.debit(s, key, 50)
                    return True
                except InsufficientFundsError:
                    return False

        results = await asyncio.gather(*(attempt() for _ in range(12)))

        assert results.count(True) == 10
        async with database.session() as s:
            assert await ledger.get_balance(s, key) == 0
            assert len(await _entries(s, key)) == 10
            assert (await ledger.reconcile_account(s, key))["consistent"]


class TestTransfer:
    """Two legs, one unit"""

    async def test_legs_share_tx_id(self, session, requester_wallet, collector_wallet):
        col = await collector_wallet("col-20", 800)
        req = await requester_wallet("req-20", 0)

        out_entry, in_entry = await ledger.transfer(session, col, req, 300, order_id=7)

        assert out_entry.tx_id == in_entry.tx_id
        assert out_entry.amount == -300 and in_entry.amount == 300
        assert out_entry.order_id == in_entry.order_id == 7
        assert await ledger.get_balance(session, col) == 500
        assert await ledger.get_balance(session, req) == 300

    async def test_insufficient_source_moves_nothing(self, session, requester_wallet, collector_wallet):
        col = await collector_wallet("col-21", 100)
        req = await requester_wallet("req-21", 0)

        with pytest.raises(InsufficientFundsError):
            await ledger.transfer(session, col, req, 300)

        assert await ledger.get_balance(session, col) == 100
        assert await ledger.get_balance(session, req) == 0

    async def test_missing_destination_rolls_back_debit(self, session, collector_wallet):
        col = await collector_wallet("col-22", 500)

        with pytest.raises(AccountNotFoundError):
            await ledger.transfer(session, col, AccountKey(OwnerType.REQUESTER, "ghost"), 200)

        assert await ledger.get_balance(session, col) == 500
        assert await _entries(session, col) == []

    async def test_same_wallet_rejected(self, session, collector_wallet):
        col = await collector_wallet("col-23", 500)
        with pytest.raises(ValidationError):
            await ledger.transfer(session, col, col, 10)


class TestExternalPaymentCredit:
    """Recharge credits are idempotent on the gateway payment id"""

    async def test_same_payment_credited_once(self, session, requester_wallet):
        key = await requester_wallet("req-30", 0)

        first, created = await ledger.credit_from_external_payment(
            session, key, 500, "pay_ABC", external_order_id="order_1"
        )
        again, created_again = await ledger.credit_from_external_payment(
            session, key, 500, "pay_ABC", external_order_id="order_1"
        )

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert await ledger.get_balance(session, key) == 500

        res = await session.execute(
            select(func.count())
            .select_from(WalletTransaction)
            .where(
                WalletTransaction.category == TxCategory.RECHARGE,
                WalletTransaction.entry_type == EntryType.CREDIT,
            )
        )
        assert res.scalar_one() == 1

    async def test_payment_bound_to_first_wallet(self, session, requester_wallet, collector_wallet):
        req = await requester_wallet("req-31", 0)
        col = await collector_wallet("col-31", 0)

        await ledger.credit_from_external_payment(session, req, 100, "pay_XYZ")
        with pytest.raises(ConflictError):
            await ledger.credit_from_external_payment(session, col, 100, "pay_XYZ")

        assert await ledger.get_balance(session, col) == 0


class TestWithdrawal:
    """Debit and payout request are created together"""

    async def test_request_creates_pending_debit(self, session, collector_wallet):
        key = await collector_wallet("col-40", 1000)

        withdrawal, entry = await ledger.request_withdrawal(
            session, key, 400, {"upi_id": "collector@upi"}
        )

        assert withdrawal.request_id.startswith("WDR-")
        assert withdrawal.status == WithdrawalStatus.PENDING
        assert withdrawal.transaction_id == entry.id
        assert withdrawal.payout_details["method"] == PayoutMethod.UPI
        assert entry.category == TxCategory.WITHDRAWAL
        assert entry.status == TxStatus.PENDING
        assert entry.amount == -400
        assert await ledger.get_balance(session, key) == 600

    async def test_below_minimum(self, session, collector_wallet):
        key = await collector_wallet("col-41", 1000)
        with pytest.raises(ValidationError):
            await ledger.request_withdrawal(session, key, 50, {"upi_id": "x@upi"})

    async def test_payout_details_required(self, session, collector_wallet):
        key = await collector_wallet("col-42", 1000)
        with pytest.raises(ValidationError):
            await ledger.request_withdrawal(session, key, 200, {"bank_name": "SBI"})

    async def test_insufficient_balance_leaves_no_request(self, session, requester_wallet):
        key = await requester_wallet("req-43", 150)

        with pytest.raises(InsufficientFundsError):
            await ledger.request_withdrawal(session, key, 200, {"account_number": "123456789"})

        res = await session.execute(select(func.count()).select_from(WithdrawalRequest))
        assert res.scalar_one() == 0
        assert await ledger.get_balance(session, key) == 150


class TestDatabaseLifecycle:
    async def test_use_before_open(self, tmp_path):
        db = Database(f"sqlite+aiosqlite:///{tmp_path / 'unopened.db'}")
        with pytest.raises(RuntimeError):
            db.session()
        with pytest.raises(RuntimeError):
            await db.create_all()

    async def test_closed_database_refuses_sessions(self, database):
        await database.close()
        with pytest.raises(RuntimeError):
            database.session()
