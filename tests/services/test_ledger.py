"""Tests for the credit ledger: grants, spends, overwrites and their log entries."""

import pytest
from sqlalchemy import select

from promptverse.core.exceptions import InsufficientCreditsError, LedgerValidationError, UserNotFoundError
from promptverse.db.models.credit_log import CreditLog
from promptverse.db.models.user import User
from promptverse.services import ledger

pytestmark = pytest.mark.integration


async def _logs(session_factory, user_id: str) -> list[CreditLog]:
    async with session_factory() as session:
        result = await session.execute(
            select(CreditLog).where(CreditLog.user_id == user_id).order_by(CreditLog.created_at)
        )
        return list(result.scalars().all())


async def _user(session_factory, user_id: str) -> User:
    async with session_factory() as session:
        return await session.get(User, user_id)


class TestCredit:
    async def test_credit_adds_and_logs(self, session_factory, make_user):
        user = await make_user(credits=20)

        async with session_factory() as session:
            balance = await ledger.credit(session, user.id, 50, source="purchase", description="Top-up 50 credits")
            await session.commit()

        assert balance == 70
        assert (await _user(session_factory, user.id)).credits == 70

        logs = await _logs(session_factory, user.id)
        assert len(logs) == 1
        assert logs[0].amount == 50
        assert logs[0].type == "purchased"
        assert logs[0].source == "purchase"
        assert logs[0].balance_after == 70

    async def test_credit_sets_extra_fields_in_same_statement(self, session_factory, make_user):
        user = await make_user()

        async with session_factory() as session:
            await ledger.credit(
                session,
                user.id,
                500,
                source="subscription",
                fields={"current_plan": "pro", "subscription_status": "active"},
            )
            await session.commit()

        refreshed = await _user(session_factory, user.id)
        assert refreshed.credits == 500
        assert refreshed.current_plan == "pro"
        assert refreshed.subscription_status == "active"

    @pytest.mark.parametrize("amount", [0, -5, 1.5, True, "10"])
    async def test_credit_rejects_non_positive_integers(self, session_factory, make_user, amount):
        user = await make_user()
        async with session_factory() as session:
            with pytest.raises(LedgerValidationError):
                await ledger.credit(session, user.id, amount, source="purchase")

    async def test_credit_unknown_user(self, session_factory, engine):
        async with session_factory() as session:
            with pytest.raises(UserNotFoundError):
                await ledger.credit(session, "0" * 32, 10, source="purchase")


class TestDebit:
    async def test_debit_subtracts_and_tracks_usage(self, session_factory, make_user):
        user = await make_user(credits=100)

        async with session_factory() as session:
            balance = await ledger.debit(session, user.id, 30, source="report", description="Analysis of 30 prompts")
            await session.commit()

        assert balance == 70
        refreshed = await _user(session_factory, user.id)
        assert refreshed.credits == 70
        assert refreshed.credits_used == 30

        logs = await _logs(session_factory, user.id)
        assert [(log.amount, log.type, log.balance_after) for log in logs] == [(-30, "spent", 70)]

    async def test_debit_exact_balance_allowed(self, session_factory, make_user):
        user = await make_user(credits=15)
        async with session_factory() as session:
            assert await ledger.debit(session, user.id, 15, source="manual") == 0
            await session.commit()

    async def test_insufficient_credits_changes_nothing(self, session_factory, make_user):
        user = await make_user(credits=10)

        async with session_factory() as session:
            with pytest.raises(InsufficientCreditsError) as exc_info:
                await ledger.debit(session, user.id, 11, source="manual")
            await session.commit()

        assert exc_info.value.needed == 11
        assert exc_info.value.available == 10
        refreshed = await _user(session_factory, user.id)
        assert refreshed.credits == 10
        assert refreshed.credits_used == 0
        assert await _logs(session_factory, user.id) == []

    async def test_debit_unknown_user(self, session_factory, engine):
        async with session_factory() as session:
            with pytest.raises(UserNotFoundError):
                await ledger.debit(session, "f" * 32, 1, source="manual")


class TestOverwrite:
    async def test_overwrite_logs_delta(self, session_factory, make_user):
        user = await make_user(credits=320)

        async with session_factory() as session:
            balance = await ledger.overwrite(session, user.id, 500, source="subscription_update")
            await session.commit()

        assert balance == 500
        logs = await _logs(session_factory, user.id)
        assert [(log.amount, log.type, log.balance_after) for log in logs] == [(180, "adjusted", 500)]

    async def test_overwrite_downward_logs_negative_delta(self, session_factory, make_user):
        user = await make_user(credits=300)

        async with session_factory() as session:
            await ledger.overwrite(session, user.id, 0, source="subscription_cancel")
            await session.commit()

        logs = await _logs(session_factory, user.id)
        assert [(log.amount, log.balance_after) for log in logs] == [(-300, 0)]

    async def test_overwrite_same_balance_writes_no_log(self, session_factory, make_user):
        user = await make_user(credits=150)

        async with session_factory() as session:
            await ledger.overwrite(session, user.id, 150, source="subscription_update", fields={"current_plan": "starter"})
            await session.commit()

        assert await _logs(session_factory, user.id) == []
        assert (await _user(session_factory, user.id)).current_plan == "starter"

    async def test_overwrite_rejects_negative(self, session_factory, make_user):
        user = await make_user()
        async with session_factory() as session:
            with pytest.raises(LedgerValidationError):
                await ledger.overwrite(session, user.id, -1, source="subscription_update")


class TestHistory:
    async def test_history_newest_first_and_limited(self, session_factory, make_user):
        user = await make_user()

        for amount in (10, 20, 30):
            async with session_factory() as session:
                await ledger.credit(session, user.id, amount, source="purchase")
                await session.commit()

        async with session_factory() as session:
            entries = await ledger.history(session, user.id, limit=2)

        assert [e.amount for e in entries] == [30, 20]
        assert [e.balance_after for e in entries] == [60, 30]
