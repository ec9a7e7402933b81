"""
tests/test_points_service.py — Ledger, Leaderboard & Stats
===========================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubhub.database.models import PointSource, PointTransaction, Role, User
from clubhub.errors import NotFound, ValidationFailed
from clubhub.services import points_service


@pytest.fixture
def engine(db_engine):
    return db_engine


def _award(engine, user_id, amount, ref, source=PointSource.MANUAL) -> bool:
    with Session(engine) as session:
        credited = points_service.award_points(
            session, user_id=user_id, amount=amount, source=source, source_ref=ref,
        )
        session.commit()
        return credited


def _ledger_sum(engine, user_id) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.coalesce(func.sum(PointTransaction.amount), 0))
            .where(PointTransaction.user_id == user_id)
        )


class TestAwardPoints:
    def test_credit_updates_balance_and_ledger(self, engine, users):
        assert _award(engine, "u-member", 25, "x:1") is True
        with Session(engine) as session:
            assert session.get(User, "u-member").points == 25
        assert _ledger_sum(engine, "u-member") == 25

    def test_same_ref_is_idempotent(self, engine, users):
        assert _award(engine, "u-member", 25, "x:1") is True
        assert _award(engine, "u-member", 25, "x:1") is False
        with Session(engine) as session:
            assert session.get(User, "u-member").points == 25

    def test_same_ref_different_source_is_distinct(self, engine, users):
        _award(engine, "u-member", 10, "shared", PointSource.RECURRING_TASK)
        _award(engine, "u-member", 10, "shared", PointSource.WEEKLY_CHECKIN)
        assert _ledger_sum(engine, "u-member") == 20

    def test_duplicate_keeps_outer_transaction_usable(self, engine, users):
        with Session(engine) as session:
            points_service.award_points(
                session, user_id="u-member", amount=5,
                source=PointSource.MANUAL, source_ref="a",
            )
            points_service.award_points(
                session, user_id="u-member", amount=5,
                source=PointSource.MANUAL, source_ref="a",
            )
            points_service.award_points(
                session, user_id="u-member", amount=7,
                source=PointSource.MANUAL, source_ref="b",
            )
            session.commit()
        assert _ledger_sum(engine, "u-member") == 12

    def test_non_duplicate_integrity_error_propagates(self, engine, users):
        """Only a unique-key hit on the ledger counts as 'already credited'."""
        with Session(engine) as session:
            with pytest.raises(IntegrityError):
                points_service.award_points(
                    session, user_id="u-member", amount=None,
                    source=PointSource.MANUAL, source_ref="x:1",
                )
            session.rollback()
        with Session(engine) as session:
            assert session.get(User, "u-member").points == 0
        assert _ledger_sum(engine, "u-member") == 0


class TestManualAward:
    def test_credit_and_debit(self, engine, users):
        points_service.award_manual(
            engine, user_id="u-member", amount=30, reason="hackathon", actor_id="u-admin",
        )
        user = points_service.award_manual(
            engine, user_id="u-member", amount=-5, reason="correction", actor_id="u-admin",
        )
        assert user.points == 25
        assert _ledger_sum(engine, "u-member") == 25

    def test_debit_cannot_overdraw(self, engine, users):
        points_service.award_manual(
            engine, user_id="u-member", amount=10, reason="hackathon", actor_id="u-admin",
        )
        with pytest.raises(ValidationFailed, match="exceeds the balance"):
            points_service.award_manual(
                engine, user_id="u-member", amount=-11, reason="typo", actor_id="u-admin",
            )
        with Session(engine) as session:
            assert session.get(User, "u-member").points == 10
        assert _ledger_sum(engine, "u-member") == 10

    def test_debit_to_exactly_zero_allowed(self, engine, users):
        points_service.award_manual(
            engine, user_id="u-member", amount=10, reason="hackathon", actor_id="u-admin",
        )
        user = points_service.award_manual(
            engine, user_id="u-member", amount=-10, reason="revoked", actor_id="u-admin",
        )
        assert user.points == 0

    def test_negative_balance_rejected_by_schema(self, engine, users):
        with Session(engine) as session:
            session.get(User, "u-member").points = -1
            with pytest.raises(IntegrityError):
                session.commit()

    def test_zero_rejected(self, engine, users):
        with pytest.raises(ValidationFailed):
            points_service.award_manual(
                engine, user_id="u-member", amount=0, reason="", actor_id="u-admin",
            )

    def test_unknown_user(self, engine, users):
        with pytest.raises(NotFound):
            points_service.award_manual(
                engine, user_id="nobody", amount=5, reason="", actor_id="u-admin",
            )


class TestLeaderboard:
    def test_ranked_by_total_with_monthly(self, engine, users):
        _award(engine, "u-member", 50, "a")
        _award(engine, "u-member2", 80, "b")

        # An old credit counts toward the total but not this month
        with Session(engine) as session:
            session.add(PointTransaction(
                user_id="u-member", amount=100, source=PointSource.MANUAL.value,
                source_ref="old", created_at=datetime.now(UTC) - timedelta(days=62),
            ))
            session.get(User, "u-member").points += 100
            session.commit()

        board = points_service.get_leaderboard(engine, limit=3)
        assert [row["user_id"] for row in board[:2]] == ["u-member", "u-member2"]
        top = board[0]
        assert top["rank"] == 1
        assert top["total_points"] == 150
        assert top["monthly_points"] == 50
        assert board[1]["monthly_points"] == 80
        assert len(board) == 3

    def test_users_without_points_have_zero_monthly(self, engine, users):
        board = points_service.get_leaderboard(engine)
        assert all(row["monthly_points"] == 0 for row in board)
        assert len(board) == len(users)


class TestStats:
    def test_club_stats(self, engine, users):
        _award(engine, "u-member", 40, "a")
        stats = points_service.get_club_stats(engine)
        assert stats["total_users"] == len(users)
        assert stats["total_user_points"] == 40
        assert stats["total_tasks"] == 0

    def test_user_stats(self, engine, users):
        stats = points_service.get_user_stats(engine, "u-member")
        assert stats == {
            "total_points": 0,
            "completed_tasks": 0,
            "events_attended": 0,
            "recurring_completions": 0,
        }

    def test_user_stats_unknown(self, engine):
        with pytest.raises(NotFound):
            points_service.get_user_stats(engine, "ghost")

    def test_history_newest_first(self, engine, users):
        _award(engine, "u-member", 1, "first")
        _award(engine, "u-member", 2, "second")
        history = points_service.get_history(engine, "u-member")
        assert [h.source_ref for h in history] == ["second", "first"]


def test_roles_are_plain_strings(engine, users):
    with Session(engine) as session:
        assert session.get(User, "u-admin").role == Role.ADMIN.value
