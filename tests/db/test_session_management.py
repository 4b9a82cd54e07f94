"""
Tests for engine and session management.
"""

import pytest
from sqlalchemy import func, select

from procurement_kernel.db.engine import (
    get_engine,
    get_session_factory,
    reset_engine,
    session_scope,
)
from procurement_modules.receiving.orm import OrderingDocumentModel


def _document_count(session) -> int:
    return session.execute(select(func.count()).select_from(OrderingDocumentModel)).scalar_one()


class TestSessionScope:
    def test_commits_on_exit(self, session, purchase_order, actor_id):
        with session_scope() as scoped:
            scoped.add(OrderingDocumentModel.from_dto(purchase_order, actor_id))

        assert _document_count(session) == 1

    def test_rolls_back_on_error(self, session, purchase_order, actor_id, captured_logs):
        with pytest.raises(RuntimeError):
            with session_scope() as scoped:
                scoped.add(OrderingDocumentModel.from_dto(purchase_order, actor_id))
                scoped.flush()
                raise RuntimeError("abort")

        assert _document_count(session) == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())


class TestEngineLifecycle:
    def test_factory_sessions_share_the_database(self, session, purchase_order, actor_id):
        factory = get_session_factory()
        with factory() as other:
            other.add(OrderingDocumentModel.from_dto(purchase_order, actor_id))
            other.commit()

        assert _document_count(session) == 1

    def test_uninitialized_engine(self):
        reset_engine()

        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()
