"""Tests for the transactional scope helper."""

import pytest
from sqlalchemy import select

from taskflow_kernel.db.engine import get_engine, session_scope
from taskflow_kernel.models.directory import UserModel


def test_engine_is_sqlite(db_engine):
    assert get_engine() is db_engine
    assert db_engine.dialect.name == "sqlite"


def test_session_scope_rolls_back_on_error(db_engine):
    email = "rollback-check@example.com"

    with pytest.raises(ValueError):
        with session_scope() as session:
            session.add(UserModel(email=email, full_name="Rollback", role="PM"))
            session.flush()
            raise ValueError("boom")

    with session_scope() as session:
        assert session.scalars(select(UserModel).where(UserModel.email == email)).first() is None
