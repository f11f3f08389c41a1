"""
Configuration validation and expiry policy tests.
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.sql.elements import ColumnElement

from leasegate.config import MAX_LEASE_ID, Settings
from leasegate.db.base import check_lease_timeout, timeout_mismatch
from leasegate.engine import next_expiry
from leasegate.engine.core import _is_unavailable
from leasegate.utils.time import ensure_utc


def test_defaults_match_reference_deployment():
    config = Settings(_env_file=None)
    assert config.lease_timeout == timedelta(minutes=2)
    assert config.id_min_value == 1
    assert config.id_max_value == MAX_LEASE_ID == 2**31 - 1


def test_rejects_non_positive_timeout():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, lease_timeout_seconds=0)


def test_rejects_inverted_id_range():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, id_min_value=10, id_max_value=5)


def test_rejects_id_range_beyond_32_bits():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, id_max_value=MAX_LEASE_ID + 1)


def test_rejects_unsupported_database():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, database_url="mysql://localhost/db")


def test_next_expiry_adds_timeout():
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert next_expiry(now, timedelta(seconds=120)) == now + timedelta(seconds=120)


def test_next_expiry_builds_sql_expression():
    expression = next_expiry(func.now(), timedelta(seconds=120))
    assert isinstance(expression, ColumnElement)
    assert "now()" in str(expression)


def test_ensure_utc_handles_naive_and_offset_values():
    naive = datetime(2026, 3, 1, 12, 0)
    assert ensure_utc(naive).tzinfo is timezone.utc

    offset = datetime(2026, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(offset) == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_connectivity_errors_are_unavailable():
    assert _is_unavailable(ConnectionRefusedError())
    assert _is_unavailable(TimeoutError())
    assert not _is_unavailable(ValueError())


def test_timeout_mismatch_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="leasegate.db.base"):
        assert timeout_mismatch(300.0, 120.0) is True
    assert "lease_timeout()" in caplog.text
    assert "300.0s" in caplog.text


def test_timeout_agreement_is_silent(caplog):
    with caplog.at_level(logging.WARNING, logger="leasegate.db.base"):
        assert timeout_mismatch(120.0, 120) is False
        assert timeout_mismatch(None, 120) is False
    assert caplog.text == ""


@pytest.mark.asyncio
async def test_check_lease_timeout_skips_stores_without_function(engine):
    if engine.dialect.name == "postgresql":
        pytest.skip("test schema is built without the migration")
    assert await check_lease_timeout(engine) is None
