"""Tests for migrations/env_helpers.py DSN-to-URL conversion."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from migrations.env_helpers import _get_database_url, _libpq_dsn_to_url, _parse_libpq_dsn


class TestParseLibpqDsn:
    def test_plain_tokens(self):
        assert _parse_libpq_dsn("dbname=bot user=u host=h") == {
            "dbname": "bot",
            "user": "u",
            "host": "h",
        }

    def test_quoted_value(self):
        assert _parse_libpq_dsn("password='a b' user=u")["password"] == "a b"


class TestLibpqDsnToUrl:
    def test_cloudsql_socket(self):
        dsn = "dbname=plantvision user=bot-sa password=s3cret host=/cloudsql/proj:us-central1:inst"
        result = _libpq_dsn_to_url(dsn)
        assert result == (
            "postgresql+psycopg2://bot-sa:s3cret@/plantvision"
            "?host=%2Fcloudsql%2Fproj%3Aus-central1%3Ainst"
        )

    def test_tcp_host(self):
        dsn = "dbname=plantvision user=admin password=pw host=localhost port=5432"
        result = _libpq_dsn_to_url(dsn)
        assert result == "postgresql+psycopg2://admin:pw@localhost:5432/plantvision"

    def test_default_port(self):
        dsn = "dbname=db user=u password=p host=myhost"
        assert _libpq_dsn_to_url(dsn) == "postgresql+psycopg2://u:p@myhost:5432/db"

    def test_no_password(self):
        dsn = "dbname=db user=u host=h port=5433"
        assert _libpq_dsn_to_url(dsn) == "postgresql+psycopg2://u@h:5433/db"

    def test_special_chars_encoded(self):
        dsn = "dbname=db user=u@domain password=p@ss=word host=h port=5432"
        result = _libpq_dsn_to_url(dsn)
        assert "u%40domain" in result
        assert "p%40ss%3Dword" in result

    def test_quoted_password_with_spaces(self):
        dsn = "dbname=db user=u password='p@ss w0rd' host=h port=5432"
        assert "p%40ss+w0rd" in _libpq_dsn_to_url(dsn)

    def test_quoted_password_with_escaped_quote(self):
        dsn = r"dbname=db user=u password='it\'s' host=h port=5432"
        assert "it%27s" in _libpq_dsn_to_url(dsn)


class TestGetDatabaseUrl:
    def test_url_passthrough(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql+psycopg2://u:p@h/db"}):
            assert _get_database_url() == "postgresql+psycopg2://u:p@h/db"

    @pytest.mark.parametrize("scheme", ["postgres", "postgresql"])
    def test_driver_added(self, scheme):
        with patch.dict(os.environ, {"DATABASE_URL": f"{scheme}://u:p@h/db"}):
            assert _get_database_url() == "postgresql+psycopg2://u:p@h/db"

    def test_dsn_converted(self):
        dsn = "dbname=plantvision user=sa password=pw host=/cloudsql/p:r:i"
        with patch.dict(os.environ, {"DATABASE_URL": dsn}):
            assert _get_database_url().startswith("postgresql+psycopg2://")

    def test_missing(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError):
            _get_database_url()
