"""Database URL helpers for Alembic migrations.

DATABASE_URL is shared with the app (psycopg2 accepts both URLs and libpq
``key=value`` DSNs); SQLAlchemy needs a URL, so DSNs are converted here.
Kept apart from env.py so they can be tested without alembic.context.
"""

from __future__ import annotations

import os
import re
from urllib.parse import quote_plus

_DSN_TOKEN = re.compile(r"(\w+)\s*=\s*('(?:[^'\\]|\\.)*'|\S+)")
_ESCAPE = re.compile(r"\\(.)")


def _parse_libpq_dsn(dsn: str) -> dict[str, str]:
    """Parse a libpq ``key=value`` DSN, handling single-quoted values."""
    tokens: dict[str, str] = {}
    for key, raw in _DSN_TOKEN.findall(dsn):
        if raw.startswith("'") and raw.endswith("'") and len(raw) >= 2:
            raw = _ESCAPE.sub(r"\1", raw[1:-1])
        tokens[key] = raw
    return tokens


def _libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq DSN to a ``postgresql+psycopg2://`` URL.

    Unix-socket hosts (starting with ``/``) go in the ``host`` query param.
    """
    tokens = _parse_libpq_dsn(dsn)

    user = quote_plus(tokens.get("user", ""))
    password = quote_plus(tokens.get("password", ""))
    auth = f"{user}:{password}@" if password else (f"{user}@" if user else "")
    dbname = quote_plus(tokens.get("dbname", ""))
    host = tokens.get("host", "localhost")
    port = tokens.get("port", "5432")

    if host.startswith("/"):
        return f"postgresql+psycopg2://{auth}/{dbname}?host={quote_plus(host)}"

    return f"postgresql+psycopg2://{auth}{host}:{port}/{dbname}"


def _get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" not in url:
        return _libpq_dsn_to_url(url)
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg2://" + url[len(prefix):]
    return url
