"""Run the webhook server: ``python -m plantvision``.

Listens on 0.0.0.0:$PORT (default 3001).
"""

from __future__ import annotations

import os

import uvicorn

from plantvision.domain.errors import ConfigurationError

DEFAULT_PORT = 3001


def get_port() -> int:
    raw = os.environ.get("PORT", "")
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"PORT must be an integer, got {raw!r}") from None


def main() -> None:
    uvicorn.run(
        "plantvision.api.app:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=get_port(),
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
