"""FastAPI application with the production wiring.

Serve with ``uvicorn plantvision.api.app:app`` or ``python -m plantvision``.
"""

from .factory import create_app

app = create_app()
