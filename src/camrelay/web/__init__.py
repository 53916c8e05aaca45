"""Web layer: FastAPI application serving the relay over HTTP."""

from camrelay.web.app import create_app

__all__ = ["create_app"]
