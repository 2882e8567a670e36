"""
asgi.py -- ASGI entry point for the SSO identity provider.

Run with:  uvicorn asgi:app
           python main.py serve
"""

from api.main import app

__all__ = ["app"]
