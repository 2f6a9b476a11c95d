"""
asgi.py -- ASGI entry point for authcore.

Run with:  uvicorn asgi:app --host 0.0.0.0 --port 8000

Keeps the server target stable while api/main.py owns the app itself.
"""

from api.main import app

__all__ = ["app"]
