"""
asgi.py -- ASGI entry point for the auth service.

The application itself is assembled in api/main.py; this module is the stable
import path servers point at.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app

__all__ = ["app"]
