"""
asgi.py -- ASGI entry point for StoreRater.

Kept separate from api/main.py so servers and process managers have one
stable import path regardless of how the api/ package is organised.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app

__all__ = ["app"]
