"""
asgi.py -- Application assembly for DeptConnect.

The ASGI entry point servers import. api/main.py owns the app itself; this
module only re-exports it so deployment config never names an inner package.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
