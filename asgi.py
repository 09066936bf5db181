"""
asgi.py -- Application assembly for the Natours auth backend.

Tour and user CRUD routers live outside this package; a deployment mounts
them here next to the auth router, guarding them with
auth.dependencies.get_current_account / require_roles.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
