"""User directory: model, schemas, CRUD service and router."""

from capacity_tracker.users.models import User

__all__ = ["User"]
