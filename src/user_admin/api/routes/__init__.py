"""API Routes package."""

from user_admin.api.routes import health, users

__all__ = ["health", "users"]
