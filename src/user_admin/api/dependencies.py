"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from user_admin.config import Settings, get_settings
from user_admin.db.repositories.user import UserRepository


def get_user_repository(request: Request) -> UserRepository:
    """Get the user repository attached to the application."""
    return request.app.state.user_repository


# Type aliases for cleaner dependency injection
UserRepo = Annotated[UserRepository, Depends(get_user_repository)]
AppSettings = Annotated[Settings, Depends(get_settings)]
