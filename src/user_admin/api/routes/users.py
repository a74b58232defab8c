"""Users API routes."""

from typing import Annotated

from fastapi import APIRouter, Query, status
from pydantic.alias_generators import to_snake

from user_admin.api.dependencies import UserRepo
from user_admin.api.schemas.user import User, UserCreate, UserPage, UserUpdate
from user_admin.core.list_query import ListQuery, SortDir
from user_admin.utils.exceptions import ServerValidationError

router = APIRouter(prefix="/users", tags=["Users"])


def _build_query(
    enabled: bool | None,
    q: str | None,
    page: int,
    page_size: int,
    sort: str,
) -> ListQuery:
    field, _, direction = sort.partition(",")
    try:
        return ListQuery(
            enabled_filter=enabled,
            text_filter=q or "",
            page=page,
            page_size=page_size,
            sort_field=to_snake(field.strip()),
            sort_dir=SortDir((direction or "asc").strip().lower()),
        )
    except ValueError as e:
        raise ServerValidationError(
            str(e),
            field_details=[{"field": "query", "message": str(e)}],
        ) from e


@router.get("", response_model=UserPage)
async def list_users(
    user_repo: UserRepo,
    enabled: bool | None = None,
    q: str | None = None,
    page: int = 1,
    page_size: Annotated[int, Query(alias="pageSize")] = 25,
    sort: str = "id,asc",
) -> UserPage:
    """List users matching the filters, one page at a time."""
    query = _build_query(enabled, q, page, page_size, sort)
    rows, total = await user_repo.list_users(query)
    return UserPage(data=rows, page=query.page, page_size=query.page_size, total=total)


@router.get("/{user_id}", response_model=User)
async def get_user(user_id: str, user_repo: UserRepo) -> User:
    """Get a single user."""
    return await user_repo.get_by_id(user_id)


@router.post("", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(body: UserCreate, user_repo: UserRepo) -> User:
    """Create a new user."""
    return await user_repo.create(body.model_dump())


@router.patch("/{user_id}", response_model=User)
async def update_user(user_id: str, body: UserUpdate, user_repo: UserRepo) -> User:
    """Update some or all editable fields of a user."""
    return await user_repo.update(user_id, body.model_dump(exclude_unset=True))
