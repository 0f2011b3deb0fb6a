from typing import Annotated

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.cache import CacheManager
from blog_api.config import settings
from blog_api.database import get_db
from blog_api.exceptions import UnauthorizedError
from blog_api.security import decode_access_token
from blog_api.services.auth_service import UserDirectory
from blog_api.services.media import ImageStorage
from blog_api.services.note_service import NotesService
from blog_api.services.post_service import PostsService
from blog_api.services.query import page_to_skip


class PaginationParams:
    """
    Listing query parameters shared by every list endpoint.

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    page_size:
        Items per page, clamped to ``settings.MAX_PAGE_SIZE``.
    order:
        ``newest``, ``oldest`` or ``popular``; anything else is treated as
        ``newest`` by the service.
    search:
        Free-text filter, empty by default.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            alias="pageSize",
            description="Items per page; larger values are clamped.",
        ),
        order: str = Query("newest", description="newest | oldest | popular"),
        search: str = Query("", description="Case-insensitive text search."),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)
        self.order = order
        self.search = search

    @property
    def skip(self) -> int:
        return page_to_skip(self.page, self.page_size)


# ---------------------------------------------------------------------------
# Collaborators created in the application lifespan
# ---------------------------------------------------------------------------

def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


def get_media(request: Request) -> ImageStorage:
    return request.app.state.media


def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.users


def get_notes_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
) -> NotesService:
    return NotesService(db, cache)


def get_posts_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    media: ImageStorage = Depends(get_media),
) -> PostsService:
    return PostsService(db, cache, media)


# ---------------------------------------------------------------------------
# Identity guard
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


async def require_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    users: Annotated[UserDirectory, Depends(get_user_directory)],
) -> dict:
    """
    Verify the bearer token and return the authenticated user.

    Raises:
        UnauthorizedError: missing or invalid token, or unknown subject.
    """
    if credentials is None:
        raise UnauthorizedError("Authorization header required")
    try:
        payload = decode_access_token(credentials.credentials)
    except ValueError as exc:
        raise UnauthorizedError(str(exc)) from exc

    try:
        user = users.by_id(int(payload["sub"]))
    except (TypeError, ValueError):
        user = None
    if user is None:
        raise UnauthorizedError("Invalid token payload")
    return user.public()


CurrentUser = Annotated[dict, Depends(require_admin)]
