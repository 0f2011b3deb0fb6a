"""
Content service: the lifecycle and cache-aside logic shared by notes
and posts.

Design notes
------------
- Every item is either live (``deleted_at IS NULL``) or deleted.  Only
  ``restore`` and ``find_all_deleted`` look at deleted items; every other
  path reports them as not found.
- Reads go through the cache first.  Listing keys are
  ``{namespace}:{skip}:{take}:{order}:{search}`` (deleted listings add a
  ``deleted`` segment) and single-item keys are ``{item_prefix}:{id}``.
- Writes commit first and invalidate afterwards: the whole listing
  family ``{namespace}:*`` plus, when the item already existed, its
  single-item key.  Invalidation errors propagate to the caller.
- A read that missed can still write its pre-mutation result back after
  a concurrent invalidation finished.  That entry lives at most
  ``settings.CACHE_TTL`` seconds.
- No lock guards check-then-write; two concurrent deletes may both pass
  the live check and the database decides the final row.
"""
import logging
import re
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.cache import CacheManager
from blog_api.config import settings
from blog_api.exceptions import BadRequestError, NotFoundError
from blog_api.models import ContentMixin, utcnow
from blog_api.services.query import ListingQuery

logger = logging.getLogger(__name__)

_OBJECT_ID_RE = re.compile(r"^[0-9a-f]{24}$")

# What the rich-text editor submits when the user cleared everything.
EMPTY_RICH_TEXT = "<p><br></p>"

# Internal attribute name -> name used in the API and in error messages.
REQUIRED_FIELDS: dict[str, str] = {"title": "title", "theme_id": "themeId"}


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def is_valid_object_id(value: str) -> bool:
    return bool(_OBJECT_ID_RE.match(value or ""))


def validate_object_id(value: str) -> str:
    if not is_valid_object_id(value):
        raise BadRequestError("Invalid ID format")
    return value


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def validate_content_fields(data: Mapping[str, Any]) -> None:
    """
    Reject blank required fields and an empty rich-text body.

    Only fields present in *data* are checked, so the same rules apply to
    full creates and partial updates.
    """
    for field, public_name in REQUIRED_FIELDS.items():
        if field in data and _is_blank(data[field]):
            raise BadRequestError(f'Поле "{public_name}" не может быть пустым')
    if "content" in data:
        content = data["content"]
        if content is None or content.strip() == EMPTY_RICH_TEXT:
            raise BadRequestError('Поле "content" не может быть пустым')


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# Generic service
# ---------------------------------------------------------------------------

class ContentService:
    """
    CRUD + soft-delete + view counting over one content model.

    Subclasses set the class attributes below and may extend the hooks
    ``_select``, ``_extra_matches``, ``_prepare``, ``_apply`` and
    ``_to_dict`` to add model-specific fields.
    """

    model: type[ContentMixin]
    label: str
    namespace: str
    item_prefix: str
    update_error: str

    # Columns a create/update payload may set.
    editable_fields: tuple[str, ...] = ("title", "content", "theme_id")

    def __init__(self, db: AsyncSession, cache: CacheManager, ttl: int | None = None) -> None:
        self.db = db
        self.cache = cache
        self.ttl = settings.CACHE_TTL if ttl is None else ttl

    # ------------------------------------------------------------------
    # Cache keys and invalidation
    # ------------------------------------------------------------------

    def listing_key(self, query: ListingQuery, *, deleted: bool = False) -> str:
        prefix = f"{self.namespace}:deleted" if deleted else self.namespace
        return query.cache_key(prefix)

    def item_key(self, item_id: str) -> str:
        return f"{self.item_prefix}:{item_id}"

    async def invalidate(self, item_id: str | None = None) -> None:
        await self.cache.delete_pattern(f"{self.namespace}:*")
        if item_id is not None:
            await self.cache.delete(self.item_key(item_id))

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _select(self):
        return select(self.model)

    def _extra_matches(self, query: ListingQuery) -> tuple:
        return ()

    def _prepare(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Validate a create/update payload and return the fields to write."""
        fields = {k: v for k, v in data.items() if k in self.editable_fields}
        validate_content_fields(fields)
        return fields

    def _apply(self, item: ContentMixin, fields: Mapping[str, Any]) -> None:
        for field, value in fields.items():
            setattr(item, field, value)

    def _to_dict(self, item: ContentMixin) -> dict:
        return {
            "id": item.id,
            "title": item.title,
            "content": item.content,
            "themeId": item.theme_id,
            "views": item.views,
            "createdAt": _iso(item.created_at),
            "deletedAt": _iso(item.deleted_at),
        }

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _fetch(self, item_id: str) -> ContentMixin | None:
        result = await self.db.execute(self._select().where(self.model.id == item_id))
        return result.scalar_one_or_none()

    async def _get_live(self, item_id: str) -> ContentMixin:
        validate_object_id(item_id)
        item = await self._fetch(item_id)
        if item is None or item.is_deleted:
            raise NotFoundError(f"{self.label} not found")
        return item

    async def _list(self, query: ListingQuery, *, deleted: bool) -> dict:
        cache_key = self.listing_key(query, deleted=deleted)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        where = query.where(self.model, deleted=deleted, extra_matches=self._extra_matches(query))

        count_q = select(func.count()).select_from(self.model).where(where)
        total: int = (await self.db.execute(count_q)).scalar_one()

        page_q = (
            self._select()
            .where(where)
            .order_by(*query.order_by(self.model))
            .offset(query.skip)
            .limit(query.take)
        )
        rows = (await self.db.execute(page_q)).scalars().all()

        result = {"items": [self._to_dict(row) for row in rows], "total": total}
        await self.cache.set(cache_key, result, ttl=self.ttl)
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_all(
        self,
        skip: int | None = 0,
        take: int | None = None,
        order: str | None = "newest",
        search: str | None = "",
    ) -> dict:
        """Return ``{"items", "total"}`` for live items."""
        return await self._list(ListingQuery.build(skip, take, order, search), deleted=False)

    async def find_all_deleted(
        self,
        skip: int | None = 0,
        take: int | None = None,
        order: str | None = "newest",
        search: str | None = "",
    ) -> dict:
        """Return ``{"items", "total"}`` for soft-deleted items."""
        return await self._list(ListingQuery.build(skip, take, order, search), deleted=True)

    async def find_one(self, item_id: str) -> dict:
        validate_object_id(item_id)
        cache_key = self.item_key(item_id)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        item = await self._get_live(item_id)
        data = self._to_dict(item)
        await self.cache.set(cache_key, data, ttl=self.ttl)
        return data

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _insert(self, fields: Mapping[str, Any]) -> dict:
        item = self.model(views=0, deleted_at=None)
        self._apply(item, fields)
        self.db.add(item)
        await self.db.commit()
        logger.info("%s %s created", self.label, item.id)

        await self.invalidate()
        return self._to_dict(item)

    async def create(self, data: Mapping[str, Any]) -> dict:
        return await self._insert(self._prepare(data))

    async def _save_update(self, item: ContentMixin, fields: Mapping[str, Any]) -> dict:
        self._apply(item, fields)
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Updating %s %s failed", self.label, item.id)
            raise BadRequestError(self.update_error) from exc

        await self.invalidate(item.id)
        return self._to_dict(item)

    async def update(self, item_id: str, data: Mapping[str, Any]) -> dict:
        item = await self._get_live(item_id)
        return await self._save_update(item, self._prepare(data))

    async def delete(self, item_id: str) -> dict:
        item = await self._get_live(item_id)
        item.deleted_at = utcnow()
        await self.db.commit()
        logger.info("%s %s deleted", self.label, item_id)

        await self.invalidate(item_id)
        return {"message": f"{self.label} {item_id} deleted successfully"}

    async def restore(self, item_id: str) -> dict:
        validate_object_id(item_id)
        item = await self._fetch(item_id)
        if item is None:
            raise NotFoundError(f"{self.label} not found")
        if not item.is_deleted:
            raise BadRequestError(f"{self.label} is not deleted")

        item.deleted_at = None
        await self.db.commit()
        logger.info("%s %s restored", self.label, item_id)

        await self.invalidate(item_id)
        return self._to_dict(item)

    async def increment_views(self, item_id: str) -> dict:
        """
        Add one view.  The increment is a single UPDATE evaluated by the
        database, so concurrent calls never lose a count.
        """
        item = await self._get_live(item_id)
        stmt = (
            update(self.model)
            .where(self.model.id == item_id)
            .values(views=self.model.views + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.commit()
        await self.db.refresh(item, ["views"])

        await self.invalidate(item_id)
        return self._to_dict(item)
