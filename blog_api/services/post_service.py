"""
Post service: content items with an ordered tag list and an image.

Posts arrive as multipart forms, so ``themeId`` may be a string and
``tags`` may be a list of strings or a single JSON-encoded array.  The
image is mandatory on create and optional on update; it is written to
the media sink only after the rest of the payload has been validated,
and removed again when the database write that references it fails.
"""
import json
from collections.abc import Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from blog_api.cache import CacheManager
from blog_api.exceptions import BadRequestError
from blog_api.models import Post, PostTag
from blog_api.services.content_service import ContentService
from blog_api.services.media import ImageStorage, ImageUpload
from blog_api.services.query import ListingQuery, tokenize_tags


def parse_tags(value: list[str] | str | None) -> list[str] | None:
    """
    Normalise a ``tags`` form value to a list of strings.

    A list is returned as is; a string must be a JSON array of strings.
    """
    if value is None or isinstance(value, list):
        return value
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError) as exc:
        raise BadRequestError("Некорректный формат тегов") from exc
    if not isinstance(parsed, list) or not all(isinstance(tag, str) for tag in parsed):
        raise BadRequestError("Некорректный формат тегов")
    return parsed


def parse_theme_id(value: Any) -> Any:
    if isinstance(value, int) or value is None:
        return value
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise BadRequestError('Поле "themeId" должно быть числом') from exc


class PostsService(ContentService):
    model = Post
    label = "Post"
    namespace = "posts"
    item_prefix = "post"
    update_error = "Ошибка при обновлении поста"

    editable_fields = ("title", "content", "theme_id", "tags")

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheManager,
        media: ImageStorage,
        ttl: int | None = None,
    ) -> None:
        super().__init__(db, cache, ttl=ttl)
        self.media = media

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _select(self):
        return super()._select().options(selectinload(Post.tag_rows))

    def _extra_matches(self, query: ListingQuery) -> tuple:
        tokens = tokenize_tags(query.search)
        if not tokens:
            return ()
        return (Post.tag_rows.any(PostTag.name.in_(tokens)),)

    def _prepare(self, data: Mapping[str, Any]) -> dict[str, Any]:
        fields = dict(data)
        if "tags" in fields:
            tags = parse_tags(fields["tags"])
            if tags is None:
                fields.pop("tags")
            else:
                fields["tags"] = tags
        fields = super()._prepare(fields)
        if "theme_id" in fields:
            fields["theme_id"] = parse_theme_id(fields["theme_id"])
        return fields

    def _apply(self, item: Post, fields: Mapping[str, Any]) -> None:
        fields = dict(fields)
        tags = fields.pop("tags", None)
        super()._apply(item, fields)
        if tags is not None:
            item.set_tags(tags)

    def _to_dict(self, item: Post) -> dict:
        data = super()._to_dict(item)
        data["tags"] = item.tags
        data["image"] = item.image
        return data

    # ------------------------------------------------------------------
    # Writes that carry an image
    # ------------------------------------------------------------------

    async def create(self, data: Mapping[str, Any], image: ImageUpload | None = None) -> dict:
        if image is None:
            raise BadRequestError("Картинка обязательна для загрузки")
        fields = self._prepare(data)
        fields.setdefault("tags", [])
        reference = fields["image"] = await self.media.store(image)
        try:
            return await self._insert(fields)
        except SQLAlchemyError:
            await self.db.rollback()
            await self.media.discard(reference)
            raise

    async def update(
        self, item_id: str, data: Mapping[str, Any], image: ImageUpload | None = None
    ) -> dict:
        item = await self._get_live(item_id)
        fields = self._prepare(data)
        if image is None:
            return await self._save_update(item, fields)

        reference = fields["image"] = await self.media.store(image)
        try:
            return await self._save_update(item, fields)
        except BadRequestError:
            # Raised only when the commit failed; the new file has no owner.
            await self.media.discard(reference)
            raise
