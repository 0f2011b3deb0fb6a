"""
PostsService tests: tags, images and tag-aware search.
"""
from pathlib import Path

import pytest
from PIL import Image
from sqlalchemy.exc import OperationalError

from blog_api.exceptions import BadRequestError, InternalError
from blog_api.services.media import ImageStorage, ImageUpload
from blog_api.services.post_service import PostsService, parse_tags, parse_theme_id

from tests.conftest import make_image

PNG_BYTES = make_image(1600, 900)


def _image(name: str = "cover.PNG") -> ImageUpload:
    return ImageUpload(content=PNG_BYTES, filename=name)


async def _create(service: PostsService, **overrides) -> dict:
    data = {"title": "Post", "content": "<p>body</p>", "theme_id": "5", "tags": ["misc"]}
    data.update(overrides)
    return await service.create(data, _image())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def test_parse_tags_accepts_list_and_json_string():
    assert parse_tags(["a", "b"]) == ["a", "b"]
    assert parse_tags('["a", "b"]') == ["a", "b"]
    assert parse_tags(None) is None


@pytest.mark.parametrize("raw", ["python", "[1, 2]", '{"a": 1}', "[unclosed"])
def test_parse_tags_rejects_malformed_values(raw):
    with pytest.raises(BadRequestError, match="Некорректный формат тегов"):
        parse_tags(raw)


def test_parse_theme_id():
    assert parse_theme_id("7") == 7
    assert parse_theme_id(3) == 3
    with pytest.raises(BadRequestError):
        parse_theme_id("seven")


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_without_image_is_bad_request(posts_service: PostsService):
    with pytest.raises(BadRequestError) as exc_info:
        await posts_service.create({"title": "T", "content": "<p>x</p>", "theme_id": 5})
    assert exc_info.value.message == "Картинка обязательна для загрузки"


@pytest.mark.asyncio
async def test_create_stores_image_and_tags(posts_service: PostsService, media: ImageStorage):
    post = await _create(posts_service, tags=["python", "web"])

    assert post["themeId"] == 5
    assert post["tags"] == ["python", "web"]
    assert post["views"] == 0
    assert post["image"].startswith("/uploads/")
    assert post["image"].endswith(".png")
    with Image.open(media.upload_dir / Path(post["image"]).name) as stored:
        assert stored.size == (800, 450)
        assert stored.format == "PNG"


@pytest.mark.asyncio
async def test_create_validates_before_writing_the_image(posts_service: PostsService, media: ImageStorage):
    with pytest.raises(BadRequestError, match='Поле "title" не может быть пустым'):
        await _create(posts_service, title=" ")
    assert list(media.upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_create_without_tags_defaults_to_empty_list(posts_service: PostsService):
    post = await posts_service.create(
        {"title": "T", "content": "<p>x</p>", "theme_id": 1}, _image()
    )
    assert post["tags"] == []


@pytest.mark.asyncio
async def test_create_rejects_non_numeric_theme(posts_service: PostsService):
    with pytest.raises(BadRequestError, match="themeId"):
        await _create(posts_service, theme_id="abc")


@pytest.mark.asyncio
async def test_media_write_failure_is_internal_error(posts_service: PostsService, media: ImageStorage):
    media.upload_dir.rmdir()
    with pytest.raises(InternalError, match="Ошибка при сохранении файла"):
        await _create(posts_service)


@pytest.mark.asyncio
async def test_small_jpeg_is_scaled_to_width_and_kept_as_jpeg(posts_service: PostsService, media: ImageStorage):
    upload = ImageUpload(content=make_image(400, 300, fmt="JPEG"), filename="small.jpg")
    post = await posts_service.create({"title": "T", "content": "<p>x</p>", "theme_id": 1}, upload)
    with Image.open(media.upload_dir / Path(post["image"]).name) as stored:
        assert stored.size == (800, 600)
        assert stored.format == "JPEG"


@pytest.mark.asyncio
async def test_undecodable_image_is_internal_error(posts_service: PostsService, media: ImageStorage):
    upload = ImageUpload(content=b"definitely not an image", filename="fake.png")
    with pytest.raises(InternalError, match="Ошибка при сохранении файла"):
        await posts_service.create({"title": "T", "content": "<p>x</p>", "theme_id": 1}, upload)
    assert list(media.upload_dir.iterdir()) == []


async def _failing_commit():
    raise OperationalError("COMMIT", {}, Exception("database is gone"))


@pytest.mark.asyncio
async def test_failed_insert_removes_the_stored_image(posts_service: PostsService, media: ImageStorage, monkeypatch):
    monkeypatch.setattr(posts_service.db, "commit", _failing_commit)
    with pytest.raises(OperationalError):
        await _create(posts_service)
    assert list(media.upload_dir.iterdir()) == []


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_tags_from_json_string(posts_service: PostsService):
    post = await _create(posts_service, tags=["old"])
    updated = await posts_service.update(post["id"], {"tags": '["new", "newer"]'})
    assert updated["tags"] == ["new", "newer"]
    assert updated["title"] == post["title"]
    assert updated["image"] == post["image"]

    found = await posts_service.find_one(post["id"])
    assert found["tags"] == ["new", "newer"]


@pytest.mark.asyncio
async def test_update_with_malformed_tags_is_bad_request(posts_service: PostsService):
    post = await _create(posts_service)
    with pytest.raises(BadRequestError, match="Некорректный формат тегов"):
        await posts_service.update(post["id"], {"tags": "not json"})


@pytest.mark.asyncio
async def test_update_replaces_image(posts_service: PostsService):
    post = await _create(posts_service)
    updated = await posts_service.update(post["id"], {}, _image("new.jpg"))
    assert updated["image"] != post["image"]
    assert updated["image"].endswith(".jpg")


@pytest.mark.asyncio
async def test_failed_update_removes_only_the_new_image(posts_service: PostsService, media: ImageStorage, monkeypatch):
    post = await _create(posts_service)
    monkeypatch.setattr(posts_service.db, "commit", _failing_commit)
    with pytest.raises(BadRequestError, match="Ошибка при обновлении поста"):
        await posts_service.update(post["id"], {"title": "New"}, _image("new.png"))
    assert [p.name for p in media.upload_dir.iterdir()] == [Path(post["image"]).name]


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_matches_any_tag(posts_service: PostsService):
    tagged = await _create(posts_service, title="Weekend notes", tags=["python", "web"])
    await _create(posts_service, title="Cooking", tags=["food"])

    for search in ("python", "rust, python", "go web"):
        result = await posts_service.find_all(search=search)
        assert [item["id"] for item in result["items"]] == [tagged["id"]], search


@pytest.mark.asyncio
async def test_empty_search_returns_every_live_post(posts_service: PostsService):
    for i in range(3):
        await _create(posts_service, title=f"Post {i}")
    result = await posts_service.find_all(search="")
    assert result["total"] == 3


@pytest.mark.asyncio
async def test_tag_search_ignores_deleted_posts(posts_service: PostsService):
    post = await _create(posts_service, tags=["python"])
    await posts_service.delete(post["id"])
    assert (await posts_service.find_all(search="python"))["total"] == 0
    assert (await posts_service.find_all_deleted(search="python"))["total"] == 1


# ---------------------------------------------------------------------------
# Cache policy matches notes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["delete", "increment_views"])
async def test_post_mutations_invalidate_listing_and_item(posts_service: PostsService, fake_redis, operation):
    post = await _create(posts_service)
    for key in ("posts:0:10:newest:", "posts:deleted:0:10:newest:", f"post:{post['id']}", "notes:0:10:newest:"):
        fake_redis.store[key] = "{}"

    await getattr(posts_service, operation)(post["id"])

    assert set(fake_redis.store) == {"notes:0:10:newest:"}
