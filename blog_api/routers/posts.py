from fastapi import APIRouter, Depends, File, Form, UploadFile

from blog_api.dependencies import CurrentUser, PaginationParams, get_posts_service
from blog_api.schemas import ListingResponse, MessageResponse, PostCreate, PostUpdate
from blog_api.services.media import ImageUpload
from blog_api.services.post_service import PostsService

router = APIRouter(prefix="/api/posts", tags=["posts"])


async def _read_image(image: UploadFile | None) -> ImageUpload | None:
    if image is None or not image.filename:
        return None
    return ImageUpload(content=await image.read(), filename=image.filename)


def _raw_tags(tags: list[str] | None) -> list[str] | str | None:
    # A single form field carries a JSON array; repeated fields are a list.
    if tags is not None and len(tags) == 1:
        return tags[0]
    return tags


@router.get("", response_model=ListingResponse)
async def list_posts(
    pagination: PaginationParams = Depends(),
    service: PostsService = Depends(get_posts_service),
):
    return await service.find_all(
        pagination.skip, pagination.page_size, pagination.order, pagination.search
    )


@router.get("/deleted", response_model=ListingResponse)
async def list_deleted_posts(
    _: CurrentUser,
    pagination: PaginationParams = Depends(),
    service: PostsService = Depends(get_posts_service),
):
    return await service.find_all_deleted(
        pagination.skip, pagination.page_size, pagination.order, pagination.search
    )


@router.get("/{post_id}")
async def get_post(post_id: str, service: PostsService = Depends(get_posts_service)):
    return await service.find_one(post_id)


@router.post("/create", status_code=201)
async def create_post(
    _: CurrentUser,
    title: str = Form(...),
    content: str = Form(...),
    theme_id: str = Form(..., alias="themeId"),
    tags: list[str] | None = Form(None),
    image: UploadFile | None = File(None),
    service: PostsService = Depends(get_posts_service),
):
    data = PostCreate(title=title, content=content, theme_id=theme_id, tags=_raw_tags(tags))
    return await service.create(data.model_dump(exclude_none=True), await _read_image(image))


@router.patch("/{post_id}")
async def update_post(
    post_id: str,
    _: CurrentUser,
    title: str | None = Form(None),
    content: str | None = Form(None),
    theme_id: str | None = Form(None, alias="themeId"),
    tags: list[str] | None = Form(None),
    image: UploadFile | None = File(None),
    service: PostsService = Depends(get_posts_service),
):
    data = PostUpdate(title=title, content=content, theme_id=theme_id, tags=_raw_tags(tags))
    return await service.update(
        post_id, data.model_dump(exclude_none=True), await _read_image(image)
    )


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: str,
    _: CurrentUser,
    service: PostsService = Depends(get_posts_service),
):
    return await service.delete(post_id)


@router.patch("/{post_id}/views")
async def increment_post_views(post_id: str, service: PostsService = Depends(get_posts_service)):
    return await service.increment_views(post_id)


@router.patch("/{post_id}/restore")
async def restore_post(
    post_id: str,
    _: CurrentUser,
    service: PostsService = Depends(get_posts_service),
):
    return await service.restore(post_id)
