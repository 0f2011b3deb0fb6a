from fastapi import APIRouter, Depends, File, UploadFile

from blog_api.dependencies import CurrentUser, get_media
from blog_api.exceptions import BadRequestError
from blog_api.schemas import UploadResponse
from blog_api.services.media import ImageStorage, ImageUpload

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


@router.post("/images", response_model=UploadResponse, status_code=201)
async def upload_image(
    _: CurrentUser,
    image: UploadFile | None = File(None),
    media: ImageStorage = Depends(get_media),
):
    """Store a standalone image (e.g. one embedded in rich text) and return its URL."""
    if image is None or not image.filename:
        raise BadRequestError("Файл не предоставлен")
    url = await media.store(ImageUpload(content=await image.read(), filename=image.filename))
    return {"url": url}
