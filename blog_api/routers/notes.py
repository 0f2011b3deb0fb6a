from fastapi import APIRouter, Depends

from blog_api.dependencies import CurrentUser, PaginationParams, get_notes_service
from blog_api.schemas import ListingResponse, MessageResponse, NoteCreate, NoteUpdate
from blog_api.services.note_service import NotesService

router = APIRouter(prefix="/api/notes", tags=["notes"])


@router.get("", response_model=ListingResponse)
async def list_notes(
    pagination: PaginationParams = Depends(),
    service: NotesService = Depends(get_notes_service),
):
    return await service.find_all(
        pagination.skip, pagination.page_size, pagination.order, pagination.search
    )


@router.get("/deleted", response_model=ListingResponse)
async def list_deleted_notes(
    _: CurrentUser,
    pagination: PaginationParams = Depends(),
    service: NotesService = Depends(get_notes_service),
):
    return await service.find_all_deleted(
        pagination.skip, pagination.page_size, pagination.order, pagination.search
    )


@router.get("/{note_id}")
async def get_note(note_id: str, service: NotesService = Depends(get_notes_service)):
    return await service.find_one(note_id)


@router.post("/create", status_code=201)
async def create_note(
    data: NoteCreate,
    _: CurrentUser,
    service: NotesService = Depends(get_notes_service),
):
    return await service.create(data.model_dump())


@router.patch("/{note_id}")
async def update_note(
    note_id: str,
    data: NoteUpdate,
    _: CurrentUser,
    service: NotesService = Depends(get_notes_service),
):
    return await service.update(note_id, data.model_dump(exclude_unset=True))


@router.delete("/{note_id}", response_model=MessageResponse)
async def delete_note(
    note_id: str,
    _: CurrentUser,
    service: NotesService = Depends(get_notes_service),
):
    return await service.delete(note_id)


@router.patch("/{note_id}/views")
async def increment_note_views(note_id: str, service: NotesService = Depends(get_notes_service)):
    return await service.increment_views(note_id)


@router.patch("/{note_id}/restore")
async def restore_note(
    note_id: str,
    _: CurrentUser,
    service: NotesService = Depends(get_notes_service),
):
    return await service.restore(note_id)
