from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts both ``theme_id`` and ``themeId``; serialises camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Notes ---

class NoteCreate(CamelModel):
    title: str
    content: str
    theme_id: int


class NoteUpdate(CamelModel):
    """
    Partial update.  Fields left out of the payload are not touched;
    fields sent as ``null`` are rejected by the service.
    """

    title: str | None = None
    content: str | None = None
    theme_id: int | None = None


# --- Posts ---
#
# Posts arrive as multipart forms, so values are kept as raw strings and
# the service validates and converts them.

class PostCreate(CamelModel):
    title: str
    content: str
    theme_id: str | int
    tags: list[str] | str | None = None


class PostUpdate(CamelModel):
    title: str | None = None
    content: str | None = None
    theme_id: str | int | None = None
    tags: list[str] | str | None = None


# --- Listing ---

class ListingResponse(BaseModel):
    items: list[dict]
    total: int


class MessageResponse(BaseModel):
    message: str


# --- Auth ---

class LoginRequest(BaseModel):
    login: str = Field(max_length=100)
    password: str = Field(max_length=200)


class LoginResponse(CamelModel):
    token: str
    user_role: str


# --- Uploads ---

class UploadResponse(BaseModel):
    url: str
