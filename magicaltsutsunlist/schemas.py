from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CatalogItem(BaseModel):
    """Catalog document as sent by clients; `_id` is the catalog-assigned id."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id", min_length=1)
    title: str
    synopsis: str
    image: str
    genres: List[str]


class AnimeStatusRequest(BaseModel):
    anime_data: CatalogItem = Field(alias="animeData")
    status: str = Field(min_length=1)


class MangaStatusRequest(BaseModel):
    manga_data: CatalogItem = Field(alias="mangaData")
    status: str = Field(min_length=1)


class TrackingEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    catalog_id: str
    title: str
    synopsis: str
    image: str
    genres: str
    status: str


class StatusChangeResponse(BaseModel):
    message: str
    entry: Optional[TrackingEntryResponse] = None


class SyncReportResponse(BaseModel):
    kind: str
    total: int
    inserted: int
    existing: int
    failed: int


class SignUpRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(alias="pass", min_length=1)
    role: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    is_registered: bool
    username: str
    email: str
    role: str


class SignUpResponse(BaseModel):
    message: str
    user: UserResponse


class LoginRequest(BaseModel):
    login: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginResponse(BaseModel):
    message: str
    token: str


class ResetRequest(BaseModel):
    email: Optional[str] = None


class ConfirmPasswordRequest(BaseModel):
    password: str = Field(alias="pass", min_length=1)


class MessageResponse(BaseModel):
    message: str


class RoleResponse(BaseModel):
    role: str


class UploadResponse(BaseModel):
    message: str
    filePath: str


class NewCatalogItemResponse(BaseModel):
    message: str
    id: str


class SeasonalAnime(BaseModel):
    title: Optional[str] = None
    image_url: Optional[str] = None
    genres: List[str] = []
