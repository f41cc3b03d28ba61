from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from models import ItemCondition, Role, SwapStatus, TransactionType


def split_tags(value: Union[str, List[str], None]) -> List[str]:
    """Accept "a, b ,c" or ["a", "b"] and return clean, non-empty tags."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [tag.strip() for tag in value if tag and tag.strip()]


class CamelModel(BaseModel):
    """Request/response body using camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- users / auth ----------

class RegisterData(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1, max_length=255)


class LoginData(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    bio: Optional[str] = None
    avatar: Optional[str] = None


class UserRead(BaseModel):
    id: int
    email: EmailStr
    name: str
    avatar: Optional[str] = None
    bio: Optional[str] = None
    points: int
    role: Role
    is_verified: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserRead


class RoleUpdate(BaseModel):
    role: Role


class ReasonBody(BaseModel):
    reason: Optional[str] = None


# ---------- items ----------

class ItemRead(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    category: str
    type: str
    size: Optional[str] = None
    condition: ItemCondition
    tags: List[str] = []
    images: List[str] = []
    points_value: int
    is_available: bool
    is_approved: bool
    ai_category: Optional[str] = None
    ai_tags: List[str] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ItemListEntry(ItemRead):
    uploader_name: Optional[str] = None
    uploader_avatar: Optional[str] = None
    swap_requests: int = 0


class ItemDetail(ItemRead):
    uploader_id: Optional[int] = None
    uploader_name: Optional[str] = None
    uploader_avatar: Optional[str] = None
    uploader_bio: Optional[str] = None
    can_swap: bool = Field(default=False, serialization_alias="canSwap")


class ItemUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = Field(default=None, min_length=1)
    size: Optional[str] = None
    condition: Optional[ItemCondition] = None
    tags: Optional[List[str]] = None
    points_value: Optional[int] = Field(default=None, ge=0)

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value):
        if value is None:
            return None
        return split_tags(value)


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class ItemListResponse(BaseModel):
    items: List[ItemListEntry]
    pagination: Pagination


class ItemResponse(BaseModel):
    message: str
    item: ItemRead


# ---------- swaps ----------

class SwapCreate(CamelModel):
    item_id: int
    offered_item_id: Optional[int] = None
    offered_points: Optional[int] = Field(default=None, ge=0)
    message: Optional[str] = None

    @field_validator("message")
    @classmethod
    def _strip_message(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None


class SwapRead(BaseModel):
    id: int
    requester_id: int
    item_id: int
    offered_item_id: Optional[int] = None
    offered_points: Optional[int] = None
    status: SwapStatus
    message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SwapEntry(SwapRead):
    item_title: Optional[str] = None
    item_images: List[str] = []
    item_points: Optional[int] = None
    requester_name: Optional[str] = None
    requester_avatar: Optional[str] = None
    item_owner_name: Optional[str] = None
    item_owner_avatar: Optional[str] = None
    offered_item_title: Optional[str] = None
    offered_item_images: List[str] = []


class SwapResponse(BaseModel):
    message: str
    swap: SwapRead


# ---------- inbox / ledger ----------

class NotificationRead(BaseModel):
    id: int
    type: str
    title: str
    message: Optional[str] = None
    is_read: bool
    related_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionRead(BaseModel):
    id: int
    type: TransactionType
    amount: int
    description: Optional[str] = None
    related_item_id: Optional[int] = None
    item_title: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------- AI assist ----------

class ImageAnalysisRequest(CamelModel):
    image_url: Optional[str] = None


class ItemFeatures(BaseModel):
    category: Optional[str] = None
    type: Optional[str] = None
    colors: List[str] = []
    style: Optional[str] = None
    material: Optional[str] = None
    condition: Optional[str] = None
    brand: Optional[str] = None


class TextRequest(BaseModel):
    text: Optional[str] = None


class ModerationRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


class ModerationResult(CamelModel):
    is_appropriate: bool = True
    reason: Optional[str] = None
    suggested_changes: Optional[str] = None


class ImageAnalysis(BaseModel):
    category: Optional[str] = None
    type: Optional[str] = None
    colors: List[str] = []
    style: Optional[str] = None
    material: Optional[str] = None
    condition: Optional[str] = None
    tags: List[str] = []

    model_config = ConfigDict(extra="allow")
