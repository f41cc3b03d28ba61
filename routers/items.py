import logging
from typing import Annotated, Dict, List, Literal, Optional, Tuple
from urllib.parse import quote

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile
from sqlalchemy import String, and_, cast, func, or_
from sqlmodel import Session, select

import config
from db import SessionDep
from llm import AssistDep, AssistError, AssistService
from models import Item, ItemCondition, Swap, SwapStatus, User
from schemas import (
    ItemDetail,
    ItemFeatures,
    ItemListEntry,
    ItemListResponse,
    ItemRead,
    ItemResponse,
    ItemUpdate,
    Pagination,
    split_tags,
)
from .auth import CurrentUserDep, OptionalUserDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/items", tags=["items"])

SortField = Literal["created_at", "points_value", "title", "updated_at"]
SortOrder = Literal["asc", "desc"]


def listed():
    """Predicate for items shown in public listings."""
    return and_(Item.is_available == True, Item.is_approved == True)  # noqa: E712


def pending_requests_count():
    return func.count(Swap.id).label("swap_requests")


def join_pending_swaps(stmt):
    return stmt.join(
        Swap,
        and_(Swap.item_id == Item.id, Swap.status == SwapStatus.PENDING),
        isouter=True,
    )


def list_entry(item: Item, **extra) -> ItemListEntry:
    return ItemListEntry(**ItemRead.model_validate(item).model_dump(), **extra)


def search_catalog(
    session: Session,
    category: Optional[str] = None,
    type: Optional[str] = None,
    condition: Optional[ItemCondition] = None,
    min_points: Optional[int] = None,
    max_points: Optional[int] = None,
    search: Optional[str] = None,
    sort_by: SortField = "created_at",
    sort_order: SortOrder = "desc",
    page: int = 1,
    limit: int = 12,
) -> Tuple[List[ItemListEntry], int]:
    """
    Filter the listed catalog and return (page of entries, total matching).
    Every supplied filter narrows the result; none of them widen it.
    """
    conditions = [listed()]

    if category:
        conditions.append(Item.category == category)
    if type:
        conditions.append(Item.type == type)
    if condition is not None:
        conditions.append(Item.condition == condition)
    if min_points is not None:
        conditions.append(Item.points_value >= min_points)
    if max_points is not None:
        conditions.append(Item.points_value <= max_points)
    if search:
        term = f"%{search}%"
        conditions.append(
            or_(
                Item.title.ilike(term),
                Item.description.ilike(term),
                cast(Item.tags, String).ilike(term),
            )
        )

    sort_column = getattr(Item, sort_by)
    if sort_order == "asc":
        ordering = (sort_column.asc(), Item.id.asc())
    else:
        ordering = (sort_column.desc(), Item.id.desc())

    stmt = select(Item, User.name, User.avatar, pending_requests_count())
    stmt = stmt.join(User, User.id == Item.user_id, isouter=True)
    stmt = (
        join_pending_swaps(stmt)
        .where(*conditions)
        .group_by(Item.id, User.id)
        .order_by(*ordering)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = session.exec(stmt).all()

    total = session.exec(
        select(func.count()).select_from(Item).where(*conditions)
    ).one()

    entries = [
        list_entry(
            item,
            uploader_name=name,
            uploader_avatar=avatar,
            swap_requests=requests,
        )
        for item, name, avatar, requests in rows
    ]
    return entries, total


def load_item_detail(
    session: Session, item_id: int, viewer: Optional[User]
) -> Optional[ItemDetail]:
    row = session.exec(
        select(Item, User)
        .join(User, User.id == Item.user_id, isouter=True)
        .where(Item.id == item_id, Item.is_available == True)  # noqa: E712
    ).first()
    if row is None:
        return None

    item, owner = row
    can_swap = (
        viewer is not None and viewer.id != item.user_id and item.is_approved
    )
    return ItemDetail(
        **ItemRead.model_validate(item).model_dump(),
        uploader_id=owner.id if owner else None,
        uploader_name=owner.name if owner else None,
        uploader_avatar=owner.avatar if owner else None,
        uploader_bio=owner.bio if owner else None,
        can_swap=can_swap,
    )


def category_map(session: Session) -> Dict[str, List[str]]:
    rows = session.exec(
        select(Item.category, Item.type)
        .where(listed())
        .distinct()
        .order_by(Item.category, Item.type)
    ).all()
    categories: Dict[str, List[str]] = {}
    for category, item_type in rows:
        types = categories.setdefault(category, [])
        if item_type not in types:
            types.append(item_type)
    return categories


def placeholder_url(filename: Optional[str]) -> str:
    return config.PLACEHOLDER_IMAGE_URL.format(name=quote(filename or "image"))


def _store_images(images: List[UploadFile]) -> List[str]:
    if len(images) > config.MAX_IMAGES:
        raise HTTPException(
            status_code=400,
            detail=f"At most {config.MAX_IMAGES} images are allowed",
        )

    urls = []
    for image in images:
        if not (image.content_type or "").startswith("image/"):
            raise HTTPException(status_code=400, detail="Only image files are allowed")
        data = image.file.read()
        if len(data) > config.MAX_IMAGE_BYTES:
            raise HTTPException(
                status_code=400,
                detail=f"Image {image.filename} exceeds the size limit",
            )
        # Uploaded bytes are not persisted yet; the listing keeps a placeholder.
        urls.append(placeholder_url(image.filename))
    return urls


def _moderate_or_reject(assist: AssistService, title: str, description: str) -> None:
    try:
        result = assist.moderate(title, description)
    except AssistError:
        logger.exception("Moderation unavailable; accepting content unchecked")
        return
    if not result.is_appropriate:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Content violates community guidelines",
                "reason": result.reason,
                "suggestedChanges": result.suggested_changes,
            },
        )


def _suggested_tags(assist: AssistService, title: str, description: str) -> List[str]:
    try:
        return assist.extract_tags(f"{title}\n{description}".strip())
    except AssistError:
        logger.exception("Tag extraction unavailable; listing without AI tags")
        return []


def _ai_assist_enabled() -> bool:
    return config.AI_ASSIST_ON_CREATE and bool(config.OPENAI_API_KEY)


@router.get("", response_model=ItemListResponse)
def list_items(
    session: SessionDep,
    viewer: OptionalUserDep,
    category: Optional[str] = None,
    type: Optional[str] = None,
    condition: Optional[ItemCondition] = None,
    min_points: Annotated[Optional[int], Query(alias="minPoints", ge=0)] = None,
    max_points: Annotated[Optional[int], Query(alias="maxPoints", ge=0)] = None,
    search: Optional[str] = None,
    sort_by: Annotated[SortField, Query(alias="sortBy")] = "created_at",
    sort_order: Annotated[SortOrder, Query(alias="sortOrder")] = "desc",
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 12,
):
    """
    List approved, available items, optionally filtered and sorted.
    """
    entries, total = search_catalog(
        session,
        category=category,
        type=type,
        condition=condition,
        min_points=min_points,
        max_points=max_points,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return {"items": entries, "pagination": Pagination.build(page, limit, total)}


@router.get("/categories/list")
def list_categories(session: SessionDep):
    return {"categories": category_map(session)}


@router.get("/user/me")
def my_items(session: SessionDep, user: CurrentUserDep):
    items = session.exec(
        select(Item)
        .where(Item.user_id == user.id)
        .order_by(Item.created_at.desc(), Item.id.desc())
    ).all()
    return {"items": [ItemRead.model_validate(item) for item in items]}


@router.get("/{item_id}")
def get_item(item_id: int, session: SessionDep, viewer: OptionalUserDep):
    """
    Get a single available item with its uploader and whether the viewer can request it.
    """
    detail = load_item_detail(session, item_id, viewer)
    if detail is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return {"item": detail.model_dump(by_alias=True)}


@router.post("", response_model=ItemResponse, status_code=201)
def create_item(
    session: SessionDep,
    user: CurrentUserDep,
    assist: AssistDep,
    title: Annotated[str, Form(min_length=1, max_length=255)],
    category: Annotated[str, Form(min_length=1)],
    type: Annotated[str, Form(min_length=1)],
    condition: Annotated[ItemCondition, Form()],
    description: Annotated[Optional[str], Form()] = None,
    size: Annotated[Optional[str], Form()] = None,
    tags: Annotated[Optional[str], Form()] = None,
    points_value: Annotated[Optional[int], Form(alias="pointsValue", ge=0)] = None,
    images: Annotated[Optional[List[UploadFile]], File()] = None,
):
    """
    Create a new listing. It stays hidden from the catalog until an admin approves it.
    """
    image_urls = _store_images(images or [])
    tag_list = split_tags(tags)
    ai_tags: List[str] = []

    if _ai_assist_enabled():
        _moderate_or_reject(assist, title, description or "")
        if points_value is None:
            points_value = assist.suggest_points(
                ItemFeatures(category=category, type=type, condition=condition.value)
            )
        ai_tags = _suggested_tags(assist, title, description or "")

    item = Item(
        user_id=user.id,
        title=title.strip(),
        description=description,
        category=category.strip(),
        type=type.strip(),
        size=size,
        condition=condition,
        tags=tag_list,
        images=image_urls,
        points_value=points_value if points_value is not None else 50,
        ai_tags=ai_tags,
    )
    session.add(item)
    session.commit()
    session.refresh(item)

    logger.info("User %s listed item %s", user.id, item.id)
    return {"message": "Item created successfully", "item": item}


@router.put("/{item_id}", response_model=ItemResponse)
def update_item(
    item_id: int,
    payload: ItemUpdate,
    session: SessionDep,
    user: CurrentUserDep,
    assist: AssistDep,
):
    item = session.get(Item, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")

    if item.user_id != user.id:
        raise HTTPException(
            status_code=403,
            detail="Not authorized to update this item",
        )

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    if _ai_assist_enabled() and ("title" in changes or "description" in changes):
        _moderate_or_reject(
            assist,
            changes.get("title", item.title),
            changes.get("description", item.description or ""),
        )

    for field, value in changes.items():
        setattr(item, field, value)

    session.add(item)
    session.commit()
    session.refresh(item)
    return {"message": "Item updated successfully", "item": item}


@router.delete("/{item_id}")
def delete_item(item_id: int, session: SessionDep, user: CurrentUserDep):
    item = session.get(Item, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")

    # Owners can only delete their *own* items
    if item.user_id != user.id:
        raise HTTPException(
            status_code=403,
            detail="Not authorized to delete this item",
        )

    session.delete(item)
    session.commit()
    logger.info("User %s deleted item %s", user.id, item_id)
    return {"message": "Item deleted successfully"}
