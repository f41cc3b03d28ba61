import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException
from sqlalchemy import func
from sqlmodel import Session, select

from db import SessionDep
from models import Item, Swap, SwapStatus, User, utcnow
from notify import notify
from schemas import ItemRead, ReasonBody, RoleUpdate, SwapRead
from .auth import AdminDep
from .users import count_where

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _with_reason(text: str, body: Optional[ReasonBody]) -> str:
    reason = (body.reason or "").strip() if body else ""
    return f"{text} {reason}".strip()


def _remove_item(
    session: Session,
    item_id: int,
    admin: User,
    body: Optional[ReasonBody],
    kind: str,
    title: str,
    verb: str,
) -> None:
    """
    Delete an item outright and tell its owner why.
    The item is read first so the notification can name it.
    """
    item = session.get(Item, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")

    owner_id, item_title = item.user_id, item.title
    session.delete(item)
    session.commit()
    logger.info("Admin %s %s item %s", admin.id, verb, item_id)

    notify(
        session,
        owner_id,
        kind,
        title,
        _with_reason(f'Your item "{item_title}" has been {verb}.', body),
        item_id,
    )


@router.get("/items/pending")
def pending_items(session: SessionDep, admin: AdminDep):
    """
    Items waiting for approval, oldest first.
    """
    rows = session.exec(
        select(Item, User.name, User.email, User.avatar)
        .join(User, User.id == Item.user_id, isouter=True)
        .where(Item.is_approved == False)  # noqa: E712
        .order_by(Item.created_at.asc(), Item.id.asc())
    ).all()
    items = [
        {
            **ItemRead.model_validate(item).model_dump(),
            "uploader_name": name,
            "uploader_email": email,
            "uploader_avatar": avatar,
        }
        for item, name, email, avatar in rows
    ]
    return {"items": items}


@router.put("/items/{item_id}/approve")
def approve_item(item_id: int, session: SessionDep, admin: AdminDep):
    item = session.get(Item, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")

    item.is_approved = True
    session.add(item)
    session.commit()
    session.refresh(item)
    logger.info("Admin %s approved item %s", admin.id, item_id)

    notify(
        session,
        item.user_id,
        "item_approved",
        "Item Approved",
        f'Your item "{item.title}" has been approved!',
        item.id,
    )
    return {"message": "Item approved successfully"}


@router.put("/items/{item_id}/reject")
def reject_item(
    item_id: int,
    session: SessionDep,
    admin: AdminDep,
    body: Optional[ReasonBody] = None,
):
    _remove_item(
        session, item_id, admin, body, "item_rejected", "Item Rejected", "rejected"
    )
    return {"message": "Item rejected successfully"}


@router.delete("/items/{item_id}")
def remove_item(
    item_id: int,
    session: SessionDep,
    admin: AdminDep,
    body: Optional[ReasonBody] = None,
):
    _remove_item(
        session,
        item_id,
        admin,
        body,
        "item_removed",
        "Item Removed",
        "removed by admin",
    )
    return {"message": "Item removed successfully"}


@router.get("/users")
def list_users(session: SessionDep, admin: AdminDep):
    """
    List all users with how many items they listed and swaps they requested.
    """
    item_counts = (
        select(Item.user_id, func.count(Item.id).label("n"))
        .group_by(Item.user_id)
        .subquery()
    )
    swap_counts = (
        select(Swap.requester_id, func.count(Swap.id).label("n"))
        .group_by(Swap.requester_id)
        .subquery()
    )
    rows = session.exec(
        select(
            User,
            func.coalesce(item_counts.c.n, 0),
            func.coalesce(swap_counts.c.n, 0),
        )
        .join(item_counts, item_counts.c.user_id == User.id, isouter=True)
        .join(swap_counts, swap_counts.c.requester_id == User.id, isouter=True)
        .order_by(User.created_at.desc(), User.id.desc())
    ).all()
    users = [
        {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "avatar": user.avatar,
            "bio": user.bio,
            "points": user.points,
            "role": user.role,
            "is_verified": user.is_verified,
            "created_at": user.created_at,
            "items_count": items_count,
            "swaps_count": swaps_count,
        }
        for user, items_count, swaps_count in rows
    ]
    return {"users": users}


@router.put("/users/{user_id}/role")
def update_role(
    user_id: int, payload: RoleUpdate, session: SessionDep, admin: AdminDep
):
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    user.role = payload.role
    session.add(user)
    session.commit()
    logger.info("Admin %s set role of user %s to %s", admin.id, user_id, payload.role.value)
    return {"message": "User role updated successfully"}


@router.get("/stats")
def platform_stats(session: SessionDep, admin: AdminDep):
    now = utcnow()
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    total_users, new_users_week, new_users_month = session.exec(
        select(
            func.count(User.id),
            count_where(User.created_at >= week_ago),
            count_where(User.created_at >= month_ago),
        )
    ).one()

    total_items, pending_items, available_items, new_items_week = session.exec(
        select(
            func.count(Item.id),
            count_where(Item.is_approved == False),  # noqa: E712
            count_where(Item.is_available == True),  # noqa: E712
            count_where(Item.created_at >= week_ago),
        )
    ).one()

    swap_row = session.exec(
        select(
            func.count(Swap.id),
            count_where(Swap.status == SwapStatus.PENDING),
            count_where(Swap.status == SwapStatus.ACCEPTED),
            count_where(Swap.status == SwapStatus.COMPLETED),
            count_where(Swap.created_at >= week_ago),
        )
    ).one()

    category_rows = session.exec(
        select(Item.category, func.count(Item.id).label("count"))
        .where(Item.is_approved == True)  # noqa: E712
        .group_by(Item.category)
        .order_by(func.count(Item.id).desc(), Item.category)
    ).all()

    return {
        "users": {
            "total_users": total_users,
            "new_users_week": new_users_week,
            "new_users_month": new_users_month,
        },
        "items": {
            "total_items": total_items,
            "pending_items": pending_items,
            "available_items": available_items,
            "new_items_week": new_items_week,
        },
        "swaps": dict(
            zip(
                (
                    "total_swaps",
                    "pending_swaps",
                    "accepted_swaps",
                    "completed_swaps",
                    "new_swaps_week",
                ),
                swap_row,
            )
        ),
        "categories": [
            {"category": category, "count": count} for category, count in category_rows
        ],
    }


@router.get("/activity")
def recent_activity(session: SessionDep, admin: AdminDep):
    recent_items = session.exec(
        select(Item, User.name)
        .join(User, User.id == Item.user_id, isouter=True)
        .order_by(Item.created_at.desc(), Item.id.desc())
        .limit(10)
    ).all()
    recent_swaps = session.exec(
        select(Swap, Item.title, User.name)
        .join(Item, Item.id == Swap.item_id, isouter=True)
        .join(User, User.id == Swap.requester_id, isouter=True)
        .order_by(Swap.created_at.desc(), Swap.id.desc())
        .limit(10)
    ).all()
    recent_users = session.exec(
        select(User).order_by(User.created_at.desc(), User.id.desc()).limit(10)
    ).all()

    return {
        "recentItems": [
            {**ItemRead.model_validate(item).model_dump(), "uploader_name": name}
            for item, name in recent_items
        ],
        "recentSwaps": [
            {
                **SwapRead.model_validate(swap).model_dump(),
                "item_title": title,
                "requester_name": name,
            }
            for swap, title, name in recent_swaps
        ],
        "recentUsers": [
            {
                "id": user.id,
                "name": user.name,
                "email": user.email,
                "created_at": user.created_at,
            }
            for user in recent_users
        ],
    }
