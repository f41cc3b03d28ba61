# routers/users.py
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query
from sqlalchemy import case, func, or_
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from db import SessionDep
from models import Item, Notification, PointTransaction, Swap, SwapStatus, User
from schemas import NotificationRead, Pagination, TransactionRead
from .auth import CurrentUserDep
from .items import join_pending_swaps, list_entry, listed, pending_requests_count

router = APIRouter(prefix="/api/users", tags=["users"])

SETTLED = (SwapStatus.ACCEPTED, SwapStatus.COMPLETED)

PageDep = Annotated[int, Query(ge=1)]


def count_where(condition):
    return func.count(case((condition, 1)))


def load_profile(session: Session, user_id: int):
    """
    Public profile summary and up to six listed items, or None if the user does not exist.
    """
    user = session.get(User, user_id)
    if user is None:
        return None

    items_count = session.exec(
        select(func.count(Item.id)).where(
            Item.user_id == user_id,
            Item.is_approved == True,  # noqa: E712
        )
    ).one()
    swaps_count = session.exec(
        select(func.count(Swap.id)).where(
            Swap.requester_id == user_id, Swap.status.in_(SETTLED)
        )
    ).one()
    items = session.exec(
        select(Item)
        .where(Item.user_id == user_id, listed())
        .order_by(Item.created_at.desc(), Item.id.desc())
        .limit(6)
    ).all()

    summary = {
        "id": user.id,
        "name": user.name,
        "avatar": user.avatar,
        "bio": user.bio,
        "points": user.points,
        "created_at": user.created_at,
        "items_count": items_count,
        "swaps_count": swaps_count,
    }
    return {"user": summary, "items": [list_entry(item) for item in items]}


@router.get("/profile/{user_id}")
def get_profile(user_id: int, session: SessionDep):
    profile = load_profile(session, user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@router.get("/stats")
def user_stats(session: SessionDep, user: CurrentUserDep):
    """
    Item and swap counters for the current user's dashboard.
    """
    total_items, available_items, pending_items, total_value = session.exec(
        select(
            func.count(Item.id),
            count_where(Item.is_available == True),  # noqa: E712
            count_where(Item.is_approved == False),  # noqa: E712
            func.coalesce(func.sum(Item.points_value), 0),
        ).where(Item.user_id == user.id)
    ).one()

    total_swaps, pending_swaps, accepted_swaps, completed_swaps = session.exec(
        select(
            func.count(Swap.id),
            count_where(Swap.status == SwapStatus.PENDING),
            count_where(Swap.status == SwapStatus.ACCEPTED),
            count_where(Swap.status == SwapStatus.COMPLETED),
        ).where(Swap.requester_id == user.id)
    ).one()

    total_received, pending_received = session.exec(
        select(
            func.count(Swap.id),
            count_where(Swap.status == SwapStatus.PENDING),
        )
        .join(Item, Item.id == Swap.item_id)
        .where(Item.user_id == user.id)
    ).one()

    return {
        "items": {
            "total_items": total_items,
            "available_items": available_items,
            "pending_items": pending_items,
            "total_points_value": total_value,
        },
        "swaps": {
            "total_swaps": total_swaps,
            "pending_swaps": pending_swaps,
            "accepted_swaps": accepted_swaps,
            "completed_swaps": completed_swaps,
        },
        "receivedSwaps": {
            "total_received": total_received,
            "pending_received": pending_received,
        },
    }


@router.get("/notifications")
def list_notifications(
    session: SessionDep,
    user: CurrentUserDep,
    page: PageDep = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    notes = session.exec(
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    total = session.exec(
        select(func.count(Notification.id)).where(Notification.user_id == user.id)
    ).one()
    return {
        "notifications": [NotificationRead.model_validate(n) for n in notes],
        "pagination": Pagination.build(page, limit, total),
    }


@router.get("/notifications/unread-count")
def unread_count(session: SessionDep, user: CurrentUserDep):
    count = session.exec(
        select(func.count(Notification.id)).where(
            Notification.user_id == user.id,
            Notification.is_read == False,  # noqa: E712
        )
    ).one()
    return {"count": count}


@router.put("/notifications/read-all")
def mark_all_read(session: SessionDep, user: CurrentUserDep):
    notes = session.exec(
        select(Notification).where(
            Notification.user_id == user.id,
            Notification.is_read == False,  # noqa: E712
        )
    ).all()
    for note in notes:
        note.is_read = True
        session.add(note)
    session.commit()
    return {"message": "All notifications marked as read"}


@router.put("/notifications/{notification_id}/read")
def mark_read(notification_id: int, session: SessionDep, user: CurrentUserDep):
    note = session.get(Notification, notification_id)
    # Someone else's notification looks the same as a missing one.
    if note is None or note.user_id != user.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    note.is_read = True
    session.add(note)
    session.commit()
    return {"message": "Notification marked as read"}


@router.get("/points/transactions")
def point_transactions(
    session: SessionDep,
    user: CurrentUserDep,
    page: PageDep = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    rows = session.exec(
        select(PointTransaction, Item.title)
        .join(Item, Item.id == PointTransaction.related_item_id, isouter=True)
        .where(PointTransaction.user_id == user.id)
        .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    total = session.exec(
        select(func.count(PointTransaction.id)).where(
            PointTransaction.user_id == user.id
        )
    ).one()
    transactions = [
        TransactionRead(
            **TransactionRead.model_validate(tx).model_dump(exclude={"item_title"}),
            item_title=title,
        )
        for tx, title in rows
    ]
    return {
        "transactions": transactions,
        "pagination": Pagination.build(page, limit, total),
    }


@router.get("/{user_id}/items")
def user_items(
    user_id: int,
    session: SessionDep,
    page: PageDep = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 12,
):
    """
    A user's approved items with their pending request counts.
    """
    approved = (Item.user_id == user_id, Item.is_approved == True)  # noqa: E712
    stmt = join_pending_swaps(select(Item, pending_requests_count()))
    rows = session.exec(
        stmt.where(*approved)
        .group_by(Item.id)
        .order_by(Item.created_at.desc(), Item.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    total = session.exec(select(func.count(Item.id)).where(*approved)).one()
    return {
        "items": [list_entry(item, swap_requests=count) for item, count in rows],
        "pagination": Pagination.build(page, limit, total),
    }


@router.get("/{user_id}/swaps")
def user_swaps(user_id: int, session: SessionDep):
    """
    Swaps the user took part in on either side, with the other party's name.
    """
    Other = aliased(User)
    other_id = case(
        (Swap.requester_id == user_id, Item.user_id),
        else_=Swap.requester_id,
    )
    rows = session.exec(
        select(Swap, Item.title, Item.images, Other.name, Other.avatar)
        .join(Item, Item.id == Swap.item_id, isouter=True)
        .join(Other, Other.id == other_id, isouter=True)
        .where(or_(Swap.requester_id == user_id, Item.user_id == user_id))
        .order_by(Swap.created_at.desc(), Swap.id.desc())
    ).all()
    swaps = []
    for swap, title, images, other_name, other_avatar in rows:
        swaps.append(
            {
                **swap.model_dump(),
                "item_title": title,
                "item_images": images or [],
                "other_user_name": other_name,
                "other_user_avatar": other_avatar,
            }
        )
    return {"swaps": swaps}
