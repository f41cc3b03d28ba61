import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, HTTPException
from sqlalchemy import case, func, or_
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from db import SessionDep
from models import (
    InvalidTransition,
    Item,
    PointTransaction,
    Swap,
    SwapParty,
    SwapStatus,
    TransactionType,
    User,
    allowed_parties,
    check_transition,
)
from notify import notify
from schemas import SwapCreate, SwapEntry, SwapRead, SwapResponse
from .auth import CurrentUserDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/swaps", tags=["swaps"])

OfferedItem = aliased(Item)
Counterpart = aliased(User)


def _swap_entries(session: Session, *conditions, counterpart_on) -> List[SwapEntry]:
    stmt = (
        select(Swap, Item, Counterpart, OfferedItem)
        .join(Item, Item.id == Swap.item_id, isouter=True)
        .join(Counterpart, counterpart_on, isouter=True)
        .join(OfferedItem, OfferedItem.id == Swap.offered_item_id, isouter=True)
        .where(*conditions)
        .order_by(Swap.created_at.desc(), Swap.id.desc())
    )
    entries = []
    for swap, item, other, offered in session.exec(stmt).all():
        entries.append(
            SwapEntry(
                **SwapRead.model_validate(swap).model_dump(),
                item_title=item.title if item else None,
                item_images=item.images if item else [],
                item_points=item.points_value if item else None,
                offered_item_title=offered.title if offered else None,
                offered_item_images=offered.images if offered else [],
                **_counterpart_fields(swap, other),
            )
        )
    return entries


def _counterpart_fields(swap: Swap, other: Optional[User]) -> dict:
    if other is None:
        return {}
    if other.id == swap.requester_id:
        return {"requester_name": other.name, "requester_avatar": other.avatar}
    return {"item_owner_name": other.name, "item_owner_avatar": other.avatar}


def _load_for_transition(
    session: Session, swap_id: int, actor: User, target: SwapStatus, lock: bool = False
):
    """
    Fetch a swap and its requested item, then check the actor and the status change.
    Returns (swap, item, party).
    """
    stmt = (
        select(Swap, Item)
        .join(Item, Item.id == Swap.item_id)
        .where(Swap.id == swap_id)
    )
    if lock:
        stmt = stmt.with_for_update(of=Swap).execution_options(populate_existing=True)
    row = session.exec(stmt).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Swap request not found")
    swap, item = row

    if actor.id == item.user_id:
        party = SwapParty.OWNER
    elif actor.id == swap.requester_id:
        party = SwapParty.REQUESTER
    else:
        party = None

    verb = {
        SwapStatus.ACCEPTED: "accept",
        SwapStatus.REJECTED: "reject",
        SwapStatus.CANCELLED: "cancel",
        SwapStatus.COMPLETED: "complete",
    }[target]
    if party not in allowed_parties(target):
        raise HTTPException(
            status_code=403, detail=f"Not authorized to {verb} this swap"
        )

    try:
        check_transition(swap.status, target)
    except InvalidTransition as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return swap, item, party


def settle_accept(session: Session, swap_id: int, owner: User) -> Tuple[Swap, Item]:
    """
    Accept a pending swap in one transaction.

    The swap row, both parties' user rows and the items changing hands
    are locked. Item availability and the requester's balance are
    re-checked under the lock, then the status flip, item
    availability and any points transfer with its two ledger rows are
    committed together. Any failure rolls all of it back.
    """
    try:
        swap, item, _ = _load_for_transition(
            session, swap_id, owner, SwapStatus.ACCEPTED, lock=True
        )

        # Lock both balances in id order so crossing accepts cannot deadlock.
        parties = session.exec(
            select(User)
            .where(User.id.in_([swap.requester_id, owner.id]))
            .order_by(User.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()
        by_id = {party.id: party for party in parties}
        requester = by_id[swap.requester_id]
        owner = by_id[owner.id]

        # Either item may already have gone out in another accepted swap.
        item_ids = [item.id]
        if swap.offered_item_id is not None:
            item_ids.append(swap.offered_item_id)
        goods = session.exec(
            select(Item)
            .where(Item.id.in_(item_ids))
            .order_by(Item.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()
        by_item = {good.id: good for good in goods}
        item = by_item[item.id]
        offered = by_item.get(swap.offered_item_id)
        if not item.is_available or (
            swap.offered_item_id is not None
            and (offered is None or not offered.is_available)
        ):
            raise HTTPException(status_code=400, detail="Item is no longer available")

        points = swap.offered_points or 0
        if points and requester.points < points:
            raise HTTPException(
                status_code=400, detail="Requester has insufficient points"
            )

        swap.status = SwapStatus.ACCEPTED
        item.is_available = False
        session.add(swap)
        session.add(item)

        if offered is not None:
            offered.is_available = False
            session.add(offered)

        if points:
            requester.points -= points
            owner.points += points
            session.add(requester)
            session.add(owner)

            description = f"Swap for item: {item.title}"
            session.add(
                PointTransaction(
                    user_id=requester.id,
                    type=TransactionType.SPENT,
                    amount=points,
                    description=description,
                    related_item_id=item.id,
                )
            )
            session.add(
                PointTransaction(
                    user_id=owner.id,
                    type=TransactionType.EARNED,
                    amount=points,
                    description=description,
                    related_item_id=item.id,
                )
            )

        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(swap)
    logger.info(
        "Swap %s accepted by user %s (%s points from user %s)",
        swap.id,
        owner.id,
        points,
        swap.requester_id,
    )
    return swap, item


@router.post("", response_model=SwapResponse, status_code=201)
def create_swap(payload: SwapCreate, session: SessionDep, user: CurrentUserDep):
    item = session.exec(
        select(Item).where(
            Item.id == payload.item_id,
            Item.is_available == True,  # noqa: E712
            Item.is_approved == True,  # noqa: E712
        )
    ).first()
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found or not available")

    if item.user_id == user.id:
        raise HTTPException(status_code=400, detail="Cannot swap your own item")

    if payload.offered_points and user.points < payload.offered_points:
        raise HTTPException(status_code=400, detail="Insufficient points")

    if payload.offered_item_id is not None:
        offered = session.exec(
            select(Item).where(
                Item.id == payload.offered_item_id,
                Item.user_id == user.id,
                Item.is_available == True,  # noqa: E712
            )
        ).first()
        if offered is None:
            raise HTTPException(
                status_code=400, detail="Offered item not found or not available"
            )

    existing = session.exec(
        select(Swap.id).where(
            Swap.requester_id == user.id,
            Swap.item_id == item.id,
            Swap.status == SwapStatus.PENDING,
        )
    ).first()
    if existing is not None:
        raise HTTPException(
            status_code=400,
            detail="You already have a pending swap request for this item",
        )

    swap = Swap(
        requester_id=user.id,
        item_id=item.id,
        offered_item_id=payload.offered_item_id,
        offered_points=payload.offered_points or None,
        message=payload.message,
    )
    session.add(swap)
    session.commit()
    session.refresh(swap)

    notify(
        session,
        item.user_id,
        "swap_request",
        "New Swap Request",
        f'You have a new swap request for "{item.title}"',
        swap.id,
    )
    logger.info("User %s requested item %s (swap %s)", user.id, item.id, swap.id)
    return {"message": "Swap request created successfully", "swap": swap}


@router.get("/sent")
def sent_swaps(session: SessionDep, user: CurrentUserDep):
    """
    Swaps the current user requested, with the item owner's name.
    """
    entries = _swap_entries(
        session,
        Swap.requester_id == user.id,
        counterpart_on=Counterpart.id == Item.user_id,
    )
    return {"swaps": entries}


@router.get("/received")
def received_swaps(session: SessionDep, user: CurrentUserDep):
    """
    Swaps requested on the current user's items, with the requester's name.
    """
    entries = _swap_entries(
        session,
        Item.user_id == user.id,
        counterpart_on=Counterpart.id == Swap.requester_id,
    )
    return {"swaps": entries}


@router.get("/stats")
def swap_stats(session: SessionDep, user: CurrentUserDep):
    def count(status: SwapStatus):
        return func.coalesce(func.sum(case((Swap.status == status, 1), else_=0)), 0)

    own_items = select(Item.id).where(Item.user_id == user.id)
    row = session.exec(
        select(
            func.count(Swap.id),
            count(SwapStatus.PENDING),
            count(SwapStatus.ACCEPTED),
            count(SwapStatus.COMPLETED),
            count(SwapStatus.REJECTED),
        ).where(or_(Swap.requester_id == user.id, Swap.item_id.in_(own_items)))
    ).one()
    total, pending, accepted, completed, rejected = row
    return {
        "stats": {
            "total_swaps": total,
            "pending_swaps": pending,
            "accepted_swaps": accepted,
            "completed_swaps": completed,
            "rejected_swaps": rejected,
        }
    }


@router.put("/{swap_id}/accept", response_model=SwapResponse)
def accept_swap(swap_id: int, session: SessionDep, user: CurrentUserDep):
    swap, item = settle_accept(session, swap_id, user)
    notify(
        session,
        swap.requester_id,
        "swap_accepted",
        "Swap Accepted",
        f'Your swap request for "{item.title}" has been accepted!',
        swap.id,
    )
    return {"message": "Swap accepted successfully", "swap": swap}


def _simple_transition(
    session: Session, swap_id: int, user: User, target: SwapStatus
) -> tuple:
    swap, item, party = _load_for_transition(session, swap_id, user, target)
    swap.status = target
    session.add(swap)
    session.commit()
    session.refresh(swap)
    logger.info("Swap %s %s by user %s", swap.id, target.value, user.id)
    return swap, item, party


@router.put("/{swap_id}/reject", response_model=SwapResponse)
def reject_swap(swap_id: int, session: SessionDep, user: CurrentUserDep):
    swap, item, _ = _simple_transition(session, swap_id, user, SwapStatus.REJECTED)
    notify(
        session,
        swap.requester_id,
        "swap_rejected",
        "Swap Rejected",
        f'Your swap request for "{item.title}" has been rejected.',
        swap.id,
    )
    return {"message": "Swap rejected successfully", "swap": swap}


@router.put("/{swap_id}/cancel", response_model=SwapResponse)
def cancel_swap(swap_id: int, session: SessionDep, user: CurrentUserDep):
    swap, item, _ = _simple_transition(session, swap_id, user, SwapStatus.CANCELLED)
    notify(
        session,
        item.user_id,
        "swap_cancelled",
        "Swap Cancelled",
        f'Swap request for "{item.title}" has been cancelled.',
        swap.id,
    )
    return {"message": "Swap cancelled successfully", "swap": swap}


@router.put("/{swap_id}/complete", response_model=SwapResponse)
def complete_swap(swap_id: int, session: SessionDep, user: CurrentUserDep):
    swap, item, party = _simple_transition(session, swap_id, user, SwapStatus.COMPLETED)
    other_id = item.user_id if party == SwapParty.REQUESTER else swap.requester_id
    notify(
        session,
        other_id,
        "swap_completed",
        "Swap Completed",
        f'Swap for "{item.title}" has been marked as completed.',
        swap.id,
    )
    return {"message": "Swap completed successfully", "swap": swap}
