from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ItemCondition(str, Enum):
    NEW = "new"
    LIKE_NEW = "like_new"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class SwapStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    EARNED = "earned"
    SPENT = "spent"
    REFUNDED = "refunded"


class SwapParty(str, Enum):
    OWNER = "owner"
    REQUESTER = "requester"


class InvalidTransition(Exception):
    """Raised when a swap is asked to move to a status it cannot reach."""

    def __init__(self, current: SwapStatus, target: SwapStatus):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot change swap from {current.value} to {target.value}"
        )


# target status -> (statuses it may be entered from, parties allowed to trigger it)
SWAP_TRANSITIONS: Dict[SwapStatus, tuple] = {
    SwapStatus.ACCEPTED: (
        frozenset({SwapStatus.PENDING}),
        frozenset({SwapParty.OWNER}),
    ),
    SwapStatus.REJECTED: (
        frozenset({SwapStatus.PENDING}),
        frozenset({SwapParty.OWNER}),
    ),
    SwapStatus.CANCELLED: (
        frozenset({SwapStatus.PENDING}),
        frozenset({SwapParty.REQUESTER}),
    ),
    SwapStatus.COMPLETED: (
        frozenset({SwapStatus.ACCEPTED}),
        frozenset({SwapParty.OWNER, SwapParty.REQUESTER}),
    ),
}

TERMINAL_STATUSES: FrozenSet[SwapStatus] = frozenset(
    {SwapStatus.REJECTED, SwapStatus.CANCELLED, SwapStatus.COMPLETED}
)


def check_transition(current: SwapStatus, target: SwapStatus) -> None:
    """
    Validate a swap status change.
    Raises InvalidTransition unless `target` is reachable from `current`.
    """
    rule = SWAP_TRANSITIONS.get(target)
    if rule is None or current not in rule[0]:
        raise InvalidTransition(current, target)


def allowed_parties(target: SwapStatus) -> FrozenSet[SwapParty]:
    rule = SWAP_TRANSITIONS.get(target)
    return rule[1] if rule else frozenset()


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    password_hash: str
    name: str
    avatar: Optional[str] = None
    bio: Optional[str] = None
    points: int = 100
    role: Role = Role.USER
    is_verified: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow}
    )


class Item(SQLModel, table=True):
    __tablename__ = "items"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", ondelete="CASCADE", index=True)

    title: str
    description: Optional[str] = None
    category: str = Field(index=True)
    type: str
    size: Optional[str] = None
    condition: ItemCondition
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    images: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    points_value: int = 0
    is_available: bool = True
    is_approved: bool = False
    ai_category: Optional[str] = None
    ai_tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow}
    )


class Swap(SQLModel, table=True):
    __tablename__ = "swaps"

    id: Optional[int] = Field(default=None, primary_key=True)
    requester_id: int = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    item_id: int = Field(foreign_key="items.id", ondelete="CASCADE", index=True)
    offered_item_id: Optional[int] = Field(
        default=None, foreign_key="items.id", ondelete="SET NULL"
    )
    offered_points: Optional[int] = None
    status: SwapStatus = Field(default=SwapStatus.PENDING, index=True)
    message: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow}
    )


class PointTransaction(SQLModel, table=True):
    __tablename__ = "point_transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    type: TransactionType
    amount: int  # always positive; direction comes from `type`
    description: Optional[str] = None
    related_item_id: Optional[int] = Field(
        default=None, foreign_key="items.id", ondelete="SET NULL"
    )
    created_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    type: str  # swap_request, swap_accepted, item_approved, ...
    title: str
    message: Optional[str] = None
    is_read: bool = False
    related_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
