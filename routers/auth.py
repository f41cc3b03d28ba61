import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from itsdangerous import BadData, BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext
from sqlmodel import select

import config
from db import SessionDep
from models import Role, User
from schemas import AuthResponse, LoginData, ProfileUpdate, RegisterData, UserRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

serializer = URLSafeTimedSerializer(config.SECRET_KEY, salt="rewear-auth")


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int) -> str:
    """
    Sign the user id into a timestamped bearer token.
    Example payload:
        {"user_id": 3}
    """
    return serializer.dumps({"user_id": user_id})


def read_access_token(
    token: str, max_age_seconds: int = config.TOKEN_MAX_AGE_SECONDS
) -> int:
    """
    Return the user id carried by `token`.
    Raises SignatureExpired for stale tokens and BadSignature for anything forged or garbled.
    """
    data = serializer.loads(token, max_age=max_age_seconds)
    if not isinstance(data, dict) or not isinstance(data.get("user_id"), int):
        raise BadSignature("Token payload has no user id")
    return data["user_id"]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(
    session: SessionDep,
    authorization: Optional[str] = Header(default=None),
) -> User:
    """
    Reads the bearer token, verifies it and re-loads the user row.
    Raises 401 with a message telling missing, invalid and expired tokens apart.
    """
    token = _bearer_token(authorization)
    if token is None:
        raise _unauthorized("Access denied. No token provided.")

    try:
        user_id = read_access_token(token)
    except SignatureExpired:
        raise _unauthorized("Token expired.")
    except BadData:
        raise _unauthorized("Invalid token.")

    user = session.get(User, user_id)
    if user is None:
        raise _unauthorized("Invalid token. User not found.")
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


def get_optional_user(
    session: SessionDep,
    authorization: Optional[str] = Header(default=None),
) -> Optional[User]:
    """
    Like get_current_user, but:
    - returns None if there is no token or it does not verify instead of raising 401.
    """
    token = _bearer_token(authorization)
    if token is None:
        return None
    try:
        user_id = read_access_token(token)
    except BadData:
        return None
    return session.get(User, user_id)


OptionalUserDep = Annotated[Optional[User], Depends(get_optional_user)]


def require_admin(user: CurrentUserDep) -> User:
    if user.role != Role.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Admin privileges required.",
        )
    return user


AdminDep = Annotated[User, Depends(require_admin)]


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterData, session: SessionDep):
    """
    Register a new user with a hashed password and return a bearer token.
    """
    email = payload.email.lower()
    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=email,
        name=payload.name.strip(),
        password_hash=hash_password(payload.password),
        points=config.STARTING_POINTS,
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    if user.id is None:
        raise HTTPException(
            status_code=500, detail="User was not created successfully"
        )

    logger.info("Registered user %s", user.id)
    return {
        "message": "Registration successful",
        "token": create_access_token(user.id),
        "user": user,
    }


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginData, session: SessionDep):
    """
    Log in with email + password and return a bearer token.
    """
    user = session.exec(
        select(User).where(User.email == payload.email.lower())
    ).first()

    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid email or password")

    if user.id is None:
        raise HTTPException(status_code=500, detail="User has no ID in database")

    logger.info("User %s logged in", user.id)
    return {
        "message": "Login successful",
        "token": create_access_token(user.id),
        "user": user,
    }


@router.get("/me", response_model=UserRead)
def read_me(user: CurrentUserDep):
    """
    Get info about the currently logged-in user.
    """
    return user


@router.put("/profile", response_model=UserRead)
def update_profile(payload: ProfileUpdate, session: SessionDep, user: CurrentUserDep):
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(user, field, value)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user
