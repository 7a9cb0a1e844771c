# auth.py — Authentication and principals for Donelist
# Features:
# - JWT access/refresh tokens for users
# - JWT link-share tokens (no database lookup on use)
# - bcrypt password hashing
# - Brute force protection on login
# - Polymorphic principal: CurrentUser | LinkShareAuth
# - General user settings, user search and password reset tokens

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List, Union, Literal
from collections import defaultdict

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from errors import (
    GenericForbidden, UsernameExists, UserEmailExists, UserDoesNotExist,
    NoUsernamePassword, NoPasswordResetToken, InvalidPasswordResetToken,
)
from models import User, LinkSharing, utcnow

logger = logging.getLogger("donelist.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or SECRET_KEY == "change-this-to-a-secure-random-key-in-production":
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "⚠️  JWT_SECRET_KEY not set or insecure. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
LINK_SHARE_TOKEN_EXPIRE_HOURS = int(os.getenv("LINK_SHARE_TOKEN_EXPIRE_HOURS", "72"))
PASSWORD_RESET_TOKEN_EXPIRE_HOURS = int(os.getenv("PASSWORD_RESET_TOKEN_EXPIRE_HOURS", "24"))
MIN_PASSWORD_LENGTH = 8
MAX_LOGIN_ATTEMPTS = 5
LOGIN_LOCKOUT_MINUTES = 15
USER_SEARCH_LIMIT = 50

security = HTTPBearer()

# In-memory brute force tracker (per process)
_login_attempts: Dict[str, list] = defaultdict(list)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    username: str = Field(..., min_length=1, max_length=250)
    email: Optional[EmailStr] = None
    password: str
    name: str = ""

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        if any(c.isspace() for c in v):
            raise ValueError("Username must not contain whitespace")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


def check_password_strength(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not any(c.isupper() for c in v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one digit")
    return v


class UserGeneralSettings(BaseModel):
    """Partial update: fields left out keep their stored value."""
    name: Optional[str] = Field(None, max_length=250)
    email_reminders_enabled: Optional[bool] = None
    overdue_tasks_reminders_enabled: Optional[bool] = None
    discoverable_by_name: Optional[bool] = None
    discoverable_by_email: Optional[bool] = None


SETTINGS_FIELDS = tuple(UserGeneralSettings.model_fields)


class PasswordTokenRequest(BaseModel):
    email: str = Field(default="", max_length=250)


class PasswordReset(BaseModel):
    token: str = ""
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return check_password_strength(v)


class UserLogin(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Dict[str, Any]


class RefreshRequest(BaseModel):
    refresh_token: str


class CurrentUser(BaseModel):
    kind: Literal["user"] = "user"
    id: int
    username: str
    email: Optional[str] = None
    name: str = ""
    is_active: bool = True

    def get_id(self) -> int:
        return self.id


class LinkShareAuth(BaseModel):
    """A link share acting as a principal.

    Built from token claims alone. Its id is the negated share id so it can
    never collide with a user id.
    """
    kind: Literal["link_share"] = "link_share"
    share_id: int
    hash: str
    list_id: int
    right: int
    shared_by_id: int

    @property
    def id(self) -> int:
        return -self.share_id

    def get_id(self) -> int:
        return -self.share_id


Principal = Union[CurrentUser, LinkShareAuth]


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Token issuing, password hashing and user authentication"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def _create_token(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type,
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        delta = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        return AuthService._create_token(data, "access", delta)

    @staticmethod
    def create_refresh_token(data: Dict[str, Any]) -> str:
        return AuthService._create_token(data, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))

    @staticmethod
    def create_link_share_token(share: LinkSharing) -> str:
        claims = {
            "id": share.id,
            "hash": share.hash,
            "list_id": share.list_id,
            "right": share.right,
            "sharedByID": share.shared_by_id,
        }
        return AuthService._create_token(
            claims, "link_share", timedelta(hours=LINK_SHARE_TOKEN_EXPIRE_HOURS),
        )

    @staticmethod
    def user_token_data(user: User) -> Dict[str, Any]:
        return {"sub": str(user.id), "username": user.username}

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
            return payload
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    def _check_brute_force(username: str) -> None:
        """Check if login attempts exceed threshold"""
        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=LOGIN_LOCKOUT_MINUTES)
        _login_attempts[username] = [t for t in _login_attempts[username] if t > cutoff]
        if len(_login_attempts[username]) >= MAX_LOGIN_ATTEMPTS:
            raise HTTPException(
                status_code=429,
                detail=f"Too many login attempts. Try again in {LOGIN_LOCKOUT_MINUTES} minutes.",
            )

    @staticmethod
    def _record_failed_attempt(username: str) -> None:
        _login_attempts[username].append(datetime.now(timezone.utc))

    @staticmethod
    def _clear_attempts(username: str) -> None:
        _login_attempts.pop(username, None)

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        result = await db.execute(select(User).where(User.username == user_data.username))
        if result.scalar_one_or_none():
            raise UsernameExists()
        if user_data.email:
            result = await db.execute(select(User).where(User.email == user_data.email))
            if result.scalar_one_or_none():
                raise UserEmailExists()

        new_user = User(
            username=user_data.username,
            email=user_data.email,
            name=user_data.name,
            password_hash=AuthService.hash_password(user_data.password),
            is_active=True,
        )
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
        logger.info(f"Registered user {new_user.username} ({new_user.id})")
        return new_user

    @staticmethod
    async def authenticate_user(username: str, password: str, db: AsyncSession) -> Optional[User]:
        AuthService._check_brute_force(username)

        result = await db.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()

        if not user or not AuthService.verify_password(password, user.password_hash):
            AuthService._record_failed_attempt(username)
            return None

        if not user.is_active:
            return None

        AuthService._clear_attempts(username)
        return user

    @staticmethod
    async def update_general_settings(db: AsyncSession, user: User, settings: UserGeneralSettings) -> User:
        for field, value in settings.model_dump(exclude_none=True).items():
            setattr(user, field, value)
        user.updated = utcnow()
        db.add(user)
        await db.flush()
        return user

    @staticmethod
    async def request_password_reset(db: AsyncSession, email: str) -> User:
        """Store a fresh reset token on the user owning ``email``.

        No mail is sent; delivering the token is left to the operator.
        """
        if not email:
            raise NoUsernamePassword()
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None:
            raise UserDoesNotExist(email=email)

        user.password_reset_token = secrets.token_urlsafe(64)
        user.password_reset_token_expires = utcnow() + timedelta(hours=PASSWORD_RESET_TOKEN_EXPIRE_HOURS)
        db.add(user)
        await db.flush()
        logger.info(f"Issued password reset token for user {user.id}")
        return user

    @staticmethod
    async def reset_password(db: AsyncSession, token: str, new_password: str) -> User:
        if not token:
            raise NoPasswordResetToken()
        result = await db.execute(
            select(User).where(
                User.password_reset_token == token,
                User.password_reset_token_expires > utcnow(),
            )
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise InvalidPasswordResetToken()

        user.password_hash = AuthService.hash_password(new_password)
        user.password_reset_token = None
        user.password_reset_token_expires = None
        db.add(user)
        await db.flush()
        AuthService._clear_attempts(user.username)
        logger.info(f"Password reset for user {user.id}")
        return user

    @staticmethod
    async def search_users(db: AsyncSession, term: str) -> List[User]:
        # Exact username always matches; name and email only when the user opted in.
        if not term:
            return []
        query = select(User).where(
            User.is_active.is_(True),
            or_(
                User.username == term,
                and_(User.discoverable_by_name.is_(True), User.name.ilike(f"%{term}%")),
                and_(User.discoverable_by_email.is_(True), User.email == term),
            ),
        ).order_by(User.id).limit(USER_SEARCH_LIMIT)
        result = await db.execute(query)
        return list(result.scalars().all())


def current_user_from_model(user: User) -> CurrentUser:
    return CurrentUser(
        id=user.id,
        username=user.username,
        email=user.email,
        name=user.name or "",
        is_active=user.is_active,
    )


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_auth(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> Principal:
    """Resolve the bearer token into a user or a link-share principal."""
    payload = AuthService.verify_token(credentials.credentials)
    token_type = payload.get("type")

    if token_type == "link_share":
        try:
            return LinkShareAuth(
                share_id=int(payload["id"]),
                hash=payload["hash"],
                list_id=int(payload["list_id"]),
                right=int(payload["right"]),
                shared_by_id=int(payload["sharedByID"]),
            )
        except (KeyError, TypeError, ValueError):
            raise HTTPException(status_code=401, detail="Invalid token")

    if token_type != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return current_user_from_model(user)


async def get_current_user(principal: Principal = Depends(get_current_auth)) -> CurrentUser:
    """Like get_current_auth, but link shares are rejected."""
    if isinstance(principal, LinkShareAuth):
        raise GenericForbidden()
    return principal
