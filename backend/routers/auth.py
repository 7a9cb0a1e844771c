# routers/auth.py — Account registration, login, tokens, settings and password reset
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, UserRegister, UserLogin, TokenResponse, RefreshRequest,
    UserGeneralSettings, PasswordTokenRequest, PasswordReset, SETTINGS_FIELDS,
    get_current_user, CurrentUser, ACCESS_TOKEN_EXPIRE_MINUTES,
)
from database import get_db_session
from errors import InvalidRefreshToken, UserDoesNotExist, WrongUsernameOrPassword
from models import User

router = APIRouter(prefix="/api/v1", tags=["Authentication"])


def _issue_tokens(user: User) -> TokenResponse:
    claims = AuthService.user_token_data(user)
    return TokenResponse(
        access_token=AuthService.create_access_token(claims),
        refresh_token=AuthService.create_refresh_token(claims),
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user={"id": user.id, "username": user.username, "name": user.name or "", "email": user.email},
    )


def _settings_of(user: User) -> dict:
    return {field: getattr(user, field) for field in SETTINGS_FIELDS}


async def _load_user(db: AsyncSession, current: CurrentUser) -> User:
    user = await db.get(User, current.id)
    if user is None:
        raise UserDoesNotExist(user_id=current.id)
    return user


@router.post("/auth/register", response_model=TokenResponse)
async def register(body: UserRegister, db: AsyncSession = Depends(get_db_session)):
    user = await AuthService.register_user(body, db)
    return _issue_tokens(user)


@router.post("/auth/login", response_model=TokenResponse)
async def login(body: UserLogin, db: AsyncSession = Depends(get_db_session)):
    user = await AuthService.authenticate_user(body.username, body.password, db)
    if user is None:
        raise WrongUsernameOrPassword()
    return _issue_tokens(user)


@router.post("/auth/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db_session)):
    """Trade a refresh token for a new token pair. Access and link-share tokens are rejected."""
    claims = AuthService.verify_token(body.refresh_token)
    if claims.get("type") != "refresh":
        raise InvalidRefreshToken()

    user = await db.get(User, int(claims.get("sub", 0)))
    if user is None or not user.is_active:
        raise InvalidRefreshToken()
    return _issue_tokens(user)


@router.get("/auth/me")
async def me(user: CurrentUser = Depends(get_current_user)):
    return user.model_dump(exclude={"kind"})


@router.get("/auth/settings/general")
async def get_general_settings(
    db: AsyncSession = Depends(get_db_session),
    current: CurrentUser = Depends(get_current_user),
):
    return _settings_of(await _load_user(db, current))


@router.post("/auth/settings/general")
async def update_general_settings(
    body: UserGeneralSettings,
    db: AsyncSession = Depends(get_db_session),
    current: CurrentUser = Depends(get_current_user),
):
    user = await AuthService.update_general_settings(db, await _load_user(db, current), body)
    await db.commit()
    return _settings_of(user)


@router.post("/auth/password/token")
async def request_password_reset_token(body: PasswordTokenRequest, db: AsyncSession = Depends(get_db_session)):
    await AuthService.request_password_reset(db, body.email)
    await db.commit()
    return {"message": "The password reset token was created."}


@router.post("/auth/password/reset")
async def reset_password(body: PasswordReset, db: AsyncSession = Depends(get_db_session)):
    await AuthService.reset_password(db, body.token, body.new_password)
    await db.commit()
    return {"message": "The password was updated successfully."}


@router.get("/users", tags=["Users"])
async def search_users(
    s: str = Query(default=""),
    db: AsyncSession = Depends(get_db_session),
    current: CurrentUser = Depends(get_current_user),
):
    users = await AuthService.search_users(db, s)
    return [{"id": u.id, "username": u.username, "name": u.name or ""} for u in users]
