from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import jwt
import structlog
from stac.db import get_session, utcnow
from stac.auth_deps import get_current_user
from stac.models.user import User
from stac.schemas.auth import RegisterRequest, LoginRequest, UserPublic, TokenPair
from stac.security import hash_password, verify_password, make_access_token, make_refresh_token, decode_token
from stac.services.room_ids import normalize_username

router = APIRouter(prefix="/auth", tags=["auth"])
log = structlog.get_logger()

def _public(user: User) -> UserPublic:
    return UserPublic(id=user.id, username=user.username, first_name=user.first_name,
                      last_name=user.last_name, created_at=user.created_at)

@router.post("/register", status_code=201, response_model=UserPublic)
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_session)):
    username = normalize_username(payload.username)
    exists = await session.scalar(select(User).where(User.username == username))
    if exists:
        raise HTTPException(status_code=409, detail="Username already registered")
    user = User(
        username=username,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    log.info("user_registered", user_id=user.id, username=user.username)
    return _public(user)

@router.post("/login", response_model=TokenPair)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_session)):
    user = await session.scalar(select(User).where(User.username == normalize_username(payload.username)))
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user.last_seen = utcnow()
    await session.commit()
    return TokenPair(access=make_access_token(str(user.id)), refresh=make_refresh_token(str(user.id)))

@router.post("/refresh", response_model=TokenPair)
async def refresh(authorization: str | None = Header(None)):
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing refresh token")
    token = authorization.split(" ", 1)[1]
    try:
        data = decode_token(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if data.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Wrong token type")
    sub = data.get("sub")
    return TokenPair(access=make_access_token(sub), refresh=make_refresh_token(sub))

@router.get("/me", response_model=UserPublic)
async def me(user: User = Depends(get_current_user)):
    return _public(user)
