import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from authx import AuthX, AuthXConfig, TokenPayload
from authx.exceptions import AuthXException
from core.config import settings
from core.database import SessionLocal, get_db
from repositories.refresh_token_repo import RefreshTokenRepository
from repositories.user_repo import UserRepository
from schemas.auth import LoginIn, RegisterIn, UserOut
from services.auth_services import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])

_cookie_samesite = settings.JWT_COOKIE_SAMESITE.lower() if settings.JWT_COOKIE_SAMESITE else None
_cookie_domain = settings.JWT_COOKIE_DOMAIN or None

config = AuthXConfig(
    JWT_SECRET_KEY=settings.SECRET_KEY,
    JWT_ALGORITHM=settings.JWT_ALG,
    JWT_ACCESS_TOKEN_EXPIRES=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    JWT_REFRESH_TOKEN_EXPIRES=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    JWT_TOKEN_LOCATION=["cookies"],
    JWT_ACCESS_COOKIE_NAME=settings.JWT_ACCESS_COOKIE_NAME,
    JWT_REFRESH_COOKIE_NAME=settings.JWT_REFRESH_COOKIE_NAME,
    JWT_COOKIE_SAMESITE=_cookie_samesite or "lax",
    JWT_COOKIE_SECURE=settings.JWT_COOKIE_SECURE,
    JWT_COOKIE_DOMAIN=_cookie_domain,
    JWT_COOKIE_CSRF_PROTECT=settings.JWT_COOKIE_CSRF_PROTECT,
)

security = AuthX(config=config)


def _decode_token(token: str) -> TokenPayload:
    return TokenPayload.decode(
        token=token,
        key=security.config.public_key,
        algorithms=[security.config.JWT_ALGORITHM],
    )


def _exp_to_datetime(exp_value: float | int | datetime) -> datetime:
    if isinstance(exp_value, datetime):
        moment = exp_value if exp_value.tzinfo else exp_value.replace(tzinfo=timezone.utc)
    else:
        moment = datetime.fromtimestamp(exp_value, tz=timezone.utc)
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _ensure_refresh_metadata(payload: TokenPayload) -> tuple[str, datetime]:
    if payload.jti is None:
        raise ValueError("Refresh token does not contain jti")
    if payload.exp is None:
        raise ValueError("Refresh token missing expiry")
    return payload.jti, _exp_to_datetime(payload.exp)


def _is_token_revoked(token: str, **_: Any) -> bool:
    try:
        payload = _decode_token(token)
    except Exception:
        return True

    if payload.type != "refresh" or payload.jti is None:
        return False

    db = SessionLocal()
    try:
        return not RefreshTokenRepository(db).is_active(payload.jti)
    finally:
        db.close()


security.set_token_blocklist(_is_token_revoked)


async def get_caller_id(request: Request) -> str | None:
    """Subject of the access token on the request, or None when signed out."""
    try:
        payload = await security.access_token_required(request)
    except AuthXException as exc:
        logger.debug("No authenticated caller: %s", exc)
        return None
    return payload.sub or None


async def require_caller_id(caller_id: str | None = Depends(get_caller_id)) -> str:
    if caller_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return caller_id


def _issue_tokens(response: Response, db: Session, user_id: int, *, replace: bool) -> None:
    access_token = security.create_access_token(uid=str(user_id))
    refresh_token = security.create_refresh_token(uid=str(user_id))

    jti, expires_at = _ensure_refresh_metadata(_decode_token(refresh_token))
    repo = RefreshTokenRepository(db)
    if replace:
        repo.replace_for_user(user_id=user_id, jti=jti, expires_at=expires_at)
    else:
        repo.add(user_id=user_id, jti=jti, expires_at=expires_at)

    security.set_access_cookies(access_token, response)
    security.set_refresh_cookies(refresh_token, response)


@router.post("/register", response_model=UserOut)
async def post_reg(data: RegisterIn, db: Session = Depends(get_db)):
    svc = AuthService(db)
    user = svc.register(email=data.email, username=data.username, password=data.password)
    return UserOut(id=user.id, email=user.email, username=user.username)


@router.post("/login")
async def post_login(response: Response, data: LoginIn, db: Session = Depends(get_db)):
    svc = AuthService(db)
    user = svc.login(email=data.email, password=data.password)
    _issue_tokens(response, db, user.id, replace=True)
    return {"status": "ok"}


@router.get("/me", response_model=UserOut)
async def me(caller_id: str = Depends(require_caller_id), db: Session = Depends(get_db)):
    user = UserRepository(db).get_by_id(int(caller_id))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return UserOut(id=user.id, email=user.email, username=user.username)


@router.post("/logout")
async def logout(
    response: Response,
    payload: TokenPayload = Depends(security.refresh_token_required),
    db: Session = Depends(get_db),
):
    if payload.jti:
        RefreshTokenRepository(db).revoke(payload.jti)
    security.unset_cookies(response)
    return {"ok": True}


@router.post("/refresh")
async def refresh(
    response: Response,
    payload: TokenPayload = Depends(security.refresh_token_required),
    db: Session = Depends(get_db),
):
    try:
        user_id = int(payload.sub)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid subject in token") from exc

    if payload.jti is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token missing identifier")

    repo = RefreshTokenRepository(db)
    try:
        repo.assert_active(jti=payload.jti, user_id=user_id)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    repo.revoke(payload.jti)
    _issue_tokens(response, db, user_id, replace=False)
    return {"status": "ok"}
