"""Staff sign-in and the access dependencies guarding dashboard routes"""

from datetime import timedelta
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bookflow.config import settings
from bookflow.database import get_db, utcnow
from bookflow.models.user import User, UserRole
from bookflow.schemas.auth import Token, RefreshRequest, UserResponse, RoleCheckResponse

router = APIRouter()
logger = structlog.get_logger()

ACCESS = "access"
REFRESH = "refresh"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _sign(user: User, kind: str, lifetime: timedelta, **claims: Any) -> str:
    payload: Dict[str, Any] = {
        "sub": str(user.id),
        "type": kind,
        "exp": utcnow() + lifetime,
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user: User) -> str:
    """Short-lived bearer token carrying the tenant and role claims"""
    return _sign(
        user,
        ACCESS,
        timedelta(minutes=settings.access_token_expire_minutes),
        tenant_id=str(user.tenant_id) if user.tenant_id else None,
        role=user.role.value,
    )


def create_refresh_token(user: User) -> str:
    return _sign(user, REFRESH, timedelta(days=settings.refresh_token_expire_days))


def read_subject(token: str, kind: str) -> UUID:
    """Return the user id inside a token, or raise 401 if it is not a valid token of ``kind``"""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise _unauthorized("Could not validate credentials")

    subject = claims.get("sub")
    if subject is None or claims.get("type") != kind:
        raise _unauthorized("Could not validate credentials")
    try:
        return UUID(subject)
    except ValueError:
        raise _unauthorized("Could not validate credentials")


async def _active_user(db: AsyncSession, user_id: UUID) -> Optional[User]:
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def _start_session(user: User) -> Token:
    # Only the latest refresh token stays valid
    user.refresh_token = create_refresh_token(user)
    return Token(
        access_token=create_access_token(user),
        refresh_token=user.refresh_token,
        expires_in=settings.access_token_expire_minutes * 60,
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await _active_user(db, read_subject(token, ACCESS))
    if user is None:
        raise _unauthorized("Could not validate credentials")
    return user


def require_role(minimum: UserRole):
    """Dependency factory rejecting users below ``minimum`` in the role ladder"""
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_permission(minimum):
            raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user
    return role_checker


def check_tenant_access(tenant_id: UUID, user: User) -> None:
    """Super admins reach every restaurant; everyone else only their own"""
    if user.role != UserRole.SUPER_ADMIN and user.tenant_id != tenant_id:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Access denied to this tenant")


def require_tenant_role(minimum: UserRole):
    """Like ``require_role`` but also scopes the caller to the ``tenant_id`` path parameter"""
    async def tenant_role_checker(
        tenant_id: UUID,
        current_user: User = Depends(require_role(minimum)),
    ) -> User:
        check_tenant_access(tenant_id, current_user)
        return current_user
    return tenant_role_checker


@router.post("/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """Exchange staff email and password for a token pair"""
    user = await db.scalar(select(User).where(User.email == form_data.username))

    if user is None or not pwd_context.verify(form_data.password, user.hashed_password):
        logger.info("Staff login rejected", email=form_data.username)
        raise _unauthorized("Incorrect email or password")
    if not user.is_active:
        logger.info("Disabled staff account tried to log in", user_id=str(user.id))
        raise _unauthorized("User account is disabled")

    user.last_login = utcnow()
    session = _start_session(user)
    await db.commit()

    logger.info("Staff logged in", user_id=str(user.id), role=user.role.value)
    return session


@router.post("/refresh", response_model=Token)
async def refresh_token(
    request: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await _active_user(db, read_subject(request.refresh_token, REFRESH))
    if user is None or user.refresh_token != request.refresh_token:
        raise _unauthorized("Invalid refresh token")

    session = _start_session(user)
    await db.commit()
    return session


@router.get("/me", response_model=UserResponse)
async def whoami(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/me/role", response_model=RoleCheckResponse)
async def my_role(current_user: User = Depends(get_current_user)):
    """Authoritative staff flag, read through by the client role cache"""
    return RoleCheckResponse(
        user_id=current_user.id,
        role=current_user.role,
        is_staff=current_user.is_staff,
        tenant_id=current_user.tenant_id,
    )


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Revoke the refresh token; the access token lapses on its own"""
    current_user.refresh_token = None
    await db.commit()
    logger.info("Staff logged out", user_id=str(current_user.id))
    return {"message": "Successfully logged out"}
