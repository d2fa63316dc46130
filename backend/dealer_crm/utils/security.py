"""Bearer token handling and team-member resolution.

Tokens are issued by the marketplace's auth service; this module only
verifies them and maps them to an active team member.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.config import settings
from dealer_crm.database import get_db
from dealer_crm.errors import InvalidRoleError
from dealer_crm.models.user import DealerRole, User
from dealer_crm.schemas.auth import TokenPayload

# HTTP Bearer security
security = HTTPBearer()


def create_access_token(
    user_id: int,
    email: str,
    dealer_id: Optional[int] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create JWT access token (used by tooling and tests)."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": str(user_id),
        "email": email,
        "dealer_id": dealer_id,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[TokenPayload]:
    """Decode and validate JWT access token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
        return TokenPayload(
            sub=int(payload["sub"]),
            email=payload["email"],
            dealer_id=payload.get("dealer_id"),
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (JWTError, KeyError, ValueError):
        return None


async def load_team_member(db: AsyncSession, token: str) -> Optional[User]:
    """Active user with a dealer behind ``token``; ``None`` otherwise."""
    token_data = decode_access_token(token)
    if token_data is None:
        return None
    result = await db.execute(select(User).where(User.id == token_data.sub))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active or user.dealer_id is None:
        return None
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get the acting team member from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No autorizado",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = decode_access_token(credentials.credentials)
    if token_data is None:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == token_data.sub))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cuenta desactivada",
        )
    if user.dealer_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="El usuario no pertenece a una automotora",
        )
    return user


def require_role(*roles: DealerRole):
    """Dependency factory to require specific dealer roles."""
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.dealer_role not in [r.value for r in roles]:
            raise InvalidRoleError("No tienes permisos para esta acción")
        return current_user
    return role_checker


# Convenience role dependencies
require_manager = require_role(DealerRole.OWNER, DealerRole.MANAGER)


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Shared-secret guard for scheduler-triggered endpoints."""
    if not settings.cron_secret or authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No autorizado",
        )
