"""
Caller identity and authorization helpers.

Tokens are issued by the external auth server; this service only verifies
them.  Claims used:

* ``uid``   -- stable user id (for drivers: matches ``assigned_driver_uid``)
* ``sub``   -- username
* ``role``  -- ``admin`` | ``dispatcher`` | ``driver`` | ``booker``
* ``email`` -- used to match passengers/bookers to their bookings
"""

from __future__ import annotations

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config import settings
from src.domain.entities import CallerIdentity
from src.domain.enums import UserRole
from src.infrastructure.models import BookingModel

bearer_scheme = HTTPBearer(auto_error=False)


class InvalidToken(Exception):
    pass


def decode_token(token: str) -> CallerIdentity:
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except jwt.PyJWTError as exc:
        raise InvalidToken(str(exc)) from exc

    user_id = claims.get("uid") or claims.get("sub")
    if not user_id:
        raise InvalidToken("token has neither uid nor sub claim")
    try:
        role = UserRole(claims["role"]) if claims.get("role") else None
    except ValueError:
        role = None
    return CallerIdentity(
        user_id=str(user_id),
        username=claims.get("sub"),
        role=role,
        email=claims.get("email"),
    )


def create_token(
    user_id: str,
    role: UserRole,
    username: Optional[str] = None,
    email: Optional[str] = None,
) -> str:
    """Mint a token with the claims above (seed data and local testing)."""
    claims = {"uid": user_id, "sub": username or user_id, "role": role.value}
    if email:
        claims["email"] = email
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


# ── FastAPI dependencies ──────────────────────────────────────────────


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CallerIdentity:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_token(credentials.credentials)
    except InvalidToken:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_driver(
    user: CallerIdentity = Depends(get_current_user),
) -> CallerIdentity:
    if not user.is_driver:
        raise HTTPException(status_code=403, detail="Driver role required")
    return user


async def require_staff(
    user: CallerIdentity = Depends(get_current_user),
) -> CallerIdentity:
    if not user.is_staff:
        raise HTTPException(status_code=403, detail="Staff role required")
    return user


# ── Ride visibility ───────────────────────────────────────────────────


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


def is_booking_party(user: CallerIdentity, booking: BookingModel) -> bool:
    """Booker or passenger, matched by contact email rather than a stored id."""
    return _same_email(user.email, booking.booker_email) or _same_email(
        user.email, booking.passenger_email
    )


def can_view_ride(user: CallerIdentity, booking: BookingModel) -> bool:
    if user.is_staff:
        return True
    if user.is_driver and booking.assigned_driver_uid == user.user_id:
        return True
    return is_booking_party(user, booking)


def can_access_booking(user: CallerIdentity, booking: BookingModel) -> bool:
    return user.is_staff or booking.created_by_user_id == user.user_id
