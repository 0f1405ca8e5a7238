# portal/auth.py
# Authentication module: phone-hash credential checks, JWT issuance and verification
# Tokens are HS256, carry the role as a claim and the user id as `sub`
# RELEVANT FILES: middleware.py, deps.py, config.py, routers/auth.py

from typing import List, Optional
from datetime import datetime, timedelta, timezone
import logging

import bcrypt
import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from fastapi import Depends, Request, Response
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from .config import Settings, get_settings
from .exceptions import AuthorizationError, InvalidCredentials, TokenError
from .models import User
from .schemas import Role
from .utils.phone import normalize_phone

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10


class Identity(BaseModel):
    """Verified token claims for the caller"""

    sub: str  # User ID
    role: Role
    exp: int  # Expiration timestamp
    iat: int  # Issued at timestamp

    @property
    def user_id(self) -> str:
        return self.sub

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


# Credential verification


def hash_phone(raw_phone: str) -> str:
    """Salted bcrypt hash of the normalized phone"""
    normalized = normalize_phone(raw_phone)
    return bcrypt.hashpw(
        normalized.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    ).decode("utf-8")


def check_phone(raw_phone: str, phone_hash: str) -> bool:
    normalized = normalize_phone(raw_phone)
    if not normalized or not phone_hash:
        return False
    try:
        return bcrypt.checkpw(normalized.encode("utf-8"), phone_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        logger.warning("Stored phone hash is malformed")
        return False


# Token issuance and verification


class TokenService:
    """
    Issues and verifies signed, time-bound session tokens.
    Lifetime is fixed at issuance; verification never extends it.
    """

    def __init__(self, settings: Settings):
        self._secret = settings.jwt_secret.get_secret_value()
        self.algorithm = settings.jwt_algorithm
        self.ttl = timedelta(days=settings.token_ttl_days)

    def issue(self, user_id: str, role: Role | str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "role": Role(role).value,
            "sub": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Identity:
        """
        Validate signature and expiry.
        Raises TokenError for anything that is not a currently valid token.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
            return Identity(**payload)
        except ExpiredSignatureError:
            logger.info("Rejected expired token")
            raise TokenError()
        except InvalidTokenError as e:
            logger.warning(f"Rejected invalid token: {type(e).__name__}")
            raise TokenError()
        except ValueError:
            # Claims decoded but do not fit Identity (unknown role, etc.)
            logger.warning("Rejected token with unusable claims")
            raise TokenError()


# Global token service instance
_token_service: Optional[TokenService] = None


def get_token_service() -> TokenService:
    """Get or create the process-wide token service"""
    global _token_service
    if _token_service is None:
        _token_service = TokenService(get_settings())
    return _token_service


def set_auth_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.token_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_auth_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


# FastAPI dependencies


async def get_current_identity(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
) -> Identity:
    """
    Identity verified by the authorization gate for this request.
    Falls back to verifying the cookie when the gate did not run (tests, mounted apps).

    Example:
        @router.get("/me")
        async def me(identity: Identity = Depends(get_current_identity)):
            return {"user_id": identity.user_id}
    """
    identity = getattr(request.state, "identity", None)
    if identity is not None:
        return identity

    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        raise TokenError()
    return tokens.verify(token)


def require_roles(allowed_roles: List[Role]):
    """
    Dependency factory for role-based access control.

    Example:
        @router.get("/admin-only", dependencies=[Depends(require_roles([Role.ADMIN]))])
    """

    async def checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in allowed_roles:
            raise AuthorizationError(
                f"Role '{identity.role.value}' not authorized for this resource"
            )
        return identity

    return checker


class AuthService:
    """Login operations against the user table"""

    def __init__(self, session: AsyncSession, tokens: TokenService):
        self.session = session
        self.tokens = tokens

    async def verify_credentials(self, email: str, raw_phone: str) -> User:
        """
        Return the active user whose normalized phone matches the stored hash.
        Unknown email, inactive account and wrong phone all raise InvalidCredentials.
        """
        normalized_email = (email or "").strip().lower()
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == normalized_email)
        )
        user = result.scalars().first()

        if user is None or not user.active:
            logger.info("Login rejected: unknown or inactive account")
            raise InvalidCredentials()

        valid = await run_in_threadpool(check_phone, raw_phone, user.phone_hash)
        if not valid:
            logger.info(f"Login rejected: credential mismatch for user {user.id}")
            raise InvalidCredentials()

        return user

    async def login(self, email: str, raw_phone: str) -> tuple[User, str]:
        """Verify credentials and issue a token for the user"""
        user = await self.verify_credentials(email, raw_phone)
        token = self.tokens.issue(user.id, user.role)
        logger.info(f"User {user.id} logged in as {user.role}")
        return user, token
