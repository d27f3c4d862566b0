"""
Security Module - Authentication & Authorization
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterable, List, Optional
import logging
import threading
import uuid

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from finhub.core.clock import Clock
from finhub.core.config import Settings, settings
from finhub.core.database import get_db
from finhub.core.exceptions import (
    Forbidden, InvalidToken, NotAuthenticated, TokenExpired, TokenRevoked
)

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

# Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, as carried by a verified access token"""
    user_id: int
    company_id: int
    username: str
    token: str
    token_id: str
    expires_at: float


class TokenManager:
    """
    Issues and verifies signed JWTs.

    Access tokens carry {user, company, username} and live
    ACCESS_TOKEN_EXPIRE_MINUTES; refresh tokens carry only the user and are
    signed with a separate key. Expiry is checked against the injected clock.
    """

    def __init__(self, config: Settings, clock: Clock):
        self.config = config
        self.clock = clock

    def _encode(self, claims: dict, key: str, lifetime: timedelta) -> str:
        now = self.clock.now()
        to_encode = dict(claims)
        to_encode.update({
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
        })
        return jwt.encode(to_encode, key, algorithm=self.config.ALGORITHM)

    def create_access_token(self, user_id: int, company_id: int, username: str) -> str:
        """Create a JWT access token scoped to one company"""
        return self._encode(
            {
                "sub": str(user_id),
                "company_id": company_id,
                "username": username,
                "type": ACCESS_TOKEN_TYPE,
            },
            self.config.SECRET_KEY,
            timedelta(minutes=self.config.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    def create_refresh_token(self, user_id: int) -> str:
        """Create a JWT refresh token bound to the user only"""
        return self._encode(
            {"sub": str(user_id), "type": REFRESH_TOKEN_TYPE},
            self.config.REFRESH_SECRET_KEY,
            timedelta(days=self.config.REFRESH_TOKEN_EXPIRE_DAYS),
        )

    def _decode(self, token: str, key: str, expected_type: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[self.config.ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            raise InvalidToken("Invalid token")

        if payload.get("type") != expected_type or not payload.get("sub") or not payload.get("jti"):
            raise InvalidToken("Invalid token payload")

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidToken("Invalid token payload")
        if exp <= self.clock.timestamp():
            raise TokenExpired()

        return payload

    def decode_access_token(self, token: str) -> dict:
        payload = self._decode(token, self.config.SECRET_KEY, ACCESS_TOKEN_TYPE)
        if payload.get("company_id") is None or not payload.get("username"):
            raise InvalidToken("Invalid token payload")
        return payload

    def decode_refresh_token(self, token: str) -> dict:
        return self._decode(token, self.config.REFRESH_SECRET_KEY, REFRESH_TOKEN_TYPE)

    def identity_from_token(self, token: str) -> Identity:
        payload = self.decode_access_token(token)
        try:
            return Identity(
                user_id=int(payload["sub"]),
                company_id=int(payload["company_id"]),
                username=payload["username"],
                token=token,
                token_id=payload["jti"],
                expires_at=float(payload["exp"]),
            )
        except (TypeError, ValueError):
            raise InvalidToken("Invalid token payload")


class TokenRevocationList:
    """
    Process-local set of revoked token ids.

    Each entry is kept only until the token would have expired anyway.
    Nothing is persisted: a restart forgets revocations.
    """

    def __init__(self, clock: Clock):
        self.clock = clock
        self._entries: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _purge(self, now: float):
        expired = [jti for jti, exp in self._entries.items() if exp <= now]
        for jti in expired:
            del self._entries[jti]

    def revoke(self, token_id: str, expires_at: float) -> None:
        with self._lock:
            now = self.clock.timestamp()
            self._purge(now)
            if expires_at > now:
                self._entries[token_id] = expires_at

    def is_revoked(self, token_id: str) -> bool:
        with self._lock:
            self._purge(self.clock.timestamp())
            return token_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            self._purge(self.clock.timestamp())
            return len(self._entries)


# ==================== APP-SCOPED COMPONENTS ====================

def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager


def get_revocation_list(request: Request) -> TokenRevocationList:
    return request.app.state.revocation_list


def get_permission_resolver(request: Request):
    return request.app.state.permission_resolver


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Bearer header first, then the access_token cookie set at login"""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get("access_token")


async def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    token_manager: TokenManager = Depends(get_token_manager),
    revocation_list: TokenRevocationList = Depends(get_revocation_list),
) -> Identity:
    """
    Dependency to get the authenticated identity from the access token.
    """
    token = extract_token(request, credentials)
    if not token:
        raise NotAuthenticated("Access token is required")

    identity = token_manager.identity_from_token(token)

    if revocation_list.is_revoked(identity.token_id):
        raise TokenRevoked()

    return identity


def authorize(
    db: Session,
    resolver,
    identity: Optional[Identity],
    company_id: int,
    required_permissions: Iterable[str],
) -> frozenset:
    """
    Allow only if every required permission is in the caller's resolved set
    for ``company_id``. Returns the resolved set.
    """
    if identity is None:
        raise NotAuthenticated()

    permissions = resolver.resolve(db, identity.user_id, company_id)
    missing = set(required_permissions) - permissions
    if missing:
        logger.info(
            f"Permission denied for user={identity.user_id} company={company_id}: "
            f"missing {sorted(missing)}"
        )
        raise Forbidden(details={"missing": sorted(missing)})
    return permissions


class PermissionChecker:
    """Dependency for checking user permissions in the token's company"""

    def __init__(self, required_permissions: List[str]):
        self.required_permissions = set(required_permissions)

    def __call__(
        self,
        identity: Identity = Depends(get_current_identity),
        db: Session = Depends(get_db),
        resolver=Depends(get_permission_resolver),
    ) -> Identity:
        authorize(db, resolver, identity, identity.company_id, self.required_permissions)
        return identity
