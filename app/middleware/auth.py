"""
Authentication: resolving a request to the calling user.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.errors import UnauthorizedError

logger = logging.getLogger("app.auth_middleware")


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str = "USER"


class IdentityResolver(ABC):
    """Resolves an inbound request to an ``Identity`` or raises ``UnauthorizedError``."""

    @abstractmethod
    def resolve(self, request: Request) -> Identity:
        ...


class TokenIdentityResolver(IdentityResolver):
    """
    Bearer tokens signed with a secret key.

    Tokens carry ``{"user_id", "role"}`` and expire after ``max_age`` seconds.
    """

    def __init__(self, secret_key: str, max_age: int = 86400, salt: str = "payroll-auth"):
        if not secret_key:
            raise ValueError("An authentication secret key is required")
        self.serializer = URLSafeTimedSerializer(secret_key, salt=salt)
        self.max_age = max_age

    def issue_token(self, user_id: str, role: str = "USER") -> str:
        return self.serializer.dumps({"user_id": user_id, "role": role})

    def verify_token(self, token: str) -> Identity:
        try:
            payload = self.serializer.loads(token, max_age=self.max_age)
        except SignatureExpired:
            raise UnauthorizedError("Token expired")
        except BadSignature:
            raise UnauthorizedError("Invalid token")

        user_id = payload.get("user_id") if isinstance(payload, dict) else None
        if not user_id:
            raise UnauthorizedError("Invalid token")
        return Identity(user_id=user_id, role=payload.get("role", "USER"))

    def resolve(self, request: Request) -> Identity:
        token = self._get_bearer_token(request)
        if not token:
            raise UnauthorizedError("Missing or invalid authorization header")
        return self.verify_token(token)

    @staticmethod
    def _get_bearer_token(request: Request) -> Optional[str]:
        header = request.headers.get("authorization", "")
        if not header.startswith("Bearer "):
            return None
        return header[len("Bearer "):].strip() or None


def get_current_identity(request: Request) -> Identity:
    """
    FastAPI dependency returning the caller's identity.
    """
    resolver: IdentityResolver = request.app.state.identity_resolver
    identity = resolver.resolve(request)
    logger.debug(f"Resolved identity {identity.user_id} ({identity.role})")
    return identity
