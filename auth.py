from dataclasses import dataclass
import logging
from typing import Optional

from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import Unauthenticated

logger = logging.getLogger(__name__)

TOKEN_SALT = "owner-token"


@dataclass(frozen=True)
class Owner:
    id: str
    email: Optional[str] = None


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().auth_secret, salt=TOKEN_SALT)


def issue_token(owner_id: str, email: Optional[str] = None) -> str:
    return _serializer().dumps({"sub": owner_id, "email": email})


def resolve_owner(token: Optional[str]) -> Optional[Owner]:
    """Return the owner a token was issued for, or None if it is unusable."""
    if not token:
        return None
    try:
        payload = _serializer().loads(
            token, max_age=get_settings().token_max_age_secs
        )
    except SignatureExpired:
        logger.info("auth_token_rejected: reason=expired")
        return None
    except BadSignature:
        logger.info("auth_token_rejected: reason=bad_signature")
        return None
    if not isinstance(payload, dict) or not payload.get("sub"):
        return None
    return Owner(id=str(payload["sub"]), email=payload.get("email"))


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def current_owner(request: Request) -> Owner:
    owner = resolve_owner(bearer_token(request))
    if owner is None:
        raise Unauthenticated()
    return owner
