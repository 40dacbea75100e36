import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from jose import jwt
from passlib.context import CryptContext

from storefront.core.config import settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def create_jwt(payload: dict, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    data = payload.copy()
    data.update({"iat": int(now.timestamp()), "exp": int((now + expires_delta).timestamp())})
    return jwt.encode(data, secret, algorithm="HS256")

def decode_jwt(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=["HS256"])

def create_access_token(user_id: str, roles: list[str]) -> str:
    return create_jwt(
        {"sub": str(user_id), "roles": list(roles or []), "type": TOKEN_TYPE_ACCESS},
        settings.access_token_secret,
        timedelta(minutes=settings.ACCESS_TOKEN_TTL_MINUTES),
    )

def create_refresh_token(user_id: str) -> tuple[str, datetime]:
    expires_at = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_TTL_DAYS)
    token = create_jwt(
        {"sub": str(user_id), "type": TOKEN_TYPE_REFRESH, "jti": secrets.token_hex(16)},
        settings.refresh_token_secret,
        timedelta(days=settings.REFRESH_TOKEN_TTL_DAYS),
    )
    return token, expires_at

def hash_refresh_token(token: str) -> str:
    return hmac.new(settings.refresh_token_secret.encode("utf-8"), token.encode("utf-8"), hashlib.sha256).hexdigest()
