import uuid

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.security import TOKEN_TYPE_ACCESS, decode_jwt
from storefront.db.session import get_db
from storefront.models.user import User

bearer = HTTPBearer(auto_error=False)

def _claims_or_401(token: str) -> dict:
    try:
        claims = decode_jwt(token, settings.access_token_secret)
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if claims.get("type") != TOKEN_TYPE_ACCESS:
        raise HTTPException(status_code=401, detail="Invalid token")
    return claims

def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid token")
    claims = _claims_or_401(creds.credentials)
    try:
        user_id = uuid.UUID(str(claims.get("sub") or ""))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=403, detail="Access denied")
    return user

def require_roles(*roles: str):
    def _inner(user: User = Depends(get_current_user)) -> User:
        if not user.has_role(*roles):
            raise HTTPException(status_code=403, detail="Access denied")
        return user
    return _inner
