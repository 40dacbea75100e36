from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.deps import get_current_user
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.auth import LoginIn, ProfileUpdate, RegisterIn, UserOut
from storefront.services.auth import (
    authenticate_or_401,
    issue_tokens,
    register_user,
    revoke_refresh_token,
    rotate_tokens,
    update_profile,
)

router = APIRouter()


def _session_body(user: User, access_token: str) -> dict:
    return {
        "success": True,
        "user": UserOut.model_validate(user).to_wire(),
        "accessToken": access_token,
    }


@router.post("/register", status_code=201)
def register(payload: RegisterIn, response: Response, db: Session = Depends(get_db)):
    user = register_user(db, payload)
    return _session_body(user, issue_tokens(db, user, response))


@router.post("/login")
def login(payload: LoginIn, response: Response, db: Session = Depends(get_db)):
    user = authenticate_or_401(db, payload)
    return _session_body(user, issue_tokens(db, user, response))


@router.get("/token")
def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    user, access_token = rotate_tokens(db, request.cookies.get(settings.REFRESH_COOKIE_NAME), response)
    return _session_body(user, access_token)


@router.get("/logout")
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    revoke_refresh_token(db, request.cookies.get(settings.REFRESH_COOKIE_NAME), response)
    return {"success": True}


@router.get("/user")
def current_user(user: User = Depends(get_current_user)):
    return {"success": True, "user": UserOut.model_validate(user).to_wire()}


@router.get("/user/roles")
def current_user_roles(user: User = Depends(get_current_user)):
    return list(user.roles or [])


@router.patch("/me")
def update_me(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = update_profile(db, user, payload)
    return {"success": True, "user": UserOut.model_validate(user).to_wire()}
