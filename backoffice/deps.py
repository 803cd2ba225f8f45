"""Per-request plumbing shared by the routers: DB sessions, identity, role guards, templates."""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.orm import Session

from . import models
from .auth import decode_access_token
from .db import SessionLocal

COOKIE_NAME = "access_token"

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


# Dependency to get DB session per request

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@dataclass(frozen=True)
class RequestContext:
    user_id: int
    role: str
    username: str
    full_name: str
    avatar: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role in ("admin", "manager")


class LoginRequired(Exception):
    """Raised by page handlers; answered with a redirect to the login form."""


class PageForbidden(Exception):
    def __init__(self, message: str = "You do not have permission to access this page"):
        super().__init__(message)


def _token_from(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization")
    if auth and auth.lower().startswith("bearer "):
        return auth.split(None, 1)[1]
    return request.cookies.get(COOKIE_NAME)


def resolve_context(request: Request, db: Session) -> Optional[RequestContext]:
    ctx = _load_context(request, db)
    request.state.ctx = ctx
    return ctx


def _load_context(request: Request, db: Session) -> Optional[RequestContext]:
    token = _token_from(request)
    if not token:
        return None
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except (jwt.PyJWTError, TypeError, ValueError):
        return None
    user = db.get(models.User, user_id)
    if not user or user.status != "active":
        return None
    return RequestContext(user.id, user.role, user.username, user.full_name, user.avatar)


def optional_context(request: Request, db: Session = Depends(get_db)) -> Optional[RequestContext]:
    return resolve_context(request, db)


def page_context(request: Request, db: Session = Depends(get_db)) -> RequestContext:
    ctx = resolve_context(request, db)
    if ctx is None:
        raise LoginRequired()
    return ctx


def api_context(request: Request, db: Session = Depends(get_db)) -> RequestContext:
    ctx = resolve_context(request, db)
    if ctx is None:
        raise HTTPException(status_code=401, detail="authentication required")
    return ctx


def require_page_roles(*roles: str):
    def guard(ctx: RequestContext = Depends(page_context)) -> RequestContext:
        if ctx.role not in roles:
            raise PageForbidden()
        return ctx
    return guard


def require_api_roles(*roles: str):
    def guard(ctx: RequestContext = Depends(api_context)) -> RequestContext:
        if ctx.role not in roles:
            raise HTTPException(status_code=403, detail="forbidden")
        return ctx
    return guard


def can_edit_user(user_id: int, ctx: RequestContext = Depends(page_context)) -> RequestContext:
    # admins edit anyone; everyone else only themself
    if ctx.role != "admin" and ctx.user_id != user_id:
        raise PageForbidden("You can only edit your own profile")
    return ctx


def render(request: Request, name: str, ctx: Optional[RequestContext] = None, status_code: int = 200, **context):
    context.setdefault("error", None)
    context.setdefault("notice", request.query_params.get("notice"))
    context["current"] = ctx
    return templates.TemplateResponse(request, name, context, status_code=status_code)


def validation_message(exc: ValidationError) -> str:
    messages = []
    for err in exc.errors():
        msg = err.get("msg", "invalid value").removeprefix("Value error, ")
        field = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{field}: {msg}" if field else msg)
    return "; ".join(messages)
