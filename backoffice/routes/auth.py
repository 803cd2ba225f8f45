from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import AuthError, authenticate, create_access_token
from ..config import get_settings
from ..deps import COOKIE_NAME, get_db, optional_context, render

router = APIRouter()


@router.get("/auth/login")
async def login_form(request: Request, ctx=Depends(optional_context)):
    if ctx is not None:
        return RedirectResponse(url="/dashboard", status_code=303)
    return render(request, "login.html", None, title="Login")


@router.post("/auth/login")
async def login(request: Request, email: str = Form(...), password: str = Form(...), db: Session = Depends(get_db)):
    try:
        user = authenticate(db, email, password)
    except AuthError as e:
        return render(request, "login.html", None, status_code=401, title="Login", error=str(e), email=email)
    settings = get_settings()
    response = RedirectResponse(url="/dashboard", status_code=303)
    response.set_cookie(
        COOKIE_NAME,
        create_access_token(user.id, user.role),
        max_age=settings.token_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
    return response


@router.get("/auth/logout")
async def logout():
    response = RedirectResponse(url="/auth/login", status_code=303)
    response.delete_cookie(COOKIE_NAME)
    return response


@router.post("/api/auth/login")
async def api_login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    try:
        user = authenticate(db, payload.email, payload.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    token = create_access_token(user.id, user.role)
    return {"access_token": token, "token_type": "bearer"}
