import logging
import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from . import uploads
from .config import get_settings
from .db import Base, engine
from .deps import LoginRequired, PageForbidden, render
from .errors import (
    AlreadyCancelled,
    BackofficeError,
    InsufficientStock,
    NotFound,
    PersistenceFailure,
    ValidationFailure,
)
from .routes import auth, categories, dashboard, orders, products, users

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
log = logging.getLogger("backoffice")

# Create tables if not existing; `python -m backoffice.seed` rebuilds with sample data.
Base.metadata.create_all(bind=engine)
uploads.ensure_dirs()

app = FastAPI(title="Business Back Office")

app.mount("/static", StaticFiles(directory=str(Path(__file__).parent / "static")), name="static")
app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

app.include_router(auth.router)
app.include_router(dashboard.router)
app.include_router(users.router)
app.include_router(categories.router)
app.include_router(products.router)
app.include_router(orders.router)


@app.middleware("http")
async def access_log(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    log.info(
        "%s %s %s %.1fms",
        request.method, request.url.path, response.status_code, (time.perf_counter() - started) * 1000,
    )
    return response


STATUS_FOR = (
    (NotFound, 404),
    (ValidationFailure, 400),
    (InsufficientStock, 409),
    (AlreadyCancelled, 409),
    (PersistenceFailure, 500),
)


def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api/")


@app.exception_handler(BackofficeError)
async def backoffice_error(request: Request, exc: BackofficeError):
    status = next((code for kind, code in STATUS_FOR if isinstance(exc, kind)), 500)
    if status >= 500:
        log.error("request failed: %s %s: %s", request.method, request.url.path, exc, exc_info=exc.__cause__)
    if _is_api(request):
        return JSONResponse({"detail": str(exc)}, status_code=status)
    ctx = getattr(request.state, "ctx", None)
    return render(request, "error.html", ctx, status_code=status, title="Error", error=str(exc))


@app.exception_handler(LoginRequired)
async def login_required(request: Request, exc: LoginRequired):
    return RedirectResponse(url="/auth/login", status_code=303)


@app.exception_handler(PageForbidden)
async def page_forbidden(request: Request, exc: PageForbidden):
    return render(request, "error.html", getattr(request.state, "ctx", None), status_code=403, title="Forbidden", error=str(exc))


@app.get("/health")
async def health():
    return {"status": "ok"}
