from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import crud, reports, schemas
from ..config import get_settings
from ..deps import (
    RequestContext,
    get_db,
    optional_context,
    page_context,
    render,
    require_api_roles,
    require_page_roles,
    validation_message,
)

router = APIRouter()


@router.get("/")
async def home(request: Request, ctx=Depends(optional_context)):
    if ctx is not None:
        return RedirectResponse(url="/dashboard", status_code=303)
    return render(request, "index.html", None, title="Back Office - Home")


@router.get("/dashboard")
async def dashboard(request: Request, ctx: RequestContext = Depends(page_context), db: Session = Depends(get_db)):
    if ctx.is_staff:
        threshold = get_settings().low_stock_threshold
        return render(
            request,
            "dashboard.html",
            ctx,
            title="Business Dashboard",
            stats=reports.dashboard_stats(db),
            recent_orders=reports.recent_orders(db, 5),
            low_stock=reports.low_stock(db, threshold, limit=5),
            recent_users=reports.recent_users(db, 5),
            monthly_sales=reports.monthly_revenue(db, 6),
            top_products=reports.top_selling(db, 5),
        )
    return render(
        request,
        "user_dashboard.html",
        ctx,
        title="My Dashboard",
        summary=reports.customer_summary(db, ctx.user_id),
    )


@router.get("/profile")
async def profile(request: Request, ctx: RequestContext = Depends(page_context), db: Session = Depends(get_db)):
    return render(request, "profile.html", ctx, title="My Profile", user=crud.get_user(db, ctx.user_id))


@router.post("/profile")
async def update_profile(
    request: Request,
    full_name: str = Form(...),
    phone: str = Form(""),
    ctx: RequestContext = Depends(page_context),
    db: Session = Depends(get_db),
):
    full_name = full_name.strip()
    if not 2 <= len(full_name) <= 100:
        return render(
            request, "profile.html", ctx, status_code=400, title="My Profile",
            user=crud.get_user(db, ctx.user_id), error="Full name must be between 2 and 100 characters",
        )
    user = crud.get_user(db, ctx.user_id)
    try:
        changes = schemas.UserUpdate(full_name=full_name, phone=phone.strip() or None)
    except ValidationError as e:
        return render(
            request, "profile.html", ctx, status_code=400, title="My Profile",
            user=user, error=validation_message(e),
        )
    crud.update_user(db, user.id, changes)
    return RedirectResponse(url="/profile?notice=Profile+updated+successfully", status_code=303)


@router.get("/settings")
async def settings_page(request: Request, ctx: RequestContext = Depends(require_page_roles("admin"))):
    return render(request, "settings.html", ctx, title="System Settings", settings=get_settings())


@router.get("/api/dashboard/stats", response_model=schemas.DashboardSummary)
async def dashboard_stats(
    ctx: RequestContext = Depends(require_api_roles("admin", "manager")), db: Session = Depends(get_db)
):
    return reports.period_summary(db, threshold=get_settings().low_stock_threshold)
