from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..deps import RequestContext, get_db, render, require_page_roles, validation_message
from ..errors import ValidationFailure

router = APIRouter(prefix="/categories")

staff_only = require_page_roles("admin", "manager")


def _form(name: str, description: str, icon: str, status: str) -> dict:
    return {
        "name": name.strip(),
        "description": description.strip() or None,
        "icon": icon.strip() or None,
        "status": status or "active",
    }


@router.get("")
async def list_categories(request: Request, ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    return render(
        request, "categories/list.html", ctx, title="Categories",
        categories=crud.list_categories(db), statuses=models.CATEGORY_STATUSES, form={},
    )


@router.post("")
async def create_category(
    request: Request,
    name: str = Form(""),
    description: str = Form(""),
    icon: str = Form(""),
    status: str = Form("active"),
    ctx: RequestContext = Depends(staff_only),
    db: Session = Depends(get_db),
):
    form = _form(name, description, icon, status)
    try:
        crud.create_category(db, schemas.CategoryCreate(**form))
    except (ValidationError, ValidationFailure) as e:
        return render(
            request, "categories/list.html", ctx, status_code=400, title="Categories",
            categories=crud.list_categories(db), statuses=models.CATEGORY_STATUSES, form=form,
            error=validation_message(e) if isinstance(e, ValidationError) else str(e),
        )
    return RedirectResponse(url="/categories?notice=Category+created+successfully", status_code=303)


@router.get("/{category_id}/edit")
async def edit_form(request: Request, category_id: int, ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    return render(
        request, "categories/edit.html", ctx, title="Edit Category",
        category=crud.get_category(db, category_id), statuses=models.CATEGORY_STATUSES,
    )


@router.post("/{category_id}/edit")
async def update_category(
    request: Request,
    category_id: int,
    name: str = Form(""),
    description: str = Form(""),
    icon: str = Form(""),
    status: str = Form("active"),
    ctx: RequestContext = Depends(staff_only),
    db: Session = Depends(get_db),
):
    category = crud.get_category(db, category_id)
    try:
        crud.update_category(db, category_id, schemas.CategoryCreate(**_form(name, description, icon, status)))
    except (ValidationError, ValidationFailure) as e:
        return render(
            request, "categories/edit.html", ctx, status_code=400, title="Edit Category",
            category=category, statuses=models.CATEGORY_STATUSES,
            error=validation_message(e) if isinstance(e, ValidationError) else str(e),
        )
    return RedirectResponse(url="/categories?notice=Category+updated+successfully", status_code=303)


@router.post("/{category_id}/delete")
async def delete_category(category_id: int, ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    crud.delete_category(db, category_id)
    return RedirectResponse(url="/categories?notice=Category+deleted+successfully", status_code=303)
