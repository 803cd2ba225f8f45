from decimal import Decimal, InvalidOperation
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import RedirectResponse, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import crud, exports, inventory, models, reports, schemas, uploads
from ..config import get_settings
from ..deps import (
    RequestContext,
    get_db,
    page_context,
    render,
    require_api_roles,
    require_page_roles,
    validation_message,
)
from ..errors import BackofficeError
from ..utils import sanitize_input

router = APIRouter()

staff_only = require_page_roles("admin", "manager")
admin_only = require_page_roles("admin")
staff_api = require_api_roles("admin", "manager")


def _price_filter(value: str) -> Optional[Decimal]:
    try:
        return Decimal(value) if value else None
    except InvalidOperation:
        return None


def _form(name, sku, description, price, cost_price, quantity, category_id, status, featured) -> dict:
    return {
        "name": name.strip(),
        "sku": sku.strip() or None,
        "description": description.strip() or None,
        "price": price.strip(),
        "cost_price": cost_price.strip(),
        "quantity": quantity.strip(),
        "category_id": category_id.strip(),
        "status": status or "active",
        "featured": featured == "on",
    }


def _form_page(request, ctx, db, template, title, status_code=200, error=None, **context):
    return render(
        request, template, ctx, status_code=status_code, title=title, error=error,
        categories=crud.list_categories(db, active_only=True), statuses=models.PRODUCT_STATUSES, **context,
    )


@router.get("/products")
async def list_products(
    request: Request,
    search: str = "",
    category_id: str = "",
    status: str = "",
    min_price: str = "",
    max_price: str = "",
    page: int = 1,
    limit: int = 12,
    ctx: RequestContext = Depends(page_context),
    db: Session = Depends(get_db),
):
    search = sanitize_input(search)
    category = int(category_id) if category_id.isdigit() else None
    result = crud.list_products(
        db, search=search, category_id=category, status=status,
        min_price=_price_filter(min_price), max_price=_price_filter(max_price), page=page, limit=limit,
    )
    return render(
        request, "products/list.html", ctx, title="Product Management", result=result,
        categories=crud.list_categories(db, active_only=True), statuses=models.PRODUCT_STATUSES,
        search=search, category_id=category, status=status, min_price=min_price, max_price=max_price,
    )


@router.get("/products/create")
async def create_form(request: Request, ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    return _form_page(request, ctx, db, "products/create.html", "Add New Product", form={})


@router.post("/products")
async def create_product(
    request: Request,
    name: str = Form(""),
    sku: str = Form(""),
    description: str = Form(""),
    price: str = Form(""),
    cost_price: str = Form(""),
    quantity: str = Form(""),
    category_id: str = Form(""),
    status: str = Form("active"),
    featured: str = Form(""),
    image: Optional[UploadFile] = File(None),
    ctx: RequestContext = Depends(staff_only),
    db: Session = Depends(get_db),
):
    form = _form(name, sku, description, price, cost_price, quantity, category_id, status, featured)
    stored = None
    try:
        data = schemas.ProductCreate(**form)
        if uploads.has_file(image):
            stored = await uploads.save_image(image, "products")
        crud.create_product(db, data, image=stored)
    except ValidationError as e:
        return _form_page(request, ctx, db, "products/create.html", "Add New Product", 400, validation_message(e), form=form)
    except BackofficeError as e:
        uploads.delete_file(stored)
        return _form_page(request, ctx, db, "products/create.html", "Add New Product", 400, str(e), form=form)
    return RedirectResponse(url="/products?notice=Product+created+successfully", status_code=303)


@router.get("/products/export/csv")
async def export_csv(ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    return Response(
        exports.products_csv(db),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="products.csv"'},
    )


@router.get("/products/{product_id}")
async def show_product(request: Request, product_id: int, ctx: RequestContext = Depends(page_context), db: Session = Depends(get_db)):
    product = crud.get_product(db, product_id)
    profit, margin = crud.profit_and_margin(product)
    return render(request, "products/view.html", ctx, title="Product Details", product=product, profit=profit, margin=margin)


@router.get("/products/{product_id}/edit")
async def edit_form(request: Request, product_id: int, ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    return _form_page(request, ctx, db, "products/edit.html", "Edit Product", product=crud.get_product(db, product_id))


@router.post("/products/{product_id}/edit")
async def update_product(
    request: Request,
    product_id: int,
    name: str = Form(""),
    description: str = Form(""),
    price: str = Form(""),
    cost_price: str = Form(""),
    quantity: str = Form(""),
    category_id: str = Form(""),
    status: str = Form("active"),
    featured: str = Form(""),
    image: Optional[UploadFile] = File(None),
    ctx: RequestContext = Depends(staff_only),
    db: Session = Depends(get_db),
):
    product = crud.get_product(db, product_id)
    previous_image = product.image
    form = _form(name, "", description, price, cost_price, quantity, category_id, status, featured)
    stored = None
    try:
        data = schemas.ProductCreate(**form)
        if uploads.has_file(image):
            stored = await uploads.save_image(image, "products")
        crud.update_product(db, product_id, data, image=stored)
    except ValidationError as e:
        return _form_page(request, ctx, db, "products/edit.html", "Edit Product", 400, validation_message(e), product=product)
    except BackofficeError as e:
        uploads.delete_file(stored)
        return _form_page(request, ctx, db, "products/edit.html", "Edit Product", 400, str(e), product=product)
    if stored:
        uploads.delete_file(previous_image)
    return RedirectResponse(url="/products?notice=Product+updated+successfully", status_code=303)


@router.post("/products/{product_id}/delete")
async def delete_product(product_id: int, ctx: RequestContext = Depends(admin_only), db: Session = Depends(get_db)):
    product = crud.delete_product(db, product_id)
    uploads.delete_file(product.image)
    return RedirectResponse(url="/products?notice=Product+deleted+successfully", status_code=303)


# -------------------- JSON API --------------------

@router.get("/api/products/low-stock", response_model=List[schemas.ProductRead])
async def api_low_stock(threshold: Optional[int] = None, ctx: RequestContext = Depends(staff_api), db: Session = Depends(get_db)):
    if threshold is None:
        threshold = get_settings().low_stock_threshold
    return reports.low_stock(db, threshold)


@router.get("/api/products/top-selling", response_model=List[schemas.TopProduct])
async def api_top_selling(limit: int = 5, ctx: RequestContext = Depends(staff_api), db: Session = Depends(get_db)):
    return reports.top_selling(db, max(1, min(limit, 50)))


@router.post("/api/products/{product_id}/stock")
async def api_update_stock(
    product_id: int, payload: schemas.StockAdjust, ctx: RequestContext = Depends(staff_api), db: Session = Depends(get_db)
):
    product = inventory.adjust_stock(db, product_id, payload.action, payload.quantity)
    return {"success": True, "message": "Stock updated successfully", "new_quantity": product.quantity}
