import json
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import crud, exports, models, orders, reports, schemas
from ..config import get_settings
from ..deps import (
    RequestContext,
    api_context,
    get_db,
    page_context,
    render,
    require_api_roles,
    require_page_roles,
    validation_message,
)
from ..errors import BackofficeError, InsufficientStock, OrderNotFound, UserNotFound
from ..utils import sanitize_input

router = APIRouter()

staff_only = require_page_roles("admin", "manager")
staff_api = require_api_roles("admin", "manager")


def _parse_day(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value, "%Y-%m-%d") if value else None
    except ValueError:
        return None


def _form_items(items: str, product_ids: List[str], quantities: List[str]) -> list:
    """Line items arrive either as a JSON array or as parallel product/quantity fields."""
    if items.strip():
        try:
            parsed = json.loads(items)
        except ValueError:
            return [{"product_id": None, "quantity": None}]
        return parsed if isinstance(parsed, list) else [parsed]
    lines = []
    for pid, qty in zip(product_ids, quantities):
        if pid.strip():
            lines.append({"product_id": pid.strip(), "quantity": qty.strip() or "1"})
    return lines


def _customer_for(ctx: RequestContext, requested: Optional[int]) -> Optional[int]:
    # customers always order for themselves
    if ctx.role == "user":
        return ctx.user_id
    return requested


def _visible(ctx: RequestContext, order: models.Order):
    if ctx.role == "user" and order.customer_id != ctx.user_id:
        raise OrderNotFound(order.id)
    return order


def _create_page(request, ctx, db, status_code=200, error=None, form=None, preselected=None):
    customers = [crud.get_user(db, ctx.user_id)] if ctx.role == "user" else crud.active_customers(db)
    form = form or {}
    return render(
        request, "orders/create.html", ctx, status_code=status_code, title="Create New Order", error=error,
        order_number=form.get("order_number") or orders.generate_order_number(),
        customers=customers, products=crud.orderable_products(db), form=form,
        payment_methods=models.PAYMENT_METHODS, preselected=preselected,
    )


@router.get("/orders")
async def list_orders(
    request: Request,
    search: str = "",
    status: str = "",
    payment_status: str = "",
    start_date: str = "",
    end_date: str = "",
    page: int = 1,
    limit: int = 10,
    ctx: RequestContext = Depends(page_context),
    db: Session = Depends(get_db),
):
    search = sanitize_input(search)
    result = orders.list_orders(
        db, search=search, status=status, payment_status=payment_status,
        start_date=_parse_day(start_date), end_date=_parse_day(end_date),
        customer_id=None if ctx.is_staff else ctx.user_id, page=page, limit=limit,
    )
    return render(
        request, "orders/list.html", ctx, title="Order Management", result=result,
        total_revenue=reports.revenue_between(db) if ctx.is_staff else None,
        pending_orders=reports.status_counts(db)["pending"] if ctx.is_staff else None,
        search=search, status=status, payment_status=payment_status, start_date=start_date, end_date=end_date,
        statuses=models.ORDER_STATUSES, payment_statuses=models.PAYMENT_STATUSES,
    )


@router.get("/orders/create")
async def create_form(
    request: Request, product_id: Optional[int] = None, ctx: RequestContext = Depends(page_context), db: Session = Depends(get_db)
):
    return _create_page(request, ctx, db, preselected=product_id)


@router.post("/orders")
async def create_order(
    request: Request,
    order_number: str = Form(""),
    customer_id: str = Form(""),
    items: str = Form(""),
    product_id: List[str] = Form([]),
    quantity: List[str] = Form([]),
    discount: str = Form("0"),
    tax: str = Form("0"),
    payment_method: str = Form(""),
    shipping_address: str = Form(""),
    notes: str = Form(""),
    ctx: RequestContext = Depends(page_context),
    db: Session = Depends(get_db),
):
    form = {
        "order_number": order_number.strip() or None,
        "customer_id": customer_id.strip() or None,
        "items": _form_items(items, product_id, quantity),
        "discount": discount.strip() or "0",
        "tax": tax.strip() or "0",
        "payment_method": payment_method,
        "shipping_address": shipping_address,
        "notes": notes.strip() or None,
    }
    try:
        data = schemas.OrderCreate(**form)
        customer = _customer_for(ctx, data.customer_id)
        if customer is None:
            raise UserNotFound(None, "Please select a valid customer")
        order = orders.place_order(
            db, customer, data.items, data.discount, data.tax, data.payment_method,
            data.shipping_address, data.notes, data.order_number,
        )
    except ValidationError as e:
        return _create_page(request, ctx, db, 400, validation_message(e), form)
    except BackofficeError as e:
        status_code = 409 if isinstance(e, InsufficientStock) else 400
        return _create_page(request, ctx, db, status_code, str(e), form)
    return RedirectResponse(url=f"/orders/{order.id}?notice=Order+created+successfully", status_code=303)


@router.get("/orders/export/csv")
async def export_csv(ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    return Response(
        exports.orders_csv(db),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="orders.csv"'},
    )


@router.get("/orders/{order_id}")
async def show_order(request: Request, order_id: int, ctx: RequestContext = Depends(page_context), db: Session = Depends(get_db)):
    order = _visible(ctx, orders.get_order(db, order_id))
    return render(
        request, "orders/view.html", ctx, title="Order Details", order=order,
        statuses=models.ORDER_STATUSES, payment_statuses=models.PAYMENT_STATUSES,
    )


@router.get("/orders/{order_id}/invoice")
async def invoice(request: Request, order_id: int, ctx: RequestContext = Depends(page_context), db: Session = Depends(get_db)):
    order = _visible(ctx, orders.get_order(db, order_id))
    return render(
        request, "orders/invoice.html", ctx, title=f"Invoice - {order.order_number}", order=order,
        company=get_settings(),
    )


@router.post("/orders/{order_id}/cancel")
async def cancel_order(order_id: int, ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    orders.cancel_order(db, order_id)
    return RedirectResponse(url="/orders?notice=Order+cancelled+successfully", status_code=303)


@router.post("/orders/{order_id}/status")
async def update_status(
    order_id: int,
    status: str = Form(""),
    payment_status: str = Form(""),
    ctx: RequestContext = Depends(staff_only),
    db: Session = Depends(get_db),
):
    orders.update_order_status(db, order_id, status or None, payment_status or None)
    return RedirectResponse(url=f"/orders/{order_id}?notice=Order+updated+successfully", status_code=303)


# -------------------- JSON API --------------------

@router.post("/api/orders", response_model=schemas.OrderDetail, status_code=201)
async def api_place_order(payload: schemas.OrderCreate, ctx: RequestContext = Depends(api_context), db: Session = Depends(get_db)):
    customer = _customer_for(ctx, payload.customer_id)
    if customer is None:
        raise UserNotFound(None, "customer_id required")
    order = orders.place_order(
        db, customer, payload.items, payload.discount, payload.tax, payload.payment_method,
        payload.shipping_address, payload.notes, payload.order_number,
    )
    return orders.get_order(db, order.id)


@router.get("/api/orders", response_model=schemas.OrderPage)
async def api_list_orders(
    status: str = "",
    payment_status: str = "",
    page: int = 1,
    limit: int = 10,
    ctx: RequestContext = Depends(api_context),
    db: Session = Depends(get_db),
):
    result = orders.list_orders(
        db, status=status, payment_status=payment_status,
        customer_id=None if ctx.is_staff else ctx.user_id, page=page, limit=limit,
    )
    return {"orders": result.orders, "total": result.total, "page": result.page, "total_pages": result.total_pages}


@router.get("/api/orders/statistics", response_model=schemas.OrderStatistics)
async def api_statistics(ctx: RequestContext = Depends(staff_api), db: Session = Depends(get_db)):
    return reports.order_statistics(db)


@router.get("/api/orders/{order_id}", response_model=schemas.OrderDetail)
async def api_get_order(order_id: int, ctx: RequestContext = Depends(api_context), db: Session = Depends(get_db)):
    return _visible(ctx, orders.get_order(db, order_id))


@router.post("/api/orders/{order_id}/cancel", response_model=schemas.OrderRead)
async def api_cancel_order(order_id: int, ctx: RequestContext = Depends(staff_api), db: Session = Depends(get_db)):
    return orders.cancel_order(db, order_id)


@router.post("/api/orders/{order_id}/status", response_model=schemas.OrderRead)
async def api_update_status(
    order_id: int, payload: schemas.OrderStatusUpdate, ctx: RequestContext = Depends(staff_api), db: Session = Depends(get_db)
):
    return orders.update_order_status(db, order_id, payload.status, payload.payment_status)
