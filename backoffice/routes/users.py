from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import RedirectResponse, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import crud, exports, models, schemas, uploads
from ..deps import RequestContext, can_edit_user, get_db, render, require_page_roles, validation_message
from ..errors import BackofficeError
from ..utils import sanitize_input

router = APIRouter(prefix="/users")

staff_only = require_page_roles("admin", "manager")
admin_only = require_page_roles("admin")


def _edit_page(request, ctx, user, status_code=200, error=None):
    return render(
        request, "users/edit.html", ctx, status_code=status_code, title="Edit User",
        user=user, roles=models.ROLES, statuses=models.USER_STATUSES, error=error,
    )


@router.get("")
async def list_users(
    request: Request,
    search: str = "",
    role: str = "",
    status: str = "",
    page: int = 1,
    limit: int = 10,
    ctx: RequestContext = Depends(staff_only),
    db: Session = Depends(get_db),
):
    search = sanitize_input(search)
    result = crud.list_users(db, search=search, role=role, status=status, page=page, limit=limit)
    return render(
        request, "users/list.html", ctx, title="User Management", result=result,
        search=search, role=role, status=status, roles=models.ROLES, statuses=models.USER_STATUSES,
    )


@router.get("/create")
async def create_form(request: Request, ctx: RequestContext = Depends(admin_only)):
    return render(request, "users/create.html", ctx, title="Create New User", roles=models.ROLES, form={})


@router.post("")
async def create_user(
    request: Request,
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    full_name: str = Form(""),
    phone: str = Form(""),
    role: str = Form("user"),
    avatar: Optional[UploadFile] = File(None),
    ctx: RequestContext = Depends(admin_only),
    db: Session = Depends(get_db),
):
    form = {
        "username": username.strip(), "email": email.strip(), "password": password,
        "full_name": full_name.strip(), "phone": phone.strip() or None, "role": role,
    }
    stored = None
    try:
        data = schemas.UserCreate(**form)
        if uploads.has_file(avatar):
            stored = await uploads.save_image(avatar, "avatars")
        crud.create_user(db, data, avatar=stored)
    except (ValidationError, BackofficeError) as e:
        uploads.delete_file(stored)
        message = validation_message(e) if isinstance(e, ValidationError) else str(e)
        form.pop("password")
        return render(
            request, "users/create.html", ctx, status_code=400, title="Create New User",
            roles=models.ROLES, form=form, error=message,
        )
    return RedirectResponse(url="/users?notice=User+created+successfully", status_code=303)


@router.get("/export/csv")
async def export_csv(ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    return Response(
        exports.users_csv(db),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="users.csv"'},
    )


@router.get("/{user_id}")
async def show_user(request: Request, user_id: int, ctx: RequestContext = Depends(staff_only), db: Session = Depends(get_db)):
    return render(request, "users/view.html", ctx, title="User Details", user=crud.get_user(db, user_id))


@router.get("/{user_id}/edit")
async def edit_form(request: Request, user_id: int, ctx: RequestContext = Depends(can_edit_user), db: Session = Depends(get_db)):
    return _edit_page(request, ctx, crud.get_user(db, user_id))


@router.post("/{user_id}/edit")
async def update_user(
    request: Request,
    user_id: int,
    full_name: str = Form(""),
    phone: str = Form(""),
    role: Optional[str] = Form(None),
    status: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    ctx: RequestContext = Depends(can_edit_user),
    db: Session = Depends(get_db),
):
    user = crud.get_user(db, user_id)
    previous_avatar = user.avatar
    stored = None
    try:
        changes = schemas.UserUpdate(full_name=full_name.strip(), phone=phone.strip() or None, role=role or None, status=status or None)
        if uploads.has_file(avatar):
            stored = await uploads.save_image(avatar, "avatars")
        crud.update_user(db, user_id, changes, avatar=stored, allow_role_change=ctx.role == "admin")
    except ValidationError as e:
        return _edit_page(request, ctx, user, 400, validation_message(e))
    except BackofficeError as e:
        uploads.delete_file(stored)
        return _edit_page(request, ctx, user, 400, str(e))
    if stored:
        uploads.delete_file(previous_avatar)
    target = "/users" if ctx.is_staff else "/profile"
    return RedirectResponse(url=f"{target}?notice=User+updated+successfully", status_code=303)


@router.post("/{user_id}/change-password")
async def change_password(
    request: Request,
    user_id: int,
    new_password: str = Form(""),
    ctx: RequestContext = Depends(can_edit_user),
    db: Session = Depends(get_db),
):
    try:
        data = schemas.PasswordChange(new_password=new_password)
    except ValidationError as e:
        return _edit_page(request, ctx, crud.get_user(db, user_id), 400, validation_message(e))
    crud.change_password(db, user_id, data.new_password)
    return RedirectResponse(url=f"/users/{user_id}/edit?notice=Password+changed+successfully", status_code=303)


@router.post("/{user_id}/delete")
async def delete_user(user_id: int, ctx: RequestContext = Depends(admin_only), db: Session = Depends(get_db)):
    user = crud.delete_user(db, user_id, acting_user_id=ctx.user_id)
    uploads.delete_file(user.avatar)
    return RedirectResponse(url="/users?notice=User+deleted+successfully", status_code=303)
