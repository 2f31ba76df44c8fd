"""Admin-only routes that need service-role access: staff accounts, user lookup, leads."""

import csv
import io
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from ghardaar.backend.base import UNDEFINED_TABLE, AuthUser, Backend, BackendError
from ghardaar.logging.audit import get_audit_logger
from ghardaar.security.auth import require_admin, require_backend

router = APIRouter()


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _non_string_fields(body: dict, *keys: str) -> JSONResponse | None:
    """400 response when any of keys holds something other than a string or null."""
    bad = [k for k in keys if body.get(k) is not None and not isinstance(body[k], str)]
    if bad:
        return JSONResponse(status_code=400, content={"error": f"Fields must be strings: {', '.join(bad)}"})
    return None


def _backend_error(route: str, e: BackendError, status_code: int = 400, **audit) -> JSONResponse:
    get_audit_logger().error(
        f"Error in {route}",
        extra={"audit_data": {"route": route, "error": e.message, "code": e.code, **audit}},
    )
    return JSONResponse(status_code=status_code, content={"error": e.message})


@router.post("/create-staff")
async def create_staff(
    request: Request,
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(require_backend),
):
    """Create a pre-verified auth user and its crm_staff row."""
    body = await _json_body(request)
    invalid = _non_string_fields(body, "email", "password", "name")
    if invalid is not None:
        return invalid
    email, password, name = body.get("email"), body.get("password"), body.get("name")
    if not email or not password or not name:
        return JSONResponse(status_code=400, content={"error": "Email, password, and name are required"})

    try:
        user = await backend.create_user(email, password, metadata={"name": name})
    except BackendError as e:
        return _backend_error("create-staff", e, email=email)

    try:
        staff = await backend.insert("crm_staff", {
            "id": user.id,
            "email": email,
            "name": name,
            "created_by": admin.id,
        })
    except BackendError as e:
        # Roll back the auth user so the email can be reused
        try:
            await backend.delete_user(user.id)
        except BackendError as cleanup_error:
            get_audit_logger().error(
                "Failed to remove orphaned auth user",
                extra={"audit_data": {"user_id": user.id, "error": cleanup_error.message}},
            )
        return _backend_error("create-staff", e, user_id=user.id)

    get_audit_logger().info(
        "Staff created",
        extra={"audit_data": {"staff_id": user.id, "created_by": admin.id}},
    )
    return {"success": True, "staff": staff}


@router.post("/update-staff")
async def update_staff(
    request: Request,
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(require_backend),
):
    body = await _json_body(request)
    invalid = _non_string_fields(body, "staffId", "email", "name", "password")
    if invalid is not None:
        return invalid
    staff_id = body.get("staffId")
    if not staff_id:
        return JSONResponse(status_code=400, content={"error": "Staff ID is required"})

    email, name, password = body.get("email"), body.get("name"), body.get("password")

    auth_update: dict = {}
    if email:
        auth_update["email"] = email
    if name:
        auth_update["user_metadata"] = {"name": name}
    if password and password.strip():
        auth_update["password"] = password

    try:
        if auth_update:
            await backend.update_user(staff_id, auth_update)

        staff_update = {k: v for k, v in (("name", name), ("email", email)) if v}
        if staff_update:
            await backend.update("crm_staff", staff_update, {"id": staff_id})
    except BackendError as e:
        return _backend_error("update-staff", e, staff_id=staff_id)

    get_audit_logger().info(
        "Staff updated",
        extra={"audit_data": {"staff_id": staff_id, "updated_by": admin.id, "fields": sorted(auth_update)}},
    )
    return {"success": True, "message": "Staff updated successfully"}


@router.post("/delete-staff")
async def delete_staff(
    request: Request,
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(require_backend),
):
    """Remove the staff role. The user's account itself stays active."""
    body = await _json_body(request)
    invalid = _non_string_fields(body, "staffId")
    if invalid is not None:
        return invalid
    staff_id = body.get("staffId")
    if not staff_id:
        return JSONResponse(status_code=400, content={"error": "Staff ID is required"})

    try:
        await backend.delete("crm_staff", {"id": staff_id})
    except BackendError as e:
        return _backend_error("delete-staff", e, staff_id=staff_id)

    try:
        await backend.delete("crm_sheet_access", {"staff_id": staff_id})
    except BackendError as e:
        get_audit_logger().warning(
            "Failed to remove sheet access",
            extra={"audit_data": {"staff_id": staff_id, "error": e.message}},
        )

    get_audit_logger().info(
        "Staff role removed",
        extra={"audit_data": {"staff_id": staff_id, "removed_by": admin.id}},
    )
    return {
        "success": True,
        "message": "Staff role removed successfully. User account remains active.",
    }


async def _maybe_one(backend: Backend, table: str, user_id: str, columns: str) -> dict | None:
    try:
        return await backend.select_one(table, {"id": user_id}, columns=columns)
    except BackendError as e:
        get_audit_logger().warning(
            "Lookup failed",
            extra={"audit_data": {"table": table, "user_id": user_id, "error": e.message}},
        )
        return None


@router.post("/lookup-user")
async def lookup_user(
    request: Request,
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(require_backend),
):
    """Tell the staff form whether an email already has an account, and its name."""
    body = await _json_body(request)
    invalid = _non_string_fields(body, "email")
    if invalid is not None:
        return invalid
    email = body.get("email")
    if not email:
        return JSONResponse(status_code=400, content={"error": "Email is required"})

    try:
        users = await backend.list_users()
    except BackendError as e:
        return _backend_error("lookup-user", e, status_code=500)

    wanted = email.lower()
    user = next((u for u in users if u.email and u.email.lower() == wanted), None)
    if user is None:
        return {"exists": False, "name": None, "isStaff": False, "isAdmin": False}

    staff = await _maybe_one(backend, "crm_staff", user.id, "id")
    existing_admin = await _maybe_one(backend, "admins", user.id, "id, name")
    profile = await _maybe_one(backend, "user_profiles", user.id, "name")

    name = (
        (profile or {}).get("name")
        or (existing_admin or {}).get("name")
        or user.metadata.get("name")
        or user.metadata.get("full_name")
        or ""
    )
    return {
        "exists": True,
        "name": name,
        "isStaff": staff is not None,
        "isAdmin": existing_admin is not None,
    }


async def _excluded_ids(backend: Backend) -> tuple[list[str], list[str]]:
    admins = await backend.select("admins", columns="id")
    try:
        staff = await backend.select("crm_staff", columns="id")
    except BackendError as e:
        if e.code != UNDEFINED_TABLE:
            raise
        staff = []
    return [a["id"] for a in admins], [s["id"] for s in staff]


@router.get("/admin/get-excluded-ids")
async def get_excluded_ids(
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(require_backend),
):
    """Ids of internal users (admins and staff), hidden from the leads list."""
    try:
        admin_ids, staff_ids = await _excluded_ids(backend)
    except BackendError as e:
        return _backend_error("get-excluded-ids", e, status_code=500)
    return {"adminIds": admin_ids, "staffIds": staff_ids}


async def _leads(backend: Backend, search: str) -> list[dict]:
    admin_ids, staff_ids = await _excluded_ids(backend)
    internal = set(admin_ids) | set(staff_ids)
    profiles = await backend.select("user_profiles", order="created_at", descending=True)

    needle = search.lower()
    leads = []
    for profile in profiles:
        if profile.get("id") in internal:
            continue
        if search and not (
            needle in (profile.get("name") or "").lower()
            or needle in (profile.get("email") or "").lower()
            or search in (profile.get("phone") or "")
        ):
            continue
        leads.append(profile)
    return leads


@router.get("/admin/leads")
async def list_leads(
    search: str = "",
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(require_backend),
):
    try:
        leads = await _leads(backend, search)
    except BackendError as e:
        return _backend_error("leads", e, status_code=500)
    return {"total": len(leads), "leads": leads}


def _registered_date(created_at: str | None) -> str:
    if not created_at:
        return ""
    try:
        return datetime.fromisoformat(created_at.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return created_at


@router.get("/admin/leads.csv")
async def export_leads(
    search: str = "",
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(require_backend),
):
    try:
        leads = await _leads(backend, search)
    except BackendError as e:
        return _backend_error("leads-export", e, status_code=500)

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC)
    writer.writerow(["Name", "Email", "Phone", "Registered Date"])
    for lead in leads:
        writer.writerow([
            lead.get("name") or "",
            lead.get("email") or "",
            lead.get("phone") or "",
            _registered_date(lead.get("created_at")),
        ])

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="leads_data.csv"'},
    )
