"""Staff CRM routes: accessible sheets, client listing and single-field edits."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ghardaar.backend.base import Backend, BackendError
from ghardaar.crm.grid import CLIENTS_TABLE, ClientGrid
from ghardaar.crm.models import ClientFilters, CRMClient, validate_field_value
from ghardaar.logging.audit import get_audit_logger
from ghardaar.security.auth import StaffSession, require_backend, require_staff

router = APIRouter()

# Notes are written by admins only
STAFF_READONLY_FIELDS = frozenset({"admin_notes"})


@router.get("/sheets")
async def list_sheets(
    staff: StaffSession = Depends(require_staff),
    backend: Backend = Depends(require_backend),
):
    if not staff.sheet_ids:
        return {"sheets": []}
    try:
        sheets = await backend.select(
            "crm_sheets", {"id": staff.sheet_ids}, order="created_at", descending=True
        )
    except BackendError as e:
        get_audit_logger().error(
            "Error fetching sheets",
            extra={"audit_data": {"staff_id": staff.user.id, "error": e.message}},
        )
        return JSONResponse(status_code=500, content={"error": e.message})
    return {"sheets": sheets}


@router.get("/sheets/{sheet_id}/clients")
async def list_clients(
    sheet_id: str,
    search: str = "",
    lead_stage: str = "",
    lead_type: str = "",
    deal_status: str = "",
    location_category: str = "",
    staff: StaffSession = Depends(require_staff),
    backend: Backend = Depends(require_backend),
):
    """Clients of one sheet, newest first, with the sheet-wide stats."""
    if not staff.can_access(sheet_id):
        return JSONResponse(status_code=403, content={"error": "No access to this sheet"})

    errors: list[str] = []
    grid = ClientGrid(backend, notify=errors.append)
    await grid.load(sheet_id)
    if errors:
        return JSONResponse(status_code=500, content={"error": errors[0]})

    filters = ClientFilters(
        search=search,
        lead_stage=lead_stage,
        lead_type=lead_type,
        deal_status=deal_status,
        location_category=location_category,
    )
    return {
        "clients": [c.to_dict() for c in grid.visible(filters)],
        "stats": grid.stats(),
        "locations": grid.locations(),
    }


@router.patch("/clients/{client_id}")
async def update_client_field(
    client_id: str,
    request: Request,
    staff: StaffSession = Depends(require_staff),
    backend: Backend = Depends(require_backend),
):
    """Persist one inline edit: {"field": ..., "value": ...}."""
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict) or not body.get("field"):
        return JSONResponse(status_code=400, content={"error": "Missing field in request body"})

    field = body["field"]
    raw_value = body.get("value")
    if not isinstance(field, str) or not (raw_value is None or isinstance(raw_value, str)):
        return JSONResponse(status_code=400, content={"error": "Field and value must be strings"})
    value = raw_value or None
    if field in STAFF_READONLY_FIELDS:
        return JSONResponse(status_code=403, content={"error": f"Field '{field}' is read-only for staff"})
    problem = validate_field_value(field, value)
    if problem:
        return JSONResponse(status_code=400, content={"error": problem})

    logger = get_audit_logger()
    try:
        row = await backend.select_one(CLIENTS_TABLE, {"id": client_id})
        if row is None:
            return JSONResponse(status_code=404, content={"error": "Client not found"})
        if not staff.can_access(row.get("sheet_id")):
            return JSONResponse(status_code=403, content={"error": "No access to this sheet"})
        await backend.update(CLIENTS_TABLE, {field: value}, {"id": client_id})
    except BackendError as e:
        logger.error(
            "Error updating field",
            extra={"audit_data": {"client_id": client_id, "field": field, "error": e.message}},
        )
        return JSONResponse(status_code=500, content={"error": "Failed to update. Please try again."})

    logger.info(
        "Client field updated",
        extra={"audit_data": {"client_id": client_id, "field": field, "staff_id": staff.user.id}},
    )
    row[field] = value
    return {"success": True, "client": CRMClient.from_row(row).to_dict()}
