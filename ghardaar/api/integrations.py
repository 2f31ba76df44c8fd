"""Rate-limited routes that call out to quota-bound integrations."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ghardaar.config.settings import get_settings
from ghardaar.logging.audit import RequestTimer, get_audit_logger
from ghardaar.providers.prompt import ListingDetails, build_description_prompt
from ghardaar.providers.registry import get_provider
from ghardaar.security.ratelimit import RateLimitResult, rate_limited
from ghardaar.sheets.logger import PropertyRow, SignupRow, get_sheets_logger

router = APIRouter()


@router.post("/generate-description")
async def generate_description(
    request: Request,
    rate: RateLimitResult = Depends(rate_limited("generate-description")),
):
    """Write a marketing description for a property listing."""
    logger = get_audit_logger()
    settings = get_settings()

    provider_name = settings.description_provider
    try:
        provider = get_provider(provider_name)
    except ValueError:
        return JSONResponse(status_code=500, content={"error": f"Unknown description provider '{provider_name}'"})

    if not provider.is_configured():
        return JSONResponse(
            status_code=500,
            content={"error": f"{provider_name.capitalize()} API key is not configured"},
        )

    try:
        listing = ListingDetails.model_validate(await request.json())
    except (ValidationError, ValueError) as e:
        return JSONResponse(status_code=400, content={"error": "Invalid listing details", "details": str(e)})

    prompt = build_description_prompt(listing)
    try:
        with RequestTimer() as timer:
            description = await provider.generate(prompt)
    except HTTPException as e:
        logger.error(
            "Error generating description",
            extra={"audit_data": {"provider": provider_name, "status": e.status_code, "error": e.detail}},
        )
        return JSONResponse(status_code=500, content={"error": "Failed to generate description"})

    logger.info(
        "Description generated",
        extra={"audit_data": {
            "provider": provider_name,
            "title": listing.title,
            "latency_ms": timer.elapsed_ms,
            "rate_limit_remaining": rate.remaining,
        }},
    )
    return {"description": description}


@router.post("/log-to-sheets")
async def log_to_sheets(
    request: Request,
    rate: RateLimitResult = Depends(rate_limited("log-to-sheets")),
):
    """Append a signup or a new property listing to the tracking spreadsheet."""
    logger = get_audit_logger()
    settings = get_settings()

    config_check = {
        "hasPrivateKey": bool(settings.google_sheets_private_key),
        "hasClientEmail": bool(settings.google_sheets_client_email),
        "hasSpreadsheetId": bool(settings.google_sheets_spreadsheet_id),
    }
    if not settings.sheets_configured:
        logger.error("Missing Google Sheets credentials", extra={"audit_data": config_check})
        return JSONResponse(
            status_code=500,
            content={"error": "Google Sheets not configured", "details": config_check},
        )

    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return JSONResponse(status_code=400, content={"error": "Missing type or data in request body"})

    kind = body.get("type")
    data = body.get("data")
    if not kind or not isinstance(data, dict) or not data:
        return JSONResponse(status_code=400, content={"error": "Missing type or data in request body"})

    sheets = get_sheets_logger()
    try:
        if kind == "signup":
            if not (data.get("name") and data.get("email") and data.get("phone")):
                return JSONResponse(status_code=400, content={"error": "Missing required signup fields"})
            await sheets.append_user_signup(SignupRow(
                name=str(data["name"]),
                email=str(data["email"]),
                phone=str(data["phone"]),
                timestamp=str(data.get("timestamp", "")),
            ))
        elif kind == "property":
            if not (data.get("title") and data.get("property_type")):
                return JSONResponse(status_code=400, content={"error": "Missing required property fields"})
            await sheets.append_property_listing(PropertyRow(**{
                k: str(data.get(k, "") or "")
                for k in PropertyRow.__dataclass_fields__
            }))
        else:
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid type. Must be 'signup' or 'property'"},
            )
    except Exception as e:
        logger.error(
            "Error logging to Google Sheets",
            exc_info=True,
            extra={"audit_data": {"type": kind, "error": str(e)}},
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to log to Google Sheets", "details": str(e)},
        )

    logger.info(
        "Logged to sheets",
        extra={"audit_data": {"type": kind, "rate_limit_remaining": rate.remaining}},
    )
    return {"success": True}
