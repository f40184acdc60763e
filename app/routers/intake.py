# =============================================================================
# app/routers/intake.py - Waitlist & Signup Intake
# =============================================================================
# Landing-page endpoints. They sit outside /api/v1 because the static landing
# page posts to fixed paths:
#
#   POST /api/waitlist/brand     form  -> 303 {WAITLIST_REDIRECT_PATH}?ok=brand|err
#   POST /api/waitlist/creator   form  -> 303 {WAITLIST_REDIRECT_PATH}?ok=creator|err
#   POST /api/quick-signup       JSON  -> {success, message, id}
#   POST /api/early-access       JSON  -> {ok: true}
#
# Form endpoints never answer with an error body; every failure becomes the
# ?ok=err redirect.
# =============================================================================

import json
import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import ClientDisconnect

from app.dependencies import Services, ServicesDep
from app.exceptions import InvalidSignupError, LumoException
from core.models.waitlist import EarlyAccessRequest, QuickSignupRequest, QuickSignupResponse
from core.services.waitlist_service import parse_brand_form, parse_creator_form
from lib.supabase_client import SupabaseClientError

logger = logging.getLogger(__name__)

router = APIRouter()

OK_BRAND = "brand"
OK_CREATOR = "creator"
OK_ERROR = "err"


def _landing_redirect(services: Services, flag: str) -> RedirectResponse:
    settings = services.settings
    url = f"{settings.frontend_base_url}{settings.WAITLIST_REDIRECT_PATH}?ok={flag}"
    return RedirectResponse(url, status_code=303)


async def _json_body(request: Request) -> dict[str, Any]:
    """Request body as a JSON object; anything else is a 400."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidSignupError("Request body must be JSON")
    if not isinstance(body, dict):
        raise InvalidSignupError("Request body must be a JSON object")
    return body


def _signup_error(error: ValidationError) -> InvalidSignupError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    if field in ("email", "role") and first.get("type") == "missing":
        return InvalidSignupError("Email and role are required", field=field)
    message = first.get("msg", "Invalid value")
    return InvalidSignupError(f"{field}: {message}" if field else message, field=field)


# =============================================================================
# Waitlist forms
# =============================================================================

# A body the form parser rejects is a failed submission like any other
FORM_ERRORS = (LumoException, SupabaseClientError, HTTPException, MultiPartException, ClientDisconnect)


@router.post("/waitlist/brand", response_class=RedirectResponse, status_code=303)
async def brand_waitlist(request: Request, services: ServicesDep):
    try:
        form = await request.form()
        entry = parse_brand_form(form)
        services.waitlist.save_brand_entry(entry)
    except FORM_ERRORS as e:
        logger.warning(f"Brand waitlist submission rejected: {e}")
        return _landing_redirect(services, OK_ERROR)
    return _landing_redirect(services, OK_BRAND)


@router.post("/waitlist/creator", response_class=RedirectResponse, status_code=303)
async def creator_waitlist(request: Request, services: ServicesDep):
    try:
        form = await request.form()
        entry = parse_creator_form(form)
        services.waitlist.save_creator_entry(entry)
    except FORM_ERRORS as e:
        logger.warning(f"Creator waitlist submission rejected: {e}")
        return _landing_redirect(services, OK_ERROR)
    return _landing_redirect(services, OK_CREATOR)


# =============================================================================
# JSON signups
# =============================================================================

@router.post("/quick-signup", response_model=QuickSignupResponse)
async def quick_signup(request: Request, services: ServicesDep):
    """
    Store an email and role from the landing page.

    Errors are 400 (not 422): missing email/role, unknown role or bad email.
    """
    body = await _json_body(request)
    try:
        signup = QuickSignupRequest(**body)
    except ValidationError as e:
        raise _signup_error(e)

    signup_id = services.waitlist.quick_signup(signup)
    return QuickSignupResponse(id=signup_id)


@router.post("/early-access")
async def early_access(request: Request, services: ServicesDep):
    """
    Early-access email capture.

    Answers {"ok": true} even when the store is down; the signup is logged
    instead.
    """
    body = await _json_body(request)
    try:
        signup = EarlyAccessRequest(**body)
    except ValidationError as e:
        raise _signup_error(e)

    services.waitlist.early_access(signup)
    return {"ok": True}
