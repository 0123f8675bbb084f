# api/routes/webhook_routes.py

import asyncio
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from config import AppConfig
from api.services.contact_sync_service import (
    ContactSyncService, get_contact_sync_service, get_token_service
)
from api.services.token_service import TokenService
from api.services.errors import ContactSyncError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/webhooks", tags=["GHL Webhooks"])


class MarketplaceEvent(BaseModel):
    """App lifecycle event sent by the GHL marketplace"""
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    companyId: Optional[str] = None
    locationId: Optional[str] = None
    webhookId: Optional[str] = None


def _form_to_payload(body_str: str) -> Dict[str, Any]:
    parsed = parse_qs(body_str, keep_blank_values=True)
    # Repeated keys (checkbox groups) keep every value
    return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()}


async def parse_webhook_payload(request: Request) -> Dict[str, Any]:
    """
    Payload parser that handles both JSON and form-encoded data.
    Returns {} when the body cannot be parsed; validation happens downstream.
    """
    content_type = request.headers.get("content-type", "").lower()
    body = await request.body()
    body_str = body.decode("utf-8", errors="replace")

    if "application/json" in content_type:
        try:
            payload = json.loads(body_str) if body_str.strip() else {}
            if isinstance(payload, dict):
                return payload
            logger.warning(f"⚠️ JSON payload is a {type(payload).__name__}, expected an object")
            return {}
        except ValueError as json_error:
            logger.warning(f"⚠️ JSON parsing failed despite JSON content-type: {json_error}")

    if "application/x-www-form-urlencoded" in content_type:
        return _form_to_payload(body_str)

    if "multipart/form-data" in content_type:
        form_data = await request.form()
        payload: Dict[str, Any] = {}
        for key in form_data.keys():
            values = form_data.getlist(key)
            payload[key] = values[0] if len(values) == 1 else values
        return payload

    # Auto-detect
    stripped = body_str.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        try:
            return json.loads(stripped)
        except ValueError as e:
            logger.warning(f"⚠️ Auto-detect JSON parsing failed: {e}")
    if "=" in stripped:
        return _form_to_payload(stripped)

    logger.error(f"❌ Could not parse webhook body (Content-Type: {content_type})")
    return {}


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(content={"status": "error", "message": message}, status_code=status_code)


@router.post("/contact")
async def handle_contact_webhook(
    request: Request,
    service: ContactSyncService = Depends(get_contact_sync_service)
):
    """
    Upsert a GHL contact from a marketing-form webhook, creating any custom
    fields the location does not have yet.
    """
    payload = await parse_webhook_payload(request)
    logger.info(f"📥 Webhook received with {len(payload)} fields: {list(payload.keys())}")

    try:
        data = await asyncio.wait_for(
            asyncio.to_thread(service.process_webhook, payload),
            timeout=AppConfig.WEBHOOK_TIMEOUT_SECONDS
        )
    except ContactSyncError as e:
        logger.error(f"❌ Webhook aborted ({e.status_code}): {e.message} {e.context or ''}")
        return error_response(e.message, e.status_code)
    except asyncio.TimeoutError:
        logger.error(f"❌ Webhook processing exceeded {AppConfig.WEBHOOK_TIMEOUT_SECONDS}s")
        return error_response("Webhook processing timed out", 504)
    except Exception as e:
        logger.error(f"❌ Webhook processing failed: {e}", exc_info=True)
        return error_response(f"Failed to process webhook: {e}", 500)

    return JSONResponse(
        content={
            "status": "success",
            "message": "Contact and custom fields processed successfully",
            "data": data
        },
        status_code=200
    )


@router.post("/marketplace")
async def handle_marketplace_webhook(
    event: MarketplaceEvent,
    token_service: TokenService = Depends(get_token_service)
):
    """INSTALL / UNINSTALL events toggle the company credential"""
    if not event.type:
        logger.warning(f"⚠️ Marketplace webhook missing type field: {event.model_dump()}")
        return error_response("Webhook type is required", 400)

    if not event.companyId and not event.locationId:
        logger.warning(f"⚠️ Marketplace webhook missing both companyId and locationId: {event.model_dump()}")
        return error_response("Either Company ID or Location ID is required", 400)

    if not event.companyId:
        logger.info(f"📍 Location-level {event.type} webhook acknowledged for {event.locationId}")
        return JSONResponse(content={"status": "success", "message": "Location webhook acknowledged"})

    event_type = event.type.upper()
    if event_type == "INSTALL":
        changed = await asyncio.to_thread(token_service.activate_company, event.companyId)
        action, status = "installed", "activated"
    elif event_type == "UNINSTALL":
        changed = await asyncio.to_thread(token_service.deactivate_company, event.companyId)
        action, status = "uninstalled", "deactivated"
    else:
        logger.warning(f"⚠️ Unknown webhook type received: {event.type} (company {event.companyId})")
        return error_response(f"Unknown webhook type: {event.type}", 400)

    if not changed:
        logger.warning(f"⚠️ Could not {event_type.lower()} company {event.companyId}: no stored token")
        return error_response(f"Failed to update company token for {event_type}", 500)

    logger.info(f"✅ App {action} for company: {event.companyId} (webhook {event.webhookId})")
    return JSONResponse(content={
        "status": "success",
        "message": f"App {action} successfully",
        "company_id": event.companyId,
        "token_status": status
    })


@router.get("/health")
async def webhook_health_check():
    """Configuration presence check for the webhook system"""
    oauth = AppConfig.get_oauth_config()
    return {
        "status": "healthy" if AppConfig.validate_config() else "degraded",
        "oauth_client_configured": bool(oauth["client_id"] and oauth["client_secret"]),
        "redirect_uri_configured": bool(oauth["redirect_uri"]),
        "api_base_url": oauth["api_base_url"],
        "api_version": oauth["api_version"],
        "field_batch_size": AppConfig.FIELD_PROCESSING_BATCH_SIZE,
        "custom_field_cache_ttl": AppConfig.CUSTOM_FIELD_CACHE_TTL,
    }
