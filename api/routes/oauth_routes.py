# api/routes/oauth_routes.py
# Marketplace install flow: authorize redirect and authorization-code callback

import asyncio
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse

from config import AppConfig
from api.services.contact_sync_service import get_token_service
from api.services.token_service import TokenService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/oauth", tags=["GHL OAuth"])


def build_authorize_url() -> str:
    oauth = AppConfig.get_oauth_config()
    query = urlencode({
        "response_type": "code",
        "client_id": oauth["client_id"],
        "redirect_uri": oauth["redirect_uri"],
        "scope": oauth["scopes"],
        "user_type": "Company",
    })
    return f"{oauth['marketplace_url'].rstrip('/')}/oauth/chooselocation?{query}"


@router.get("/initiate")
async def initiate_oauth():
    """Send the installing user to the GHL location chooser"""
    if not AppConfig.validate_config():
        return JSONResponse(
            content={"status": "error", "message": "OAuth client is not configured"},
            status_code=500
        )
    return RedirectResponse(url=build_authorize_url(), status_code=302)


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = None,
    token_service: TokenService = Depends(get_token_service)
):
    """Exchange the authorization code and store the company credential"""
    if not code:
        logger.warning("⚠️ OAuth callback called without a code")
        return JSONResponse(
            content={"status": "error", "message": "Authorization code missing"},
            status_code=400
        )

    token_response = await asyncio.to_thread(token_service.ghl_api.exchange_code_for_token, code)
    if not token_response.get("access_token"):
        logger.error(f"❌ Failed to get access token: {token_response}")
        return JSONResponse(
            content={"status": "error", "message": "Failed to get access token"},
            status_code=400
        )

    token = await asyncio.to_thread(token_service.store_oauth_response, token_response)
    logger.info(f"✅ App installed via OAuth for company: {token.company_id}")
    return RedirectResponse(url=AppConfig.GHL_POST_INSTALL_REDIRECT, status_code=302)
