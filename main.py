# GHL Contact Sync - Main Application Entry Point

# Load environment variables FIRST (before any other imports that use config)
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from database.simple_connection import init_database
from api.routes.webhook_routes import router as webhook_router
from api.routes.oauth_routes import router as oauth_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, AppConfig.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown events"""
    logger.info("🚀 GHL Contact Sync starting up...")

    logger.info("🔧 Configuration Status:")
    logger.info(f"   🆔 GHL_CLIENT_ID: {'✅ Loaded' if AppConfig.GHL_CLIENT_ID else '❌ Missing'}")
    logger.info(f"   🔑 GHL_CLIENT_SECRET: {'✅ Loaded' if AppConfig.GHL_CLIENT_SECRET else '❌ Missing'}")
    logger.info(f"   ↩️ GHL_REDIRECT_URI: {'✅ Loaded' if AppConfig.GHL_REDIRECT_URI else '❌ Missing'}")
    logger.info(f"   🌐 GHL_API_BASE_URL: {AppConfig.GHL_API_BASE_URL} (Version {AppConfig.GHL_API_VERSION})")

    if AppConfig.validate_config():
        logger.info("✅ All required configuration loaded successfully")
    else:
        logger.error("❌ Configuration validation failed - check environment variables")

    init_database()

    logger.info("✅ Contact webhook available at /api/webhooks/contact")
    logger.info("✅ Marketplace webhook available at /api/webhooks/marketplace")
    logger.info("✅ OAuth install flow available at /oauth/initiate")
    logger.info("🎯 Ready to process form submissions!")

    yield

    logger.info("🛑 GHL Contact Sync shutting down...")


app = FastAPI(
    title="GHL Contact Sync",
    description="Webhook to GoHighLevel contact sync with automatic custom field creation",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook_router)
app.include_router(oauth_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "ghl-contact-sync", "environment": AppConfig.ENVIRONMENT}


if __name__ == "__main__":
    import uvicorn

    try:
        uvicorn.run(app, host=AppConfig.HOST, port=AppConfig.PORT)
    except KeyboardInterrupt:
        logger.info("🛑 GHL Contact Sync shutting down...")
    except Exception as e:
        logger.error(f"❌ Application crashed: {e}")
        raise
