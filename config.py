# config.py - Configuration management for GHL Contact Sync

import os
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class AppConfig:
    """
    Centralized configuration management for the application
    """

    # GHL OAuth Configuration
    GHL_CLIENT_ID: str = os.getenv("GHL_CLIENT_ID", "")
    GHL_CLIENT_SECRET: str = os.getenv("GHL_CLIENT_SECRET", "")
    GHL_REDIRECT_URI: str = os.getenv("GHL_REDIRECT_URI", "")
    GHL_SCOPES: str = os.getenv("GHL_SCOPES", "")
    GHL_MARKETPLACE_URL: str = os.getenv("GHL_MARKETPLACE_URL", "https://marketplace.gohighlevel.com")
    GHL_POST_INSTALL_REDIRECT: str = os.getenv("GHL_POST_INSTALL_REDIRECT", "https://app.gohighlevel.com/")

    # GHL API Configuration
    GHL_API_BASE_URL: str = os.getenv("GHL_API_BASE_URL", "https://services.leadconnectorhq.com")
    GHL_API_VERSION: str = os.getenv("GHL_API_VERSION", "2021-07-28")
    GHL_REQUEST_TIMEOUT: int = int(os.getenv("GHL_REQUEST_TIMEOUT", "30"))

    # Custom field processing
    FIELD_PROCESSING_BATCH_SIZE: int = int(os.getenv("FIELD_PROCESSING_BATCH_SIZE", "50"))
    BATCH_PROCESSING_DELAY: float = float(os.getenv("BATCH_PROCESSING_DELAY", "1"))  # seconds
    CUSTOM_FIELD_CACHE_TTL: int = int(os.getenv("CUSTOM_FIELD_CACHE_TTL", "300"))  # 5 minutes
    TOKEN_EXPIRY_BUFFER_MINUTES: int = int(os.getenv("TOKEN_EXPIRY_BUFFER_MINUTES", "5"))
    WEBHOOK_TIMEOUT_SECONDS: int = int(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "300"))

    # Server Configuration
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./ghl_contact_sync.db")

    @classmethod
    def validate_config(cls) -> bool:
        """
        Validate that required configuration is present
        """
        required_fields = [
            "GHL_CLIENT_ID",
            "GHL_CLIENT_SECRET",
            "GHL_REDIRECT_URI",
        ]

        missing_fields = []
        for field in required_fields:
            if not getattr(cls, field):
                missing_fields.append(field)

        if missing_fields:
            logger.error(f"❌ Missing required configuration: {', '.join(missing_fields)}")
            return False

        return True

    @classmethod
    def get_oauth_config(cls) -> dict:
        """
        Get OAuth-related configuration
        """
        return {
            "client_id": cls.GHL_CLIENT_ID,
            "client_secret": cls.GHL_CLIENT_SECRET,
            "redirect_uri": cls.GHL_REDIRECT_URI,
            "scopes": cls.GHL_SCOPES,
            "marketplace_url": cls.GHL_MARKETPLACE_URL,
            "api_base_url": cls.GHL_API_BASE_URL,
            "api_version": cls.GHL_API_VERSION,
        }
