"""
Simple Configuration
Environment driven settings for the BizDesk API
"""

import os
from dotenv import load_dotenv

load_dotenv()

class SimpleSettings:
    """Simple settings without complex validation"""

    def __init__(self):
        # Application
        self.ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
        self.DEBUG = os.getenv("DEBUG", "false").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # Database
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./bizdesk.db")
        self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
        self.DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))
        self.DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
        self.DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "3600"))

        # Redis / response cache
        self.REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.CACHE_BACKEND = os.getenv("CACHE_BACKEND", "memory").lower()
        self.CACHE_DEFAULT_TTL_SECONDS = int(os.getenv("CACHE_DEFAULT_TTL_SECONDS", "300"))

        # JWT Authentication
        self.JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "bizdesk-development-secret-change-in-production-min-32-chars")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
        self.AUTH_LOCAL_ISSUER = os.getenv("AUTH_LOCAL_ISSUER", "bizdesk-local")

        # Discord OAuth
        self.DISCORD_CLIENT_ID = os.getenv("DISCORD_CLIENT_ID", "")
        self.DISCORD_CLIENT_SECRET = os.getenv("DISCORD_CLIENT_SECRET", "")
        self.DISCORD_REDIRECT_URI = os.getenv("DISCORD_REDIRECT_URI", "http://localhost:8000/api/v1/auth/discord/callback")
        self.DISCORD_API_BASE_URL = os.getenv("DISCORD_API_BASE_URL", "https://discord.com/api")
        self.DISCORD_CDN_BASE_URL = os.getenv("DISCORD_CDN_BASE_URL", "https://cdn.discordapp.com")
        self.DISCORD_HTTP_TIMEOUT_SECONDS = float(os.getenv("DISCORD_HTTP_TIMEOUT_SECONDS", "10"))

        # Bootstrap technician credentials
        self.BOOTSTRAP_TECHNICIAN_USERNAME = os.getenv("BOOTSTRAP_TECHNICIAN_USERNAME", "technician")
        self.BOOTSTRAP_TECHNICIAN_PASSWORD = os.getenv("BOOTSTRAP_TECHNICIAN_PASSWORD", "")

        # Security
        self.ALLOWED_HOSTS = ["*"]
        cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173")
        self.CORS_ORIGINS = [
            origin.strip()
            for origin in cors_origins.split(",")
            if origin.strip()
        ]

        # Request rate tracking
        self.RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "300"))
        self.RATE_ANOMALY_THRESHOLD = int(os.getenv("RATE_ANOMALY_THRESHOLD", "100"))
        self.RATE_TRACKER_WINDOW_SECONDS = int(os.getenv("RATE_TRACKER_WINDOW_SECONDS", "60"))
        self.MAX_REQUEST_SIZE = int(os.getenv("MAX_REQUEST_SIZE", str(10 * 1024 * 1024)))

        # Invitation codes
        self.INVITATION_CODE_RETENTION_DAYS = int(os.getenv("INVITATION_CODE_RETENTION_DAYS", "30"))
        self.INVITATION_CODE_CONSUMED_RETENTION_DAYS = int(os.getenv("INVITATION_CODE_CONSUMED_RETENTION_DAYS", "7"))
        self.INVITATION_SWEEP_INTERVAL_SECONDS = int(os.getenv("INVITATION_SWEEP_INTERVAL_SECONDS", "3600"))

# Create settings instance
settings = SimpleSettings()

# Derived settings
DATABASE_CONFIG = {
    "pool_size": settings.DB_POOL_SIZE,
    "max_overflow": settings.DB_MAX_OVERFLOW,
    "pool_timeout": settings.DB_POOL_TIMEOUT,
    "pool_recycle": settings.DB_POOL_RECYCLE,
    "pool_pre_ping": True,
    "echo": settings.ENVIRONMENT == "development" and settings.DEBUG,
}

REDIS_CONFIG = {
    "url": settings.REDIS_URL,
    "decode_responses": True,
    "retry_on_timeout": True,
    "socket_keepalive": True,
    "socket_keepalive_options": {},
}
