"""Configuration module for the Invite Gate service.

This module provides centralized configuration management, including directory
paths, API server settings, token settings, and invite code limits.
All configuration values can be overridden via environment variables.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Directory Configuration ---

# Root directory of the project
ROOT_DIR = Path(__file__).parent.parent.resolve()

# Data directory name
DATA_DIR_NAME = "data"
DATA_DIR = ROOT_DIR / DATA_DIR_NAME

# --- Database Configuration ---

DATABASE_URL: str = os.getenv(
    "DATABASE_URL", f"sqlite:///{DATA_DIR}/invite_gate.db"
)

# --- API Server Configuration ---

API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8080"))

# CORS allowed origins (comma-separated list)
# Default includes local development addresses. For production, set via
# CORS_ALLOWED_ORIGINS environment variable.
_CORS_ALLOWED_ORIGINS_STR: str = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,"
    "http://127.0.0.1:3000",
)
CORS_ALLOWED_ORIGINS: List[str] = [
    origin.strip()
    for origin in _CORS_ALLOWED_ORIGINS_STR.split(",")
    if origin.strip()
]

# --- Logging Configuration ---

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Authentication Configuration ---

JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "your-secret-key-change-in-production")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_HOURS: int = int(os.getenv("JWT_EXPIRE_HOURS", "168"))
JWT_ISSUER: str = os.getenv("JWT_ISSUER", "invite-gate-api")

# Admin token for admin registration (set via ADMIN_TOKEN environment variable)
ADMIN_TOKEN: Optional[str] = os.getenv("ADMIN_TOKEN")

# --- Invite Code Configuration ---

INVITE_CODE_MIN_USES: int = int(os.getenv("INVITE_CODE_MIN_USES", "1"))
INVITE_CODE_MAX_USES: int = int(os.getenv("INVITE_CODE_MAX_USES", "100"))
INVITE_CODE_DEFAULT_MAX_USES: int = int(os.getenv("INVITE_CODE_DEFAULT_MAX_USES", "10"))
INVITE_CODE_DESCRIPTION_MAX_LENGTH: int = int(
    os.getenv("INVITE_CODE_DESCRIPTION_MAX_LENGTH", "255")
)

# Number of random candidates tried before code generation gives up.
INVITE_CODE_GENERATION_ATTEMPTS: int = int(
    os.getenv("INVITE_CODE_GENERATION_ATTEMPTS", "5")
)

# Retries after a lost compare-and-swap on used_count.
REDEMPTION_CONFLICT_RETRIES: int = int(os.getenv("REDEMPTION_CONFLICT_RETRIES", "3"))

# How registration treats the invite code:
#   "lenient": create the user first, then redeem; redemption failures are
#              logged and the account is kept.
#   "atomic":  redemption and user creation commit in one transaction.
REGISTRATION_REDEMPTION_MODE: str = os.getenv(
    "REGISTRATION_REDEMPTION_MODE", "lenient"
).lower()

# --- Pagination ---

DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
MAX_PAGE_SIZE: int = int(os.getenv("MAX_PAGE_SIZE", "100"))
