"""
Signing workflow configuration.
All values come from the environment (backend/.env is loaded here so the module can be
imported by scripts and tests without server.py).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent
load_dotenv(ROOT_DIR / '.env')

# Parties
SIGNING_PARTY_CAP = int(os.getenv("SIGNING_PARTY_CAP", "3"))
SIGNING_MAX_WRITE_RETRIES = int(os.getenv("SIGNING_MAX_WRITE_RETRIES", "3"))

# Uploads
SIGNATURE_UPLOAD_MAX_BYTES = int(os.getenv("SIGNATURE_UPLOAD_MAX_BYTES", str(5 * 1024 * 1024)))
DOCUMENT_UPLOAD_MAX_BYTES = int(os.getenv("DOCUMENT_UPLOAD_MAX_BYTES", str(10 * 1024 * 1024)))
DOCUMENT_DEFAULT_DEADLINE_DAYS = int(os.getenv("DOCUMENT_DEFAULT_DEADLINE_DAYS", "7"))

SIGNATURE_UPLOAD_TYPES = ("image/png", "image/jpeg", "image/jpg", "application/pdf")
DOCUMENT_UPLOAD_TYPES = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)
NOTARY_UPLOAD_TYPES = DOCUMENT_UPLOAD_TYPES + ("text/plain",)

# Draw canvas
CANVAS_WIDTH = int(os.getenv("SIGNATURE_CANVAS_WIDTH", "500"))
CANVAS_HEIGHT = int(os.getenv("SIGNATURE_CANVAS_HEIGHT", "200"))

# Placement box assumed for a rendered signature
SIGNATURE_BOX_WIDTH = 200
SIGNATURE_BOX_HEIGHT = 100

# Local identity verification
NATIONAL_ID_LENGTH = int(os.getenv("NATIONAL_ID_LENGTH", "12"))
OTP_LENGTH = 6
OTP_MODE = (os.getenv("OTP_MODE") or "fixed").strip().lower()
OTP_FIXED_CODE = (os.getenv("OTP_FIXED_CODE") or "123456").strip()
OTP_PEPPER = (os.getenv("OTP_PEPPER") or "").strip()
OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "0"))  # 0 = unlimited
OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "0"))  # 0 = never expires
OTP_LOCKOUT_SECONDS = int(os.getenv("OTP_LOCKOUT_SECONDS", "900"))

# Remote recipients
SIGNING_TOKEN_TTL_HOURS = int(os.getenv("SIGNING_TOKEN_TTL_HOURS", "0"))  # 0 = never expires
PUBLIC_APP_URL = (os.getenv("PUBLIC_APP_URL") or "http://localhost:3000").strip().rstrip("/")
SIGNING_LINK_PATH = "/dashboard/digital-signature"

# Storage backend: mongo (default) or memory
SIGNING_STORE = (os.getenv("SIGNING_STORE") or "mongo").strip().lower()
