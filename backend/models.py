from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class ActorRole(str, Enum):
    ROLE_OWNER = "ROLE_OWNER"  # Uploaded the document / runs the notary desk
    ROLE_SIGNER = "ROLE_SIGNER"
    ROLE_RECIPIENT = "ROLE_RECIPIENT"  # Token holder, no account
    ROLE_SYSTEM = "ROLE_SYSTEM"

class AuditAction(str, Enum):
    # Documents
    SIGNING_DOCUMENT_CREATED = "SIGNING_DOCUMENT_CREATED"
    SIGNING_DOCUMENT_DELETED = "SIGNING_DOCUMENT_DELETED"
    SIGNING_DOCUMENT_DOWNLOADED = "SIGNING_DOCUMENT_DOWNLOADED"
    SIGNING_DOCUMENT_SENT = "SIGNING_DOCUMENT_SENT"
    SIGNING_STATUS_CHANGED = "SIGNING_STATUS_CHANGED"

    # Signers
    SIGNER_ADDED = "SIGNER_ADDED"
    SIGNER_OTP_REQUESTED = "SIGNER_OTP_REQUESTED"
    SIGNER_OTP_FAILED = "SIGNER_OTP_FAILED"
    SIGNER_VERIFIED = "SIGNER_VERIFIED"
    SIGNER_SIGNED = "SIGNER_SIGNED"
    SIGNER_REJECTED = "SIGNER_REJECTED"

    # Recipients
    RECIPIENT_TOKEN_REDEEMED = "RECIPIENT_TOKEN_REDEEMED"
    RECIPIENT_SIGNED = "RECIPIENT_SIGNED"

    # Notary
    APPOINTMENT_SCHEDULED = "APPOINTMENT_SCHEDULED"
    NOTARY_DOCUMENT_UPLOADED = "NOTARY_DOCUMENT_UPLOADED"
    NOTARY_DOCUMENT_FAILED = "NOTARY_DOCUMENT_FAILED"
    NOTARY_REVIEW_ACKNOWLEDGED = "NOTARY_REVIEW_ACKNOWLEDGED"
    NOTARY_DOCUMENT_VERIFIED = "NOTARY_DOCUMENT_VERIFIED"
    NOTARY_DOCUMENT_REMOVED = "NOTARY_DOCUMENT_REMOVED"

    # Email
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"
    NOTIFICATION_PROVIDER_NOT_CONFIGURED = "NOTIFICATION_PROVIDER_NOT_CONFIGURED"

class MessageStatus(str, Enum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"
    BLOCKED_PROVIDER_NOT_CONFIGURED = "BLOCKED_PROVIDER_NOT_CONFIGURED"

# ============================================================================
# MODELS
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[ActorRole] = None
    actor_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    reason_code: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class MessageLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    provider_message_id: Optional[str] = None
    channel: str = "EMAIL"
    recipient: EmailStr
    template_key: str
    subject: str
    status: MessageStatus = MessageStatus.QUEUED
    metadata: Optional[Dict[str, Any]] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
