"""Signing Document Models

A signing document carries two independent party pipelines:
1. Signers - local parties, gated by national-ID + OTP verification
2. Recipients - remote parties invited by email, gated by a possession token

Status is driven only by the workflow service (pending -> in_progress -> completed).
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date, timezone
from enum import Enum
import uuid


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SigningDocumentStatus(str, Enum):
    """Document signing status (monotonic)"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


STATUS_RANK = {
    SigningDocumentStatus.PENDING: 0,
    SigningDocumentStatus.IN_PROGRESS: 1,
    SigningDocumentStatus.COMPLETED: 2,
}


class SignerStatus(str, Enum):
    PENDING = "pending"
    SIGNED = "signed"
    REJECTED = "rejected"


class IdentityMethod(str, Enum):
    LOCAL_ID_OTP = "local-id-otp"
    NONE = "none"


class RecipientVerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"


class CaptureMode(str, Enum):
    DRAW = "draw"
    TYPE = "type"
    UPLOAD = "upload"


class VerificationState(str, Enum):
    UNVERIFIED = "unverified"
    OTP_SENT = "otp_sent"
    VERIFIED = "verified"


class SignerStep(str, Enum):
    """Explicit wizard step for a signer."""
    IDENTITY = "identity"
    CAPTURE = "capture"
    DONE = "done"
    REJECTED = "rejected"


# ============================================================================
# Signature artifact
# ============================================================================

class SignatureStyle(BaseModel):
    """Presentation of a drawn or typed signature."""
    color: str = "#000000"
    thickness: int = Field(default=2, ge=1, le=20)
    font_family: str = "Dancing Script"
    font_size: int = Field(default=24, ge=8, le=96)

    model_config = {"extra": "ignore"}


class SignaturePlacement(BaseModel):
    """Position of the signature box on the page."""
    x: float
    y: float
    width: float = 200
    height: float = 100


class SignatureField(BaseModel):
    """Area of the document a signature is expected in."""
    field_id: str = Field(default_factory=lambda: f"FLD-{uuid.uuid4().hex[:8].upper()}")
    x: float
    y: float
    width: float
    height: float
    required: bool = True
    signer_id: Optional[str] = None


class SignatureArtifact(BaseModel):
    """Captured signature, opaque to the workflow beyond its mode tag."""
    mode: CaptureMode
    payload: str
    style: Optional[SignatureStyle] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
    placement: Optional[SignaturePlacement] = None

    model_config = {"extra": "ignore"}


# ============================================================================
# Verification
# ============================================================================

class VerificationChallenge(BaseModel):
    """Local ID + OTP challenge.

    Never holds the raw ID number or the raw OTP; only hashes and the last
    four ID digits for display.
    """
    state: VerificationState = VerificationState.UNVERIFIED
    subject_id_hash: Optional[str] = None
    subject_id_last4: Optional[str] = None
    code_hash: Optional[str] = None
    otp_issued_at: Optional[datetime] = None
    otp_expires_at: Optional[datetime] = None
    attempts: int = 0
    send_count: int = 0
    locked_until: Optional[datetime] = None
    verified_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}


# ============================================================================
# Parties
# ============================================================================

class Signer(BaseModel):
    """Local, interactive party."""
    signer_id: str = Field(default_factory=lambda: f"SGN-{uuid.uuid4().hex[:12].upper()}")
    name: str
    email: str
    status: SignerStatus = SignerStatus.PENDING
    identity_method: IdentityMethod = IdentityMethod.LOCAL_ID_OTP
    identity_verified: bool = False
    verification: VerificationChallenge = Field(default_factory=VerificationChallenge)
    signature_artifact: Optional[SignatureArtifact] = None
    signed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    added_at: datetime = Field(default_factory=_now)

    model_config = {"extra": "ignore"}

    @property
    def step(self) -> SignerStep:
        if self.status == SignerStatus.REJECTED:
            return SignerStep.REJECTED
        if self.status == SignerStatus.SIGNED:
            return SignerStep.DONE
        if self.identity_verified:
            return SignerStep.CAPTURE
        return SignerStep.IDENTITY


class Recipient(BaseModel):
    """Remote party invited by reference; the token is the only credential."""
    recipient_id: str = Field(default_factory=lambda: f"RCP-{uuid.uuid4().hex[:12].upper()}")
    name: str
    email: str
    verification_status: RecipientVerificationStatus = RecipientVerificationStatus.PENDING
    token_hash: Optional[str] = None
    token_issued_at: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None
    signature_artifact: Optional[SignatureArtifact] = None
    signed_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}

    @property
    def has_signed(self) -> bool:
        return self.signed_at is not None


class RecipientInput(BaseModel):
    """Recipient entered on the send-for-signing form."""
    name: str = ""
    email: str = ""


# ============================================================================
# Document
# ============================================================================

class SigningDocument(BaseModel):
    """Document record owned by the signing workflow."""
    document_id: str = Field(default_factory=lambda: f"DOC-{uuid.uuid4().hex[:12].upper()}")
    name: str
    content_ref: Optional[str] = None  # FileStorage handle
    mime_kind: str
    size_bytes: int = 0
    owner_id: Optional[str] = None

    status: SigningDocumentStatus = SigningDocumentStatus.PENDING
    deadline: date

    signers: List[Signer] = Field(default_factory=list)
    recipients: List[Recipient] = Field(default_factory=list)
    signature_fields: List[SignatureField] = Field(default_factory=list)

    # Optimistic concurrency
    version: int = 0

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}

    def find_signer(self, signer_id: str) -> Optional[Signer]:
        return next((s for s in self.signers if s.signer_id == signer_id), None)

    def find_recipient(self, recipient_id: str) -> Optional[Recipient]:
        return next((r for r in self.recipients if r.recipient_id == recipient_id), None)

    @property
    def signed_signer_count(self) -> int:
        return sum(1 for s in self.signers if s.status == SignerStatus.SIGNED)

    @property
    def signed_recipient_count(self) -> int:
        return sum(1 for r in self.recipients if r.has_signed)

    @property
    def signed_party_count(self) -> int:
        return self.signed_signer_count + self.signed_recipient_count


class SigningDocumentSummary(BaseModel):
    """Listing item for the documents table"""
    document_id: str
    name: str
    status: SigningDocumentStatus
    deadline: date
    signed_count: int
    signer_count: int
    recipient_count: int
    created_at: datetime

    @classmethod
    def from_document(cls, document: SigningDocument) -> "SigningDocumentSummary":
        return cls(
            document_id=document.document_id,
            name=document.name,
            status=document.status,
            deadline=document.deadline,
            signed_count=document.signed_party_count,
            signer_count=len(document.signers),
            recipient_count=len(document.recipients),
            created_at=document.created_at,
        )
