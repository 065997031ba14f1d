"""Notary Models

Appointments carry a set of document names; uploaded documents go through an
independent review + witness-signature verification.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import uuid

from signing.models.documents import SignatureArtifact


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    PENDING = "pending"


class UploadedDocumentStatus(str, Enum):
    """uploading -> completed -> pending_verification -> verified (failed on transfer error)"""
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"


class VerificationStep(str, Enum):
    VIEW = "view"
    SIGNATURE = "signature"
    DONE = "done"


class VerificationType(str, Enum):
    IDENTITY = "identity"
    DOCUMENT = "document"
    SIGNATURE = "signature"
    OTHER = "other"


class WitnessType(str, Enum):
    NOTARY = "notary"
    WITNESS = "witness"
    COMMISSIONER = "commissioner"


class NotarizedStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    PENDING = "pending"


class Appointment(BaseModel):
    appointment_id: str = Field(default_factory=lambda: f"APT-{uuid.uuid4().hex[:10].upper()}")
    type: str
    date: str
    time: str
    location: str
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    documents: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class AppointmentCreate(BaseModel):
    type: str = Field(..., min_length=1)
    date: str = Field(..., min_length=1)
    time: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    documents: List[str] = Field(default_factory=list)


class Witness(BaseModel):
    name: str
    witness_type: WitnessType = WitnessType.WITNESS
    signature_artifact: SignatureArtifact
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UploadedDocument(BaseModel):
    """Document uploaded for notarization."""
    document_id: str = Field(default_factory=lambda: f"NUD-{uuid.uuid4().hex[:12].upper()}")
    name: str
    size: int
    mime_kind: str
    content_ref: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    status: UploadedDocumentStatus = UploadedDocumentStatus.UPLOADING
    verification_step: VerificationStep = VerificationStep.VIEW
    review_acknowledged: bool = False
    verification_type: VerificationType = VerificationType.DOCUMENT

    witness: Optional[Witness] = None
    verified_at: Optional[datetime] = None
    error_message: Optional[str] = None

    model_config = {"extra": "ignore"}


class NotarizedRecord(BaseModel):
    """Entry in the notarized documents register."""
    record_id: str = Field(default_factory=lambda: f"NTR-{uuid.uuid4().hex[:10].upper()}")
    name: str
    type: str
    notarization_date: datetime
    notary_name: str
    status: NotarizedStatus = NotarizedStatus.ACTIVE
    related_appointment: Optional[str] = None
    source_document_id: Optional[str] = None

    model_config = {"extra": "ignore"}
