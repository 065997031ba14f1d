"""Signing Data Models"""

from .documents import (
    SigningDocument,
    SigningDocumentStatus,
    SigningDocumentSummary,
    Signer,
    SignerStatus,
    SignerStep,
    IdentityMethod,
    Recipient,
    RecipientInput,
    RecipientVerificationStatus,
    CaptureMode,
    SignatureArtifact,
    SignatureStyle,
    SignaturePlacement,
    SignatureField,
    VerificationChallenge,
    VerificationState,
)
from .notary import (
    Appointment,
    AppointmentCreate,
    AppointmentStatus,
    UploadedDocument,
    UploadedDocumentStatus,
    VerificationStep,
    VerificationType,
    Witness,
    WitnessType,
    NotarizedRecord,
    NotarizedStatus,
)

__all__ = [
    # Documents
    "SigningDocument",
    "SigningDocumentStatus",
    "SigningDocumentSummary",
    "Signer",
    "SignerStatus",
    "SignerStep",
    "IdentityMethod",
    "Recipient",
    "RecipientInput",
    "RecipientVerificationStatus",
    "CaptureMode",
    "SignatureArtifact",
    "SignatureStyle",
    "SignaturePlacement",
    "SignatureField",
    "VerificationChallenge",
    "VerificationState",
    # Notary
    "Appointment",
    "AppointmentCreate",
    "AppointmentStatus",
    "UploadedDocument",
    "UploadedDocumentStatus",
    "VerificationStep",
    "VerificationType",
    "Witness",
    "WitnessType",
    "NotarizedRecord",
    "NotarizedStatus",
]
