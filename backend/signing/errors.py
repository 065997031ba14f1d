"""Signing workflow errors.

Every error is recoverable by the caller: the document and party records are left
exactly as they were before the failing call.
"""
from typing import Optional


class SigningError(Exception):
    """Base exception for the signing workflow."""
    code = "signing_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code


# ============================================================================
# Validation (malformed input)
# ============================================================================

class ValidationError(SigningError):
    """Invalid input."""
    code = "validation_error"


class InvalidIdFormat(ValidationError):
    """ID number must be a fixed-length numeric value."""
    code = "invalid_id_format"


class InvalidOtpFormat(ValidationError):
    """OTP must be 6 digits."""
    code = "invalid_otp_format"


class OtpMismatch(ValidationError):
    """Invalid OTP."""
    code = "otp_mismatch"


class InvalidEmail(ValidationError):
    """Invalid email address."""
    code = "invalid_email"


class InvalidFileType(ValidationError):
    """File type not allowed."""
    code = "invalid_file_type"


class FileTooLarge(ValidationError):
    """File exceeds the size limit."""
    code = "file_too_large"


class EmptyCapture(ValidationError):
    """No signature captured."""
    code = "empty_capture"


class InvalidStroke(ValidationError):
    """Stroke points must be finite [x, y] pairs."""
    code = "invalid_stroke"


class MissingRecipients(ValidationError):
    """At least one recipient with name and email is required."""
    code = "missing_recipients"


class PlacementError(ValidationError):
    """Signature does not cover a required signature field."""
    code = "placement_error"


# ============================================================================
# Capacity
# ============================================================================

class CapacityError(SigningError):
    """Capacity exceeded."""
    code = "capacity_error"


class PartyCapReached(CapacityError):
    """Maximum number of signed parties reached for this document."""
    code = "party_cap_reached"


# ============================================================================
# State
# ============================================================================

class StateError(SigningError):
    """Operation not allowed in the current state."""
    code = "state_error"


class AlreadySigned(StateError):
    """Party has already signed."""
    code = "already_signed"


class NotVerified(StateError):
    """Party identity has not been verified."""
    code = "not_verified"


class PartyRejected(StateError):
    """Party has rejected the document."""
    code = "party_rejected"


class TokenNotFound(StateError):
    """Signing link is invalid."""
    code = "token_not_found"


class TokenAlreadyConsumed(StateError):
    """Signing link has already been used."""
    code = "token_already_consumed"


class TokenExpired(StateError):
    """Signing link has expired."""
    code = "token_expired"


class OtpNotRequested(StateError):
    """No OTP has been requested."""
    code = "otp_not_requested"


class AlreadyVerified(StateError):
    """Identity already verified."""
    code = "already_verified"


class OtpExpired(StateError):
    """OTP has expired."""
    code = "otp_expired"


class OtpLocked(StateError):
    """Too many OTP attempts."""
    code = "otp_locked"


class InvalidTransition(StateError):
    """Status transition not allowed."""
    code = "invalid_transition"


class CaptureModeMismatch(StateError):
    """Capture session is in a different mode."""
    code = "capture_mode_mismatch"


class ConcurrentModification(StateError):
    """Record was modified by another request."""
    code = "concurrent_modification"


# ============================================================================
# Lookup
# ============================================================================

class NotFoundError(SigningError):
    """Record not found."""
    code = "not_found"


class DocumentNotFound(NotFoundError):
    """Document not found."""
    code = "document_not_found"


class PartyNotFound(NotFoundError):
    """Party not found on this document."""
    code = "party_not_found"


class AppointmentNotFound(NotFoundError):
    """Appointment not found."""
    code = "appointment_not_found"


# ============================================================================
# I/O
# ============================================================================

class CaptureReadError(SigningError, OSError):
    """Failed to read the signature file."""
    code = "capture_read_error"


HTTP_STATUS = (
    (CaptureReadError, 422),
    (ValidationError, 400),
    (CapacityError, 409),
    (StateError, 409),
    (NotFoundError, 404),
)


def http_status_for(error: SigningError) -> int:
    for error_type, status_code in HTTP_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 400
