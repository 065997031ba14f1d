"""
Signer/Recipient registry for one document.

Enforces the signed-party cap and exactly-once signing. Every check runs before any
field is touched, so a failing call leaves the document unchanged.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from pydantic import EmailStr, TypeAdapter, ValidationError as PydanticValidationError

from signing import config
from signing.errors import (
    AlreadySigned,
    InvalidEmail,
    MissingRecipients,
    NotVerified,
    PartyCapReached,
    PartyNotFound,
    PartyRejected,
    PlacementError,
    ValidationError,
)
from signing.models.documents import (
    IdentityMethod,
    Recipient,
    RecipientInput,
    RecipientVerificationStatus,
    SignatureArtifact,
    SignatureField,
    Signer,
    SignerStatus,
    SigningDocument,
    VerificationState,
)

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    value = (email or "").strip()
    if not value:
        raise InvalidEmail("Email is required")
    try:
        return str(_email_adapter.validate_python(value))
    except PydanticValidationError:
        raise InvalidEmail("Please enter a valid email address")


def _overlaps(field: SignatureField, artifact: SignatureArtifact) -> bool:
    p = artifact.placement
    if p is None:
        return False
    return (
        p.x <= field.x + field.width
        and p.x + p.width >= field.x
        and p.y <= field.y + field.height
        and p.y + p.height >= field.y
    )


def check_placement(document: SigningDocument, artifact: SignatureArtifact, party_id: str) -> None:
    """Every required field for this party (or for anyone) must be covered by the signature box."""
    for field in document.signature_fields:
        if not field.required:
            continue
        if field.signer_id and field.signer_id != party_id:
            continue
        if not _overlaps(field, artifact):
            raise PlacementError("Please place your signature in the required field")


class PartyRegistry:
    def __init__(self, cap: int = config.SIGNING_PARTY_CAP, clock: Callable[[], datetime] = _utcnow):
        self.cap = cap
        self.clock = clock

    def _ensure_capacity(self, document: SigningDocument) -> None:
        if document.signed_party_count >= self.cap:
            raise PartyCapReached(
                f"Maximum number of signed signers ({self.cap}) reached for this document"
            )

    # -------- Signers --------------------------------------------------------
    def add_signer(
        self,
        document: SigningDocument,
        name: str,
        email: str,
        identity_method: IdentityMethod = IdentityMethod.LOCAL_ID_OTP,
    ) -> Signer:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        email = normalize_email(email)
        self._ensure_capacity(document)

        signer = Signer(name=name, email=email, identity_method=identity_method)
        if identity_method == IdentityMethod.NONE:
            signer.identity_verified = True
            signer.verification.state = VerificationState.VERIFIED
            signer.verification.verified_at = self.clock()
        document.signers.append(signer)
        return signer

    def get_signer(self, document: SigningDocument, signer_id: str) -> Signer:
        signer = document.find_signer(signer_id)
        if signer is None:
            raise PartyNotFound(f"Signer {signer_id} not found")
        return signer

    def ensure_can_capture(self, document: SigningDocument, signer: Signer) -> None:
        """Gate for opening a capture session: verified, not yet signed, cap not reached."""
        if signer.status == SignerStatus.SIGNED:
            raise AlreadySigned()
        if signer.status == SignerStatus.REJECTED:
            raise PartyRejected()
        if not signer.identity_verified:
            raise NotVerified("Identity verification is required before signing")
        self._ensure_capacity(document)

    def record_signature(
        self,
        document: SigningDocument,
        signer_id: str,
        artifact: SignatureArtifact,
    ) -> Signer:
        signer = self.get_signer(document, signer_id)
        self.ensure_can_capture(document, signer)
        check_placement(document, artifact, signer_id)

        signer.status = SignerStatus.SIGNED
        signer.signature_artifact = artifact
        signer.signed_at = self.clock()
        return signer

    def reject_signer(self, document: SigningDocument, signer_id: str, reason: Optional[str] = None) -> Signer:
        signer = self.get_signer(document, signer_id)
        if signer.status == SignerStatus.SIGNED:
            raise AlreadySigned()
        if signer.status == SignerStatus.REJECTED:
            raise PartyRejected()
        signer.status = SignerStatus.REJECTED
        signer.rejected_at = self.clock()
        signer.rejection_reason = reason
        return signer

    # -------- Recipients -----------------------------------------------------
    def validate_recipients(self, inputs: Iterable[RecipientInput]) -> List[Recipient]:
        items = list(inputs or [])
        if not items:
            raise MissingRecipients("Please add at least one recipient before sending for signing")
        recipients = []
        for item in items:
            name = (item.name or "").strip()
            if not name or not (item.email or "").strip():
                raise MissingRecipients("Please fill in all recipient details")
            recipients.append(Recipient(name=name, email=normalize_email(item.email)))
        return recipients

    def get_recipient(self, document: SigningDocument, recipient_id: str) -> Recipient:
        recipient = document.find_recipient(recipient_id)
        if recipient is None:
            raise PartyNotFound(f"Recipient {recipient_id} not found")
        return recipient

    def record_recipient_signature(
        self,
        document: SigningDocument,
        recipient_id: str,
        artifact: SignatureArtifact,
    ) -> Recipient:
        """Token redemption already happened; submission verifies and signs in one step."""
        recipient = self.get_recipient(document, recipient_id)
        if recipient.has_signed:
            raise AlreadySigned()
        if not recipient.token_hash:
            raise NotVerified("Recipient has no signing link")
        self._ensure_capacity(document)
        check_placement(document, artifact, recipient_id)

        now = self.clock()
        recipient.verification_status = RecipientVerificationStatus.VERIFIED
        recipient.signature_artifact = artifact
        recipient.signed_at = now
        return recipient
