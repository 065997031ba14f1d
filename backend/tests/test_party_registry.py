"""
Unit tests for the signer/recipient registry.
- Signed-party cap (3) across signers and recipients.
- Exactly-once signing; verification gate; no partial changes on failure.
"""
from datetime import date

import pytest

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
    CaptureMode,
    IdentityMethod,
    RecipientInput,
    SignatureArtifact,
    SignatureField,
    SignaturePlacement,
    SignerStatus,
    SignerStep,
    SigningDocument,
)
from signing.services.party_registry import PartyRegistry, normalize_email
from signing.services.token_service import SigningTokenService


def _document():
    return SigningDocument(name="NDA.pdf", mime_kind="application/pdf", deadline=date(2026, 3, 1))


def _artifact(payload="sig", placement=None):
    return SignatureArtifact(mode=CaptureMode.TYPE, payload=payload, placement=placement)


def _verified_signer(registry, document, n):
    return registry.add_signer(document, f"Signer {n}", f"s{n}@example.com", IdentityMethod.NONE)


def test_add_signer_normalizes_and_starts_at_identity_step():
    registry = PartyRegistry()
    document = _document()
    signer = registry.add_signer(document, "  Ann  ", "ann@example.com")

    assert signer.name == "Ann"
    assert signer.status == SignerStatus.PENDING
    assert signer.identity_verified is False
    assert signer.step == SignerStep.IDENTITY
    assert document.signers == [signer]


def test_add_signer_validates_name_and_email():
    registry = PartyRegistry()
    document = _document()
    with pytest.raises(ValidationError):
        registry.add_signer(document, "", "ann@example.com")
    with pytest.raises(InvalidEmail):
        registry.add_signer(document, "Ann", "not-an-email")
    assert document.signers == []


def test_normalize_email_rejects_blank():
    with pytest.raises(InvalidEmail):
        normalize_email("  ")


def test_record_signature_requires_verification():
    registry = PartyRegistry()
    document = _document()
    signer = registry.add_signer(document, "Ann", "ann@example.com")

    with pytest.raises(NotVerified):
        registry.record_signature(document, signer.signer_id, _artifact())
    assert signer.status == SignerStatus.PENDING
    assert signer.signature_artifact is None


def test_signing_is_exactly_once():
    registry = PartyRegistry()
    document = _document()
    signer = _verified_signer(registry, document, 1)

    registry.record_signature(document, signer.signer_id, _artifact("first"))
    with pytest.raises(AlreadySigned):
        registry.record_signature(document, signer.signer_id, _artifact("second"))

    assert signer.signature_artifact.payload == "first"
    assert signer.step == SignerStep.DONE


def test_fourth_signature_hits_cap_and_changes_nothing():
    registry = PartyRegistry(cap=3)
    document = _document()
    signers = [_verified_signer(registry, document, n) for n in range(4)]
    for signer in signers[:3]:
        registry.record_signature(document, signer.signer_id, _artifact())

    before = document.model_dump()
    with pytest.raises(PartyCapReached):
        registry.record_signature(document, signers[3].signer_id, _artifact())
    assert document.model_dump() == before
    assert document.signed_signer_count == 3


def test_add_signer_fails_once_cap_is_signed():
    registry = PartyRegistry(cap=2)
    document = _document()
    for n in range(2):
        signer = _verified_signer(registry, document, n)
        registry.record_signature(document, signer.signer_id, _artifact())

    with pytest.raises(PartyCapReached):
        registry.add_signer(document, "Late", "late@example.com")
    assert len(document.signers) == 2


def test_recipient_signatures_count_toward_cap():
    registry = PartyRegistry(cap=2)
    tokens = SigningTokenService()
    document = _document()
    signer = _verified_signer(registry, document, 1)
    registry.record_signature(document, signer.signer_id, _artifact())

    recipients = registry.validate_recipients([RecipientInput(name="R1", email="r1@example.com"), RecipientInput(name="R2", email="r2@example.com")])
    for recipient in recipients:
        tokens.issue_token(document.document_id, recipient)
        document.recipients.append(recipient)

    registry.record_recipient_signature(document, recipients[0].recipient_id, _artifact())
    with pytest.raises(PartyCapReached):
        registry.record_recipient_signature(document, recipients[1].recipient_id, _artifact())
    assert recipients[1].signed_at is None


def test_rejected_signer_cannot_sign():
    registry = PartyRegistry()
    document = _document()
    signer = _verified_signer(registry, document, 1)
    registry.reject_signer(document, signer.signer_id, "wrong terms")

    assert signer.step == SignerStep.REJECTED
    assert signer.rejection_reason == "wrong terms"
    with pytest.raises(PartyRejected):
        registry.record_signature(document, signer.signer_id, _artifact())
    with pytest.raises(PartyRejected):
        registry.reject_signer(document, signer.signer_id)


def test_unknown_party_not_found():
    registry = PartyRegistry()
    document = _document()
    with pytest.raises(PartyNotFound):
        registry.record_signature(document, "SGN-NOPE", _artifact())
    with pytest.raises(PartyNotFound):
        registry.record_recipient_signature(document, "RCP-NOPE", _artifact())


def test_validate_recipients_requires_name_and_email():
    registry = PartyRegistry()
    with pytest.raises(MissingRecipients):
        registry.validate_recipients([])
    with pytest.raises(MissingRecipients):
        registry.validate_recipients([RecipientInput(name="Bob", email="")])
    with pytest.raises(InvalidEmail):
        registry.validate_recipients([RecipientInput(name="Bob", email="bob@")])


def test_recipient_without_link_is_not_verified():
    registry = PartyRegistry()
    document = _document()
    recipient = registry.validate_recipients([RecipientInput(name="Bob", email="bob@example.com")])[0]
    document.recipients.append(recipient)

    with pytest.raises(NotVerified):
        registry.record_recipient_signature(document, recipient.recipient_id, _artifact())


def test_required_field_needs_overlapping_placement():
    registry = PartyRegistry()
    document = _document()
    document.signature_fields.append(SignatureField(x=100, y=500, width=200, height=60))
    signer = _verified_signer(registry, document, 1)

    with pytest.raises(PlacementError):
        registry.record_signature(document, signer.signer_id, _artifact())
    with pytest.raises(PlacementError):
        registry.record_signature(document, signer.signer_id, _artifact(placement=SignaturePlacement(x=400, y=10)))
    assert signer.status == SignerStatus.PENDING

    registry.record_signature(document, signer.signer_id, _artifact(placement=SignaturePlacement(x=120, y=480)))
    assert signer.status == SignerStatus.SIGNED


def test_field_assigned_to_other_party_is_ignored():
    registry = PartyRegistry()
    document = _document()
    document.signature_fields.append(SignatureField(x=0, y=0, width=10, height=10, signer_id="SGN-OTHER"))
    signer = _verified_signer(registry, document, 1)

    registry.record_signature(document, signer.signer_id, _artifact())
    assert signer.status == SignerStatus.SIGNED
