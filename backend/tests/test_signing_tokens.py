"""
Unit tests for signing-link tokens.
- Only sha256(document_id:recipient_id:token) is stored on the recipient.
- A token only redeems against the document (and recipient) it was minted for.
"""
from datetime import date, datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from signing.errors import TokenAlreadyConsumed, TokenExpired, TokenNotFound
from signing.models.documents import Recipient, SigningDocument
from signing.services.token_service import SigningTokenService, TokenPolicy, build_signing_link, token_hash


def _document(document_id="DOC-A"):
    return SigningDocument(document_id=document_id, name="Lease.pdf", mime_kind="application/pdf", deadline=date(2026, 2, 1))


def _with_recipient(document, service, name="Rita", email="rita@example.com"):
    recipient = Recipient(name=name, email=email)
    token = service.issue_token(document.document_id, recipient)
    document.recipients.append(recipient)
    return recipient, token


def test_issue_stores_scoped_hash_not_token():
    service = SigningTokenService()
    document = _document()
    recipient, token = _with_recipient(document, service)

    assert len(token) >= 40
    assert recipient.token_hash == token_hash("DOC-A", recipient.recipient_id, token)
    assert token not in document.model_dump_json()
    assert recipient.token_expires_at is None


def test_redeem_returns_matching_recipient():
    service = SigningTokenService()
    document = _document()
    first, first_token = _with_recipient(document, service)
    second, second_token = _with_recipient(document, service, name="Sam", email="sam@example.com")

    assert service.redeem(document, first_token).recipient_id == first.recipient_id
    assert service.redeem(document, second_token).recipient_id == second.recipient_id


def test_token_does_not_redeem_against_other_document():
    service = SigningTokenService()
    doc_a = _document("DOC-A")
    _, token = _with_recipient(doc_a, service)

    doc_b = _document("DOC-B")
    # Same recipient id and a copied hash on another document still does not match
    clone = doc_a.recipients[0].model_copy()
    doc_b.recipients.append(clone)

    with pytest.raises(TokenNotFound):
        service.redeem(doc_b, token)


def test_unknown_or_blank_token_not_found():
    service = SigningTokenService()
    document = _document()
    _with_recipient(document, service)

    with pytest.raises(TokenNotFound):
        service.redeem(document, "not-a-token")
    with pytest.raises(TokenNotFound):
        service.redeem(document, "")
    with pytest.raises(TokenNotFound):
        service.redeem(None, "anything")


def test_signed_recipient_token_is_consumed():
    service = SigningTokenService()
    document = _document()
    recipient, token = _with_recipient(document, service)
    recipient.signed_at = datetime.now(timezone.utc)

    with pytest.raises(TokenAlreadyConsumed):
        service.redeem(document, token)


def test_ttl_policy_expires_token():
    now = [datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)]
    service = SigningTokenService(TokenPolicy(ttl_hours=48), clock=lambda: now[0])
    document = _document()
    recipient, token = _with_recipient(document, service)
    assert recipient.token_expires_at == now[0] + timedelta(hours=48)

    now[0] += timedelta(hours=47)
    service.redeem(document, token)
    now[0] += timedelta(hours=2)
    with pytest.raises(TokenExpired):
        service.redeem(document, token)


def test_signing_link_carries_token_and_document():
    link = build_signing_link("tok_123", "DOC-A", base_url="https://app.example.com/")
    parsed = urlparse(link)
    assert parsed.netloc == "app.example.com"
    assert parsed.path == "/dashboard/digital-signature"
    assert parse_qs(parsed.query) == {"token": ["tok_123"], "docId": ["DOC-A"]}
