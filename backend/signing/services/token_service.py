"""
Signing-link tokens for remote recipients.

A token is minted when the document is sent for signing and is the recipient's only
credential. Only sha256(document_id:recipient_id:token) is stored, so a token can never
be redeemed against another document or another recipient.
"""
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import urlencode

from signing import config
from signing.errors import TokenAlreadyConsumed, TokenExpired, TokenNotFound
from signing.models.documents import Recipient, SigningDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPolicy:
    ttl_hours: Optional[int] = None

    @classmethod
    def from_config(cls) -> "TokenPolicy":
        return cls(ttl_hours=config.SIGNING_TOKEN_TTL_HOURS or None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def token_hash(document_id: str, recipient_id: str, token: str) -> str:
    return hashlib.sha256(f"{document_id}:{recipient_id}:{token}".encode()).hexdigest()


def build_signing_link(token: str, document_id: str, base_url: Optional[str] = None) -> str:
    base = (base_url or config.PUBLIC_APP_URL).rstrip("/")
    return f"{base}{config.SIGNING_LINK_PATH}?{urlencode({'token': token, 'docId': document_id})}"


class SigningTokenService:
    def __init__(self, policy: Optional[TokenPolicy] = None, clock: Callable[[], datetime] = _utcnow):
        self.policy = policy or TokenPolicy()
        self.clock = clock

    def issue_token(self, document_id: str, recipient: Recipient) -> str:
        """Mint a token and record its hash on the recipient. Returns the plain token."""
        token = secrets.token_urlsafe(32)
        now = self.clock()
        recipient.token_hash = token_hash(document_id, recipient.recipient_id, token)
        recipient.token_issued_at = now
        recipient.token_expires_at = (
            now + timedelta(hours=self.policy.ttl_hours) if self.policy.ttl_hours else None
        )
        logger.debug(f"Issued signing token for {document_id}/{recipient.recipient_id}")
        return token

    def find_recipient(self, document: SigningDocument, token: str) -> Recipient:
        token = (token or "").strip()
        if not token:
            raise TokenNotFound()
        for recipient in document.recipients:
            if not recipient.token_hash:
                continue
            expected = token_hash(document.document_id, recipient.recipient_id, token)
            if hmac.compare_digest(expected, recipient.token_hash):
                return recipient
        raise TokenNotFound()

    def redeem(self, document: Optional[SigningDocument], token: str) -> Recipient:
        """Resolve the recipient a token belongs to. Does not mark verification."""
        if document is None:
            raise TokenNotFound()
        recipient = self.find_recipient(document, token)
        if recipient.has_signed:
            raise TokenAlreadyConsumed()
        expires_at = recipient.token_expires_at
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if self.clock() > expires_at:
                raise TokenExpired()
        return recipient

