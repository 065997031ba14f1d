"""
Messaging collaborator for the signing workflow.
OTP codes and signing invitations go through Notifier.notify(address, payload).

Delivery is fire-and-forget: the workflow never waits on delivery and a failed
delivery never fails a workflow step (see dispatch()).
"""
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from postmarker.core import PostmarkClient

from database import database
from models import AuditAction, MessageLog, MessageStatus
from signing import config
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "noreply@legaldesk.app")
POSTMARK_MESSAGE_STREAM = os.getenv("POSTMARK_MESSAGE_STREAM", "outbound").strip() or "outbound"

SIGNING_INVITE_SUBJECT = "Document Signing Request"
SIGNING_INVITE_TEXT = (
    "Hello {NAME},\n\n"
    "You have been requested to sign a document. Please open the link below to sign:\n"
    "{LINK}\n\n"
    "Document: {DOCUMENT_NAME} ({DOCUMENT_ID})\n"
    "{EXPIRY}\n"
    "If you did not expect this request, please ignore this email."
)
OTP_SUBJECT = "Your signing verification code"
OTP_TEXT = "Your verification code is {CODE}. ID ending {LAST4}."


@dataclass
class NotificationResult:
    outcome: str  # sent | blocked | failed
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    block_reason: Optional[str] = None


class Notifier(ABC):
    @abstractmethod
    async def notify(self, address: str, payload: Dict[str, Any]) -> NotificationResult:
        """payload keys: template_key, subject, body, plus template context."""
        pass


class LoggingNotifier(Notifier):
    """Development notifier: writes the message to the log only."""

    async def notify(self, address, payload) -> NotificationResult:
        logger.info(f"notify template={payload.get('template_key')} to={address} subject={payload.get('subject')!r}")
        return NotificationResult(outcome="sent", message_id=str(uuid.uuid4()))


class MessageLogNotifier(Notifier):
    """Writes every message to message_logs, then sends through Postmark.
    Without a Postmark client the message is BLOCKED_PROVIDER_NOT_CONFIGURED; nothing retries it."""

    def __init__(self, postmark_client=None):
        self._postmark_client = postmark_client
        if self._postmark_client is None:
            token = os.getenv("POSTMARK_SERVER_TOKEN")
            if token:
                self._postmark_client = PostmarkClient(server_token=token)

    async def notify(self, address, payload) -> NotificationResult:
        db = database.get_db()
        template_key = payload.get("template_key") or "UNKNOWN"
        log = MessageLog(
            recipient=address,
            template_key=template_key,
            subject=payload.get("subject") or "",
            metadata={k: v for k, v in payload.items() if k not in ("body", "code", "link")},
        )
        message_id = log.message_id
        await db.message_logs.insert_one(log.model_dump(mode="json"))
        audit_metadata = {"template_key": template_key, "message_id": message_id, "document_id": payload.get("document_id")}

        if self._postmark_client is None:
            await db.message_logs.update_one(
                {"message_id": message_id},
                {"$set": {"status": MessageStatus.BLOCKED_PROVIDER_NOT_CONFIGURED.value, "error_message": "POSTMARK_SERVER_TOKEN not set"}},
            )
            await create_audit_log(
                action=AuditAction.NOTIFICATION_PROVIDER_NOT_CONFIGURED,
                resource_type="message",
                resource_id=message_id,
                metadata={**audit_metadata, "channel": "EMAIL"},
            )
            return NotificationResult(
                outcome="blocked",
                message_id=message_id,
                block_reason=MessageStatus.BLOCKED_PROVIDER_NOT_CONFIGURED.value,
            )

        try:
            response = self._postmark_client.emails.send(
                From=DEFAULT_SENDER,
                To=address,
                Subject=payload.get("subject") or SIGNING_INVITE_SUBJECT,
                TextBody=payload.get("body") or "",
                Tag=template_key,
                MessageStream=POSTMARK_MESSAGE_STREAM,
            )
        except Exception as e:
            err_msg = str(e)[:500]
            logger.warning(f"Postmark send failed message_id={message_id}: {e}")
            await db.message_logs.update_one(
                {"message_id": message_id},
                {"$set": {"status": MessageStatus.FAILED.value, "error_message": err_msg}},
            )
            await create_audit_log(
                action=AuditAction.EMAIL_FAILED,
                resource_type="message",
                resource_id=message_id,
                metadata={**audit_metadata, "error": err_msg},
            )
            return NotificationResult(outcome="failed", message_id=message_id, error_message=err_msg)

        provider_id = response.get("MessageID") if isinstance(response, dict) else None
        await db.message_logs.update_one(
            {"message_id": message_id},
            {"$set": {"status": MessageStatus.SENT.value, "provider_message_id": provider_id, "sent_at": datetime.now(timezone.utc).isoformat()}},
        )
        await create_audit_log(
            action=AuditAction.EMAIL_SENT,
            resource_type="message",
            resource_id=message_id,
            metadata={**audit_metadata, "postmark_id": provider_id},
        )
        return NotificationResult(outcome="sent", message_id=message_id)


async def dispatch(notifier: Notifier, address: str, payload: Dict[str, Any]) -> Optional[NotificationResult]:
    """Send without letting delivery problems reach the caller."""
    try:
        result = await notifier.notify(address, payload)
    except Exception as e:
        logger.warning(f"notify failed template={payload.get('template_key')}: {e}")
        return None
    if result.outcome == "failed":
        logger.warning(f"notify failed template={payload.get('template_key')} message_id={result.message_id} error={result.error_message}")
    elif result.outcome == "blocked":
        logger.warning(f"notify blocked template={payload.get('template_key')} message_id={result.message_id} reason={result.block_reason}")
    return result


def signing_invitation(name: str, link: str, document_id: str, document_name: str,
                       expires_at: Optional[datetime] = None) -> Dict[str, Any]:
    expiry = f"Link expires: {expires_at.isoformat()}" if expires_at else "Link does not expire."
    return {
        "template_key": "SIGNING_INVITATION",
        "subject": SIGNING_INVITE_SUBJECT,
        "body": SIGNING_INVITE_TEXT.format(
            NAME=name, LINK=link, DOCUMENT_NAME=document_name, DOCUMENT_ID=document_id, EXPIRY=expiry,
        ),
        "document_id": document_id,
        "link": link,
    }


def otp_message(code: str, last4: str, document_id: str) -> Dict[str, Any]:
    return {
        "template_key": "SIGNING_OTP",
        "subject": OTP_SUBJECT,
        "body": OTP_TEXT.format(CODE=code, LAST4=last4),
        "code": code,
        "document_id": document_id,
    }


def default_notifier() -> Notifier:
    if config.SIGNING_STORE == "memory":
        return LoggingNotifier()
    return MessageLogNotifier()
