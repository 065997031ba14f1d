"""Signing Workflow Service

Document lifecycle controller. Owns the document status and sequences the two
party pipelines:

1. Signers: add_signer -> request_otp -> submit_otp -> open_capture -> sign
2. Recipients: send_for_signing -> (invitation link) -> redeem_token -> sign_as_recipient

Every mutation is load -> apply -> save with a version check. A version conflict
re-reads and re-applies (up to SIGNING_MAX_WRITE_RETRIES); a domain error aborts
before anything is written.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type
import logging

from models import ActorRole, AuditAction
from utils.audit import create_audit_log
from signing import config
from signing.errors import (
    AlreadySigned,
    ConcurrentModification,
    DocumentNotFound,
    FileTooLarge,
    InvalidFileType,
    InvalidTransition,
    OtpMismatch,
    PartyRejected,
    TokenNotFound,
    ValidationError,
)
from signing.models.documents import (
    STATUS_RANK,
    CaptureMode,
    IdentityMethod,
    Recipient,
    RecipientInput,
    SignatureArtifact,
    SignatureField,
    SignatureStyle,
    Signer,
    SignerStatus,
    SigningDocument,
    SigningDocumentStatus,
)
from signing.services.capture_service import CaptureSession, begin_capture
from signing.services.document_store import DocumentStore, InMemoryDocumentStore, MongoDocumentStore
from signing.services.file_storage import FileStorage, GridFSFileStorage, InMemoryFileStorage, StoredFile, StoredFileNotFound
from signing.services.messaging import LoggingNotifier, Notifier, default_notifier, dispatch, otp_message, signing_invitation
from signing.services.otp_verifier import LocalIdVerifier, OtpPolicy
from signing.services.party_registry import PartyRegistry
from signing.services.token_service import SigningTokenService, TokenPolicy, build_signing_link

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_status(document: SigningDocument, cap: int) -> SigningDocumentStatus:
    """Status implied by the signed parties, never lower than the current one.

    completed: signed-party count reached the cap, or recipients were invited and
    every party that has not rejected has signed.
    """
    count = document.signed_party_count
    if count >= cap:
        target = SigningDocumentStatus.COMPLETED
    elif (
        count > 0
        and document.recipients
        and all(r.has_signed for r in document.recipients)
        and all(s.status != SignerStatus.PENDING for s in document.signers)
    ):
        target = SigningDocumentStatus.COMPLETED
    elif count > 0:
        target = SigningDocumentStatus.IN_PROGRESS
    else:
        target = SigningDocumentStatus.PENDING

    if STATUS_RANK[target] < STATUS_RANK[document.status]:
        return document.status
    return target


def _status_state(document: SigningDocument) -> Dict[str, Any]:
    return {"status": document.status.value, "signed_count": document.signed_party_count}


class SigningWorkflowService:
    """Document lifecycle controller."""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        file_storage: Optional[FileStorage] = None,
        notifier: Optional[Notifier] = None,
        verifier: Optional[LocalIdVerifier] = None,
        token_service: Optional[SigningTokenService] = None,
        registry: Optional[PartyRegistry] = None,
        clock: Callable[[], datetime] = _utcnow,
        max_retries: int = config.SIGNING_MAX_WRITE_RETRIES,
    ):
        self.store = store or MongoDocumentStore()
        self.file_storage = file_storage or GridFSFileStorage()
        self.notifier = notifier or default_notifier()
        self.verifier = verifier or LocalIdVerifier(policy=OtpPolicy.from_config(), clock=clock)
        self.token_service = token_service or SigningTokenService(TokenPolicy.from_config(), clock=clock)
        self.registry = registry or PartyRegistry(clock=clock)
        self.clock = clock
        self.max_retries = max_retries

    # ------------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------------

    async def _mutate(
        self,
        document_id: str,
        apply: Callable[[SigningDocument], Any],
        commit_on: Tuple[Type[Exception], ...] = (),
        not_found: Type[Exception] = DocumentNotFound,
    ) -> Tuple[SigningDocument, Any]:
        """Read-modify-write with an optimistic version check.

        Errors listed in commit_on are raised after the mutated document is saved;
        any other error from apply aborts with nothing written.
        """
        for attempt in range(self.max_retries + 1):
            document = await self.store.load_document(document_id)
            if document is None:
                raise not_found()
            expected_version = document.version

            deferred = None
            result = None
            try:
                result = apply(document)
            except commit_on as e:
                deferred = e

            try:
                saved = await self.store.save_document(document, expected_version)
            except ConcurrentModification:
                logger.info(f"Version conflict on {document_id} (attempt {attempt + 1}), retrying")
                continue

            if deferred is not None:
                raise deferred
            return saved, result

        logger.warning(f"Giving up on {document_id} after {self.max_retries + 1} conflicting writes")
        raise ConcurrentModification()

    def on_party_signed(self, document: SigningDocument) -> Tuple[SigningDocumentStatus, SigningDocumentStatus]:
        """Re-evaluate the document status after a signature. Only status path besides send_for_signing."""
        before = document.status
        after = compute_status(document, self.registry.cap)
        if after != before:
            document.status = after
            if after == SigningDocumentStatus.COMPLETED:
                document.completed_at = self.clock()
        return before, after

    @staticmethod
    def _ensure_open(signer: Signer) -> None:
        if signer.status == SignerStatus.SIGNED:
            raise AlreadySigned()
        if signer.status == SignerStatus.REJECTED:
            raise PartyRejected()

    @staticmethod
    def _ensure_not_completed(document: SigningDocument) -> None:
        if document.status == SigningDocumentStatus.COMPLETED:
            raise InvalidTransition("Document signing is already completed")

    async def _audit(
        self,
        action: AuditAction,
        document_id: str,
        actor_role: ActorRole = ActorRole.ROLE_SYSTEM,
        actor_id: Optional[str] = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await create_audit_log(
            action=action,
            actor_role=actor_role,
            actor_id=actor_id,
            resource_type="signing_document",
            resource_id=document_id,
            before_state=before,
            after_state=after,
            metadata=metadata,
        )

    async def _audit_status(self, document: SigningDocument, before: SigningDocumentStatus) -> None:
        if document.status == before:
            return
        logger.info(f"Document {document.document_id} status {before.value} -> {document.status.value}")
        await self._audit(
            AuditAction.SIGNING_STATUS_CHANGED,
            document.document_id,
            before={"status": before.value},
            after={"status": document.status.value},
        )

    # ------------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------------

    async def create_document(
        self,
        name: str,
        content: bytes,
        content_type: str,
        size: Optional[int] = None,
        deadline: Optional[date] = None,
        owner_id: Optional[str] = None,
        signature_fields: Optional[Iterable[SignatureField]] = None,
    ) -> SigningDocument:
        """Validate and store an uploaded document; status starts at pending."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Document name is required")
        kind = (content_type or "").strip().lower()
        if kind not in config.DOCUMENT_UPLOAD_TYPES:
            raise InvalidFileType("Please upload a valid PDF or Word document")
        size = size if size is not None else len(content)
        if size > config.DOCUMENT_UPLOAD_MAX_BYTES or len(content) > config.DOCUMENT_UPLOAD_MAX_BYTES:
            raise FileTooLarge(f"File size should be less than {config.DOCUMENT_UPLOAD_MAX_BYTES // (1024 * 1024)}MB")

        stored = await self.file_storage.put(content, name, kind, metadata={"owner_id": owner_id})
        document = SigningDocument(
            name=name,
            content_ref=stored.file_id,
            mime_kind=kind,
            size_bytes=stored.size_bytes,
            owner_id=owner_id,
            deadline=deadline or (self.clock().date() + timedelta(days=config.DOCUMENT_DEFAULT_DEADLINE_DAYS)),
            signature_fields=list(signature_fields or []),
        )
        await self.store.insert_document(document)
        logger.info(f"Created signing document {document.document_id} ({kind}, {stored.size_bytes} bytes)")
        await self._audit(
            AuditAction.SIGNING_DOCUMENT_CREATED,
            document.document_id,
            actor_role=ActorRole.ROLE_OWNER,
            actor_id=owner_id,
            metadata={"name": name, "mime_kind": kind, "size_bytes": stored.size_bytes},
        )
        return document

    async def get_document(self, document_id: str) -> SigningDocument:
        document = await self.store.load_document(document_id)
        if document is None:
            raise DocumentNotFound()
        return document

    async def list_documents(self, owner_id: Optional[str] = None) -> List[SigningDocument]:
        return await self.store.list_documents(owner_id)

    async def delete_document(self, document_id: str) -> None:
        """Remove the record and its bytes. Outstanding signing links stop resolving."""
        document = await self.get_document(document_id)
        if document.content_ref:
            await self.file_storage.delete(document.content_ref)
        await self.store.delete_document(document_id)
        logger.info(f"Deleted signing document {document_id}")
        await self._audit(
            AuditAction.SIGNING_DOCUMENT_DELETED,
            document_id,
            actor_role=ActorRole.ROLE_OWNER,
            actor_id=document.owner_id,
            before=_status_state(document),
        )

    async def download_document(self, document_id: str) -> Tuple[bytes, StoredFile, SigningDocument]:
        document = await self.get_document(document_id)
        if not document.content_ref:
            raise DocumentNotFound("Document file not found")
        try:
            content, stored = await self.file_storage.get(document.content_ref)
        except StoredFileNotFound:
            raise DocumentNotFound("Document file not found")
        await self._audit(AuditAction.SIGNING_DOCUMENT_DOWNLOADED, document_id)
        return content, stored, document

    # ------------------------------------------------------------------------
    # Signers
    # ------------------------------------------------------------------------

    async def add_signer(
        self,
        document_id: str,
        name: str,
        email: str,
        identity_method: IdentityMethod = IdentityMethod.LOCAL_ID_OTP,
    ) -> Signer:
        def apply(document: SigningDocument) -> str:
            self._ensure_not_completed(document)
            return self.registry.add_signer(document, name, email, identity_method).signer_id

        saved, signer_id = await self._mutate(document_id, apply)
        signer = saved.find_signer(signer_id)
        logger.info(f"Signer {signer_id} added to {document_id}")
        await self._audit(
            AuditAction.SIGNER_ADDED,
            document_id,
            actor_role=ActorRole.ROLE_OWNER,
            actor_id=saved.owner_id,
            metadata={"signer_id": signer_id, "identity_method": identity_method.value},
        )
        return signer

    async def request_otp(self, document_id: str, signer_id: str, id_number: str) -> Signer:
        """Validate the signer's ID number and send them an OTP."""
        def apply(document: SigningDocument) -> str:
            signer = self.registry.get_signer(document, signer_id)
            self._ensure_open(signer)
            return self.verifier.request_otp(signer.verification, id_number)

        return await self._issue_otp(document_id, signer_id, apply)

    async def resend_otp(self, document_id: str, signer_id: str) -> Signer:
        def apply(document: SigningDocument) -> str:
            signer = self.registry.get_signer(document, signer_id)
            self._ensure_open(signer)
            return self.verifier.resend_otp(signer.verification)

        return await self._issue_otp(document_id, signer_id, apply, resend=True)

    async def _issue_otp(self, document_id: str, signer_id: str, apply, resend: bool = False) -> Signer:
        saved, code = await self._mutate(document_id, apply)
        signer = saved.find_signer(signer_id)
        await dispatch(
            self.notifier,
            signer.email,
            otp_message(code, signer.verification.subject_id_last4 or "", document_id),
        )
        await self._audit(
            AuditAction.SIGNER_OTP_REQUESTED,
            document_id,
            actor_role=ActorRole.ROLE_SIGNER,
            actor_id=signer_id,
            metadata={"resend": resend, "send_count": signer.verification.send_count},
        )
        return signer

    async def submit_otp(self, document_id: str, signer_id: str, code: str) -> Signer:
        """Check the OTP; on success the signer may open a capture session."""
        def apply(document: SigningDocument) -> None:
            signer = self.registry.get_signer(document, signer_id)
            self._ensure_open(signer)
            self.verifier.submit_otp(signer.verification, code)
            signer.identity_verified = True

        # Failed attempts only need persisting when they count toward a limit
        commit_on = (OtpMismatch,) if self.verifier.policy.max_attempts else ()
        try:
            saved, _ = await self._mutate(document_id, apply, commit_on=commit_on)
        except OtpMismatch:
            await self._audit(
                AuditAction.SIGNER_OTP_FAILED,
                document_id,
                actor_role=ActorRole.ROLE_SIGNER,
                actor_id=signer_id,
            )
            raise

        logger.info(f"Signer {signer_id} verified on {document_id}")
        await self._audit(
            AuditAction.SIGNER_VERIFIED,
            document_id,
            actor_role=ActorRole.ROLE_SIGNER,
            actor_id=signer_id,
        )
        return saved.find_signer(signer_id)

    async def open_capture(
        self,
        document_id: str,
        signer_id: str,
        mode: CaptureMode,
        style: Optional[SignatureStyle] = None,
    ) -> CaptureSession:
        """Capture is only offered to a verified signer who has not signed yet."""
        document = await self.get_document(document_id)
        signer = self.registry.get_signer(document, signer_id)
        self.registry.ensure_can_capture(document, signer)
        return begin_capture(mode, style=style)

    async def sign(self, document_id: str, signer_id: str, artifact: SignatureArtifact) -> SigningDocument:
        """Attach the signer's artifact and re-evaluate the document status."""
        def apply(document: SigningDocument):
            self.registry.record_signature(document, signer_id, artifact)
            return self.on_party_signed(document)

        saved, (before, _) = await self._mutate(document_id, apply)
        logger.info(f"Signer {signer_id} signed {document_id} ({saved.signed_party_count}/{self.registry.cap})")
        await self._audit(
            AuditAction.SIGNER_SIGNED,
            document_id,
            actor_role=ActorRole.ROLE_SIGNER,
            actor_id=signer_id,
            metadata={"mode": artifact.mode.value, "signed_count": saved.signed_party_count},
        )
        await self._audit_status(saved, before)
        return saved

    async def reject_signer(self, document_id: str, signer_id: str, reason: Optional[str] = None) -> SigningDocument:
        """Terminal for the signer; the document status is not changed."""
        def apply(document: SigningDocument) -> None:
            self.registry.reject_signer(document, signer_id, reason)

        saved, _ = await self._mutate(document_id, apply)
        logger.info(f"Signer {signer_id} rejected {document_id}")
        await self._audit(
            AuditAction.SIGNER_REJECTED,
            document_id,
            actor_role=ActorRole.ROLE_SIGNER,
            actor_id=signer_id,
            metadata={"reason": reason} if reason else None,
        )
        return saved

    # ------------------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------------------

    async def send_for_signing(
        self,
        document_id: str,
        recipients: Iterable[RecipientInput],
        base_url: Optional[str] = None,
    ) -> SigningDocument:
        """Invite remote recipients. Each gets a signing link carrying their token."""
        inputs = list(recipients or [])

        def apply(document: SigningDocument):
            self._ensure_not_completed(document)
            before = document.status
            new_recipients = self.registry.validate_recipients(inputs)
            tokens = {}
            for recipient in new_recipients:
                tokens[recipient.recipient_id] = self.token_service.issue_token(document.document_id, recipient)
                document.recipients.append(recipient)
            if document.status == SigningDocumentStatus.PENDING:
                document.status = SigningDocumentStatus.IN_PROGRESS
            document.sent_at = self.clock()
            return tokens, before

        saved, (tokens, before) = await self._mutate(document_id, apply)
        for recipient_id, token in tokens.items():
            recipient = saved.find_recipient(recipient_id)
            link = build_signing_link(token, document_id, base_url=base_url)
            await dispatch(
                self.notifier,
                recipient.email,
                signing_invitation(recipient.name, link, document_id, saved.name, recipient.token_expires_at),
            )

        logger.info(f"Document {document_id} sent for signing to {len(tokens)} recipient(s)")
        await self._audit(
            AuditAction.SIGNING_DOCUMENT_SENT,
            document_id,
            actor_role=ActorRole.ROLE_OWNER,
            actor_id=saved.owner_id,
            metadata={"recipient_ids": list(tokens.keys())},
        )
        await self._audit_status(saved, before)
        return saved

    async def redeem_token(self, document_id: str, token: str) -> Tuple[SigningDocument, Recipient]:
        """Resolve a signing link to its recipient. Verification happens at signing."""
        document = await self.store.load_document(document_id)
        recipient = self.token_service.redeem(document, token)
        await self._audit(
            AuditAction.RECIPIENT_TOKEN_REDEEMED,
            document_id,
            actor_role=ActorRole.ROLE_RECIPIENT,
            actor_id=recipient.recipient_id,
        )
        return document, recipient

    async def sign_as_recipient(self, document_id: str, token: str, artifact: SignatureArtifact) -> SigningDocument:
        """Verify the token holder and record their signature in one step."""
        def apply(document: SigningDocument):
            recipient = self.token_service.redeem(document, token)
            self.registry.record_recipient_signature(document, recipient.recipient_id, artifact)
            before, _ = self.on_party_signed(document)
            return recipient.recipient_id, before

        saved, (recipient_id, before) = await self._mutate(document_id, apply, not_found=TokenNotFound)
        logger.info(f"Recipient {recipient_id} signed {document_id} ({saved.signed_party_count}/{self.registry.cap})")
        await self._audit(
            AuditAction.RECIPIENT_SIGNED,
            document_id,
            actor_role=ActorRole.ROLE_RECIPIENT,
            actor_id=recipient_id,
            metadata={"mode": artifact.mode.value, "signed_count": saved.signed_party_count},
        )
        await self._audit_status(saved, before)
        return saved


def build_signing_workflow(store_kind: Optional[str] = None) -> SigningWorkflowService:
    kind = store_kind or config.SIGNING_STORE
    if kind == "memory":
        return SigningWorkflowService(
            store=InMemoryDocumentStore(),
            file_storage=InMemoryFileStorage(),
            notifier=LoggingNotifier(),
        )
    return SigningWorkflowService()


_signing_workflow: Optional[SigningWorkflowService] = None


def get_signing_workflow() -> SigningWorkflowService:
    """FastAPI dependency; one shared service per process."""
    global _signing_workflow
    if _signing_workflow is None:
        _signing_workflow = build_signing_workflow()
    return _signing_workflow
