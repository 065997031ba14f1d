"""Notary Service

Appointment scheduling and witness verification of uploaded documents.

UploadedDocument status:
    uploading -> completed            (transfer finished; failed on storage error)
    completed -> pending_verification (operator ticked "I have reviewed this document")
    pending_verification -> verified  (witness name + witness signature submitted)

Both the acknowledgement and the witness signature are required before verified.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple
import logging

from pymongo.errors import PyMongoError

from models import ActorRole, AuditAction
from utils.audit import create_audit_log
from signing import config
from signing.errors import (
    AppointmentNotFound,
    DocumentNotFound,
    EmptyCapture,
    FileTooLarge,
    InvalidFileType,
    InvalidTransition,
    NotVerified,
    ValidationError,
)
from signing.models.documents import SignatureArtifact
from signing.models.notary import (
    Appointment,
    AppointmentCreate,
    NotarizedRecord,
    NotarizedStatus,
    UploadedDocument,
    UploadedDocumentStatus,
    VerificationStep,
    VerificationType,
    Witness,
    WitnessType,
)
from signing.services.document_store import DocumentStore, InMemoryDocumentStore, MongoDocumentStore
from signing.services.file_storage import FileStorage, GridFSFileStorage, InMemoryFileStorage, StorageError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotaryService:
    """Appointments, uploaded-document verification and the notarized register."""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        file_storage: Optional[FileStorage] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store or MongoDocumentStore()
        self.file_storage = file_storage or GridFSFileStorage()
        self.clock = clock

    async def _audit(self, action: AuditAction, resource_type: str, resource_id: str, **kwargs) -> None:
        await create_audit_log(
            action=action,
            actor_role=ActorRole.ROLE_OWNER,
            resource_type=resource_type,
            resource_id=resource_id,
            **kwargs,
        )

    # ------------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------------

    async def schedule_appointment(self, request: AppointmentCreate) -> Appointment:
        appointments = await self.store.load_appointments()
        appointment = Appointment(
            type=request.type.strip(),
            date=request.date.strip(),
            time=request.time.strip(),
            location=request.location.strip(),
            documents=[d.strip() for d in request.documents if d and d.strip()],
        )
        appointments.append(appointment)
        await self.store.save_appointments(appointments)
        logger.info(f"Scheduled appointment {appointment.appointment_id} on {appointment.date} {appointment.time}")
        await self._audit(
            AuditAction.APPOINTMENT_SCHEDULED,
            "appointment",
            appointment.appointment_id,
            metadata={"type": appointment.type, "documents": appointment.documents},
        )
        return appointment

    async def list_appointments(self) -> List[Appointment]:
        return await self.store.load_appointments()

    async def get_appointment(self, appointment_id: str) -> Appointment:
        for appointment in await self.store.load_appointments():
            if appointment.appointment_id == appointment_id:
                return appointment
        raise AppointmentNotFound()

    # ------------------------------------------------------------------------
    # Uploaded documents
    # ------------------------------------------------------------------------

    @staticmethod
    def validate_upload(name: str, content_type: str, size: int) -> Tuple[str, str]:
        """Returns the normalized (name, mime kind) or raises a ValidationError."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("File name is required")
        kind = (content_type or "").strip().lower()
        if kind not in config.NOTARY_UPLOAD_TYPES:
            raise InvalidFileType(f"{name}: please upload a PDF, DOC, DOCX or TXT file")
        if size > config.DOCUMENT_UPLOAD_MAX_BYTES:
            raise FileTooLarge(f"{name}: file size should be less than {config.DOCUMENT_UPLOAD_MAX_BYTES // (1024 * 1024)}MB")
        return name, kind

    async def intake_document(
        self,
        name: str,
        content: bytes,
        content_type: str,
        size: Optional[int] = None,
    ) -> UploadedDocument:
        """Store an uploaded file. A storage failure is recorded on the document, not raised."""
        size = size if size is not None else len(content)
        name, kind = self.validate_upload(name, content_type, size)

        document = UploadedDocument(name=name, size=size, mime_kind=kind)
        await self.store.save_uploaded_document(document)

        try:
            stored = await self.file_storage.put(content, name, kind, metadata={"notary_document_id": document.document_id})
        except (StorageError, PyMongoError, OSError) as e:
            logger.error(f"Notary upload failed for {document.document_id}: {e}")
            document.status = UploadedDocumentStatus.FAILED
            document.error_message = str(e)[:500]
            await self.store.save_uploaded_document(document)
            await self._audit(
                AuditAction.NOTARY_DOCUMENT_FAILED,
                "notary_upload",
                document.document_id,
                metadata={"error": document.error_message},
            )
            return document

        document.content_ref = stored.file_id
        document.status = UploadedDocumentStatus.COMPLETED
        await self.store.save_uploaded_document(document)
        logger.info(f"Notary document {document.document_id} uploaded ({kind}, {size} bytes)")
        await self._audit(
            AuditAction.NOTARY_DOCUMENT_UPLOADED,
            "notary_upload",
            document.document_id,
            metadata={"name": name, "mime_kind": kind, "size": size},
        )
        return document

    async def list_uploaded_documents(self) -> List[UploadedDocument]:
        return await self.store.list_uploaded_documents()

    async def get_uploaded_document(self, document_id: str) -> UploadedDocument:
        document = await self.store.load_uploaded_document(document_id)
        if document is None:
            raise DocumentNotFound()
        return document

    async def remove_document(self, document_id: str) -> None:
        document = await self.get_uploaded_document(document_id)
        if document.content_ref:
            await self.file_storage.delete(document.content_ref)
        await self.store.delete_uploaded_document(document_id)
        logger.info(f"Notary document {document_id} removed")
        await self._audit(AuditAction.NOTARY_DOCUMENT_REMOVED, "notary_upload", document_id)

    # ------------------------------------------------------------------------
    # Verification steps
    # ------------------------------------------------------------------------

    async def acknowledge_review(
        self,
        document_id: str,
        acknowledged: bool,
        verification_type: VerificationType = VerificationType.DOCUMENT,
    ) -> UploadedDocument:
        """view -> signature. Requires the operator's review confirmation."""
        document = await self.get_uploaded_document(document_id)
        if document.status not in (UploadedDocumentStatus.COMPLETED, UploadedDocumentStatus.PENDING_VERIFICATION):
            raise InvalidTransition(f"Document in status {document.status.value} cannot be verified")
        if not acknowledged:
            raise ValidationError("Please confirm that you have reviewed the document")

        document.review_acknowledged = True
        document.verification_type = verification_type
        document.status = UploadedDocumentStatus.PENDING_VERIFICATION
        document.verification_step = VerificationStep.SIGNATURE
        await self.store.save_uploaded_document(document)
        await self._audit(
            AuditAction.NOTARY_REVIEW_ACKNOWLEDGED,
            "notary_upload",
            document_id,
            metadata={"verification_type": verification_type.value},
        )
        return document

    async def return_to_review(self, document_id: str) -> UploadedDocument:
        """signature -> view; the acknowledgement is kept."""
        document = await self.get_uploaded_document(document_id)
        if document.verification_step != VerificationStep.SIGNATURE:
            raise InvalidTransition("Document is not at the signature step")
        document.verification_step = VerificationStep.VIEW
        await self.store.save_uploaded_document(document)
        return document

    async def submit_witness(
        self,
        document_id: str,
        witness_name: str,
        artifact: Optional[SignatureArtifact],
        witness_type: WitnessType = WitnessType.WITNESS,
    ) -> UploadedDocument:
        """pending_verification -> verified, and the document enters the notarized register."""
        document = await self.get_uploaded_document(document_id)
        if document.status != UploadedDocumentStatus.PENDING_VERIFICATION:
            raise InvalidTransition(f"Document in status {document.status.value} cannot be verified")
        if not document.review_acknowledged:
            raise NotVerified("Please confirm that you have reviewed the document")
        witness_name = (witness_name or "").strip()
        if not witness_name:
            raise ValidationError("Witness name is required")
        if artifact is None or not artifact.payload:
            raise EmptyCapture("Witness signature is required")

        now = self.clock()
        document.witness = Witness(
            name=witness_name,
            witness_type=witness_type,
            signature_artifact=artifact,
            date=now,
        )
        document.status = UploadedDocumentStatus.VERIFIED
        document.verification_step = VerificationStep.DONE
        document.verified_at = now
        await self.store.save_uploaded_document(document)

        await self.store.add_notarized(NotarizedRecord(
            name=document.name,
            type=document.verification_type.value.title(),
            notarization_date=now,
            notary_name=witness_name,
            status=NotarizedStatus.ACTIVE,
            source_document_id=document.document_id,
        ))
        logger.info(f"Notary document {document_id} verified by {witness_type.value}")
        await self._audit(
            AuditAction.NOTARY_DOCUMENT_VERIFIED,
            "notary_upload",
            document_id,
            metadata={"witness_type": witness_type.value, "signature_mode": artifact.mode.value},
        )
        return document

    # ------------------------------------------------------------------------
    # Notarized register
    # ------------------------------------------------------------------------

    async def list_notarized(
        self,
        query: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[NotarizedRecord]:
        """Search name / type / notary name; status 'all' or None disables the filter."""
        needle = (query or "").strip().lower()
        records = await self.store.list_notarized()
        results = []
        for record in records:
            if needle and not any(needle in value.lower() for value in (record.name, record.type, record.notary_name)):
                continue
            if status and status != "all" and record.status.value != status:
                continue
            results.append(record)
        return results


def build_notary_service(store_kind: Optional[str] = None) -> NotaryService:
    kind = store_kind or config.SIGNING_STORE
    if kind == "memory":
        return NotaryService(store=InMemoryDocumentStore(), file_storage=InMemoryFileStorage())
    return NotaryService()


_notary_service: Optional[NotaryService] = None


def get_notary_service() -> NotaryService:
    global _notary_service
    if _notary_service is None:
        _notary_service = build_notary_service()
    return _notary_service
