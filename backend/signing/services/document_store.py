"""
Document Store - persistence for signing documents, appointments and notary uploads.

The workflow services own the records; the store only reads and writes them.
Document writes use an optimistic version check (compare-and-swap on `version`) so
concurrent signers cannot overwrite each other's signatures.

Phase 1: MongoDB (motor)
Tests / local runs: in-memory implementation with deep copies (no shared aliasing)
"""
import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from database import database
from signing.errors import ConcurrentModification
from signing.models.documents import SigningDocument
from signing.models.notary import Appointment, NotarizedRecord, UploadedDocument

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Abstract storage collaborator for the signing workflow."""

    # -------- Signing documents ---------------------------------------------
    @abstractmethod
    async def load_document(self, document_id: str) -> Optional[SigningDocument]:
        pass

    @abstractmethod
    async def list_documents(self, owner_id: Optional[str] = None) -> List[SigningDocument]:
        pass

    @abstractmethod
    async def insert_document(self, document: SigningDocument) -> SigningDocument:
        pass

    @abstractmethod
    async def save_document(self, document: SigningDocument, expected_version: int) -> SigningDocument:
        """Write the document if the stored version still equals expected_version.
        Returns the saved copy with its version bumped; raises ConcurrentModification otherwise."""
        pass

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        pass

    # -------- Appointments ---------------------------------------------------
    @abstractmethod
    async def load_appointments(self) -> List[Appointment]:
        pass

    @abstractmethod
    async def save_appointments(self, appointments: List[Appointment]) -> None:
        pass

    # -------- Notary uploads -------------------------------------------------
    @abstractmethod
    async def load_uploaded_document(self, document_id: str) -> Optional[UploadedDocument]:
        pass

    @abstractmethod
    async def list_uploaded_documents(self) -> List[UploadedDocument]:
        pass

    @abstractmethod
    async def save_uploaded_document(self, document: UploadedDocument) -> None:
        pass

    @abstractmethod
    async def delete_uploaded_document(self, document_id: str) -> bool:
        pass

    # -------- Notarized register ---------------------------------------------
    @abstractmethod
    async def list_notarized(self) -> List[NotarizedRecord]:
        pass

    @abstractmethod
    async def add_notarized(self, record: NotarizedRecord) -> None:
        pass


def _next_version(document: SigningDocument, expected_version: int) -> SigningDocument:
    saved = document.model_copy(deep=True)
    saved.version = expected_version + 1
    saved.updated_at = datetime.now(timezone.utc)
    return saved


class MongoDocumentStore(DocumentStore):
    """MongoDB-backed store. Collections: signing_documents, notary_appointments,
    notary_uploads, notarized_records."""

    def __init__(self):
        self.db = None

    def _get_db(self):
        if self.db is None:
            self.db = database.get_db()
        return self.db

    async def load_document(self, document_id: str) -> Optional[SigningDocument]:
        db = self._get_db()
        doc = await db.signing_documents.find_one({"document_id": document_id}, {"_id": 0})
        return SigningDocument(**doc) if doc else None

    async def list_documents(self, owner_id: Optional[str] = None) -> List[SigningDocument]:
        db = self._get_db()
        query = {"owner_id": owner_id} if owner_id else {}
        cursor = db.signing_documents.find(query, {"_id": 0}).sort("created_at", -1)
        return [SigningDocument(**doc) async for doc in cursor]

    async def insert_document(self, document: SigningDocument) -> SigningDocument:
        db = self._get_db()
        await db.signing_documents.insert_one(document.model_dump(mode="json"))
        logger.info(f"Inserted signing document {document.document_id}")
        return document

    async def save_document(self, document: SigningDocument, expected_version: int) -> SigningDocument:
        db = self._get_db()
        saved = _next_version(document, expected_version)
        result = await db.signing_documents.replace_one(
            {"document_id": document.document_id, "version": expected_version},
            saved.model_dump(mode="json"),
        )
        if result.matched_count == 0:
            logger.warning(f"Version conflict on {document.document_id} expected_version={expected_version}")
            raise ConcurrentModification()
        return saved

    async def delete_document(self, document_id: str) -> bool:
        db = self._get_db()
        result = await db.signing_documents.delete_one({"document_id": document_id})
        return result.deleted_count > 0

    async def load_appointments(self) -> List[Appointment]:
        db = self._get_db()
        cursor = db.notary_appointments.find({}, {"_id": 0}).sort("created_at", 1)
        return [Appointment(**doc) async for doc in cursor]

    async def save_appointments(self, appointments: List[Appointment]) -> None:
        db = self._get_db()
        keep = [a.appointment_id for a in appointments]
        for appointment in appointments:
            await db.notary_appointments.replace_one(
                {"appointment_id": appointment.appointment_id},
                appointment.model_dump(mode="json"),
                upsert=True,
            )
        await db.notary_appointments.delete_many({"appointment_id": {"$nin": keep}})

    async def load_uploaded_document(self, document_id: str) -> Optional[UploadedDocument]:
        db = self._get_db()
        doc = await db.notary_uploads.find_one({"document_id": document_id}, {"_id": 0})
        return UploadedDocument(**doc) if doc else None

    async def list_uploaded_documents(self) -> List[UploadedDocument]:
        db = self._get_db()
        cursor = db.notary_uploads.find({}, {"_id": 0}).sort("uploaded_at", -1)
        return [UploadedDocument(**doc) async for doc in cursor]

    async def save_uploaded_document(self, document: UploadedDocument) -> None:
        db = self._get_db()
        await db.notary_uploads.replace_one(
            {"document_id": document.document_id},
            document.model_dump(mode="json"),
            upsert=True,
        )

    async def delete_uploaded_document(self, document_id: str) -> bool:
        db = self._get_db()
        result = await db.notary_uploads.delete_one({"document_id": document_id})
        return result.deleted_count > 0

    async def list_notarized(self) -> List[NotarizedRecord]:
        db = self._get_db()
        cursor = db.notarized_records.find({}, {"_id": 0}).sort("notarization_date", -1)
        return [NotarizedRecord(**doc) async for doc in cursor]

    async def add_notarized(self, record: NotarizedRecord) -> None:
        db = self._get_db()
        await db.notarized_records.insert_one(record.model_dump(mode="json"))


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. Every read and write copies, so callers never share state."""

    def __init__(self):
        self._documents: Dict[str, SigningDocument] = {}
        self._appointments: List[Appointment] = []
        self._uploads: Dict[str, UploadedDocument] = {}
        self._notarized: List[NotarizedRecord] = []

    async def load_document(self, document_id: str) -> Optional[SigningDocument]:
        doc = self._documents.get(document_id)
        return doc.model_copy(deep=True) if doc else None

    async def list_documents(self, owner_id: Optional[str] = None) -> List[SigningDocument]:
        docs = [d for d in self._documents.values() if not owner_id or d.owner_id == owner_id]
        docs.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in docs]

    async def insert_document(self, document: SigningDocument) -> SigningDocument:
        self._documents[document.document_id] = document.model_copy(deep=True)
        return document

    async def save_document(self, document: SigningDocument, expected_version: int) -> SigningDocument:
        current = self._documents.get(document.document_id)
        if current is None or current.version != expected_version:
            raise ConcurrentModification()
        saved = _next_version(document, expected_version)
        self._documents[document.document_id] = saved
        return saved.model_copy(deep=True)

    async def delete_document(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None

    async def load_appointments(self) -> List[Appointment]:
        return [a.model_copy(deep=True) for a in self._appointments]

    async def save_appointments(self, appointments: List[Appointment]) -> None:
        self._appointments = [a.model_copy(deep=True) for a in appointments]

    async def load_uploaded_document(self, document_id: str) -> Optional[UploadedDocument]:
        doc = self._uploads.get(document_id)
        return doc.model_copy(deep=True) if doc else None

    async def list_uploaded_documents(self) -> List[UploadedDocument]:
        docs = sorted(self._uploads.values(), key=lambda d: d.uploaded_at, reverse=True)
        return [d.model_copy(deep=True) for d in docs]

    async def save_uploaded_document(self, document: UploadedDocument) -> None:
        self._uploads[document.document_id] = document.model_copy(deep=True)

    async def delete_uploaded_document(self, document_id: str) -> bool:
        return self._uploads.pop(document_id, None) is not None

    async def list_notarized(self) -> List[NotarizedRecord]:
        return copy.deepcopy(self._notarized)

    async def add_notarized(self, record: NotarizedRecord) -> None:
        self._notarized.append(record.model_copy(deep=True))
