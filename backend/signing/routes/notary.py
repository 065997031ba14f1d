"""Notary Routes

Endpoints:
- POST /api/notary/appointments - Schedule an appointment
- GET /api/notary/appointments - List appointments
- GET /api/notary/appointments/{id} - Appointment details
- POST /api/notary/documents - Upload documents for notarization
- GET /api/notary/documents - List uploaded documents
- GET /api/notary/documents/{id} - Uploaded document details
- DELETE /api/notary/documents/{id} - Remove an uploaded document
- POST /api/notary/documents/{id}/review - Confirm review (view -> signature)
- POST /api/notary/documents/{id}/review/back - Back to the review step
- POST /api/notary/documents/{id}/witness - Submit witness name + signature
- GET /api/notary/notarized - Search the notarized documents register
"""

from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, File, Query, UploadFile
from pydantic import BaseModel

from signing.errors import ValidationError
from signing.models.notary import (
    Appointment,
    AppointmentCreate,
    NotarizedRecord,
    UploadedDocument,
    VerificationType,
    WitnessType,
)
from signing.routes.common import SignatureSubmission, fill_session
from signing.services.capture_service import begin_capture
from signing.services.notary_service import NotaryService, get_notary_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notary", tags=["Notary"])


class ReviewRequest(BaseModel):
    acknowledged: bool = False
    verification_type: VerificationType = VerificationType.DOCUMENT


class WitnessRequest(BaseModel):
    witness_name: str = ""
    witness_type: WitnessType = WitnessType.WITNESS
    signature: Optional[SignatureSubmission] = None


def _uploaded_view(document: UploadedDocument) -> dict:
    return document.model_dump(mode="json")


@router.post("/appointments", response_model=Appointment)
async def schedule_appointment(
    request: AppointmentCreate,
    service: NotaryService = Depends(get_notary_service),
):
    return await service.schedule_appointment(request)


@router.get("/appointments", response_model=List[Appointment])
async def list_appointments(service: NotaryService = Depends(get_notary_service)):
    return await service.list_appointments()


@router.get("/appointments/{appointment_id}", response_model=Appointment)
async def get_appointment(
    appointment_id: str,
    service: NotaryService = Depends(get_notary_service),
):
    return await service.get_appointment(appointment_id)


@router.post("/documents")
async def upload_documents(
    files: List[UploadFile] = File(...),
    service: NotaryService = Depends(get_notary_service),
):
    """PDF, DOC, DOCX, TXT (max 10MB each). A file that fails to store is returned with status failed.

    Every file is checked before any is stored; one invalid file rejects the whole batch.
    """
    batch = []
    for file in files:
        content = await file.read()
        service.validate_upload(file.filename or "", file.content_type or "", len(content))
        batch.append((file, content))

    results = []
    for file, content in batch:
        document = await service.intake_document(
            name=file.filename or "",
            content=content,
            content_type=file.content_type or "",
            size=len(content),
        )
        results.append(_uploaded_view(document))
    return {"documents": results}


@router.get("/documents")
async def list_uploaded_documents(service: NotaryService = Depends(get_notary_service)):
    return [_uploaded_view(d) for d in await service.list_uploaded_documents()]


@router.get("/documents/{document_id}")
async def get_uploaded_document(
    document_id: str,
    service: NotaryService = Depends(get_notary_service),
):
    return _uploaded_view(await service.get_uploaded_document(document_id))


@router.delete("/documents/{document_id}")
async def remove_document(
    document_id: str,
    service: NotaryService = Depends(get_notary_service),
):
    await service.remove_document(document_id)
    return {"success": True, "document_id": document_id}


@router.post("/documents/{document_id}/review")
async def acknowledge_review(
    document_id: str,
    request: ReviewRequest,
    service: NotaryService = Depends(get_notary_service),
):
    document = await service.acknowledge_review(document_id, request.acknowledged, request.verification_type)
    return _uploaded_view(document)


@router.post("/documents/{document_id}/review/back")
async def return_to_review(
    document_id: str,
    service: NotaryService = Depends(get_notary_service),
):
    return _uploaded_view(await service.return_to_review(document_id))


@router.post("/documents/{document_id}/witness")
async def submit_witness(
    document_id: str,
    request: WitnessRequest,
    service: NotaryService = Depends(get_notary_service),
):
    if request.signature is None:
        raise ValidationError("Witness signature is required")
    session = begin_capture(request.signature.mode, style=request.signature.style)
    artifact = fill_session(session, request.signature)
    document = await service.submit_witness(document_id, request.witness_name, artifact, request.witness_type)
    return _uploaded_view(document)


@router.get("/notarized", response_model=List[NotarizedRecord])
async def list_notarized(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    service: NotaryService = Depends(get_notary_service),
):
    return await service.list_notarized(search, status)
