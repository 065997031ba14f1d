"""Signing Document Routes

Endpoints:
- POST /api/signing/documents - Upload a document for signing
- GET /api/signing/documents - List documents
- GET /api/signing/documents/{id} - Document details with parties
- GET /api/signing/documents/{id}/download - Download the stored file
- DELETE /api/signing/documents/{id} - Delete document (signing links stop working)
- POST /api/signing/documents/{id}/signers - Add a signer
- POST /api/signing/documents/{id}/signers/{signer_id}/otp - Verify ID number, send OTP
- POST /api/signing/documents/{id}/signers/{signer_id}/otp/resend - Resend OTP
- POST /api/signing/documents/{id}/signers/{signer_id}/otp/verify - Submit OTP
- POST /api/signing/documents/{id}/signers/{signer_id}/sign - Sign (draw / type / base64 upload)
- POST /api/signing/documents/{id}/signers/{signer_id}/sign/upload - Sign with an uploaded file
- POST /api/signing/documents/{id}/signers/{signer_id}/reject - Reject
- POST /api/signing/documents/{id}/send - Send for signing to remote recipients
"""

from datetime import date
from typing import List, Optional
import logging
import re
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from signing.models.documents import (
    CaptureMode,
    IdentityMethod,
    RecipientInput,
    SigningDocumentSummary,
)
from signing.routes.common import SignatureSubmission, document_view, fill_session, fill_session_from_upload
from signing.services.signing_workflow import SigningWorkflowService, get_signing_workflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/signing/documents", tags=["Digital Signature"])


def content_disposition(filename: str) -> str:
    """attachment header with an ASCII fallback name plus the RFC 5987 UTF-8 name."""
    fallback = re.sub(r'[^\x20-\x7e]|["\\]', "_", filename).strip() or "document"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


class AddSignerRequest(BaseModel):
    name: str
    email: str
    identity_method: IdentityMethod = IdentityMethod.LOCAL_ID_OTP


class OtpRequest(BaseModel):
    id_number: str


class OtpSubmitRequest(BaseModel):
    code: str


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class SendForSigningRequest(BaseModel):
    recipients: List[RecipientInput] = []


def _signer_view(signer) -> dict:
    return {
        "signer_id": signer.signer_id,
        "name": signer.name,
        "email": signer.email,
        "status": signer.status.value,
        "identity_method": signer.identity_method.value,
        "identity_verified": signer.identity_verified,
        "verification_state": signer.verification.state.value,
        "id_last4": signer.verification.subject_id_last4,
        "step": signer.step.value,
    }


@router.post("")
async def upload_document(
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    deadline: Optional[date] = Form(None),
    owner_id: Optional[str] = Form(None),
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    """Upload a PDF / DOC / DOCX document (max 10MB). Deadline defaults to 7 days ahead."""
    content = await file.read()
    document = await workflow.create_document(
        name=name or file.filename or "",
        content=content,
        content_type=file.content_type or "",
        size=len(content),
        deadline=deadline,
        owner_id=owner_id,
    )
    return document_view(document)


@router.get("", response_model=List[SigningDocumentSummary])
async def list_documents(
    owner_id: Optional[str] = Query(None),
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    documents = await workflow.list_documents(owner_id)
    return [SigningDocumentSummary.from_document(d) for d in documents]


@router.get("/{document_id}")
async def get_document(
    document_id: str,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    return document_view(await workflow.get_document(document_id))


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    content, stored, document = await workflow.download_document(document_id)
    return Response(
        content=content,
        media_type=stored.content_type,
        headers={"Content-Disposition": content_disposition(document.name)},
    )


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    await workflow.delete_document(document_id)
    return {"success": True, "document_id": document_id}


# ============================================================================
# Signers
# ============================================================================

@router.post("/{document_id}/signers")
async def add_signer(
    document_id: str,
    request: AddSignerRequest,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    signer = await workflow.add_signer(document_id, request.name, request.email, request.identity_method)
    return _signer_view(signer)


@router.post("/{document_id}/signers/{signer_id}/otp")
async def request_otp(
    document_id: str,
    signer_id: str,
    request: OtpRequest,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    """The OTP goes to the signer's email; it is never part of the response."""
    signer = await workflow.request_otp(document_id, signer_id, request.id_number)
    return {"success": True, "message": "OTP sent successfully", "signer": _signer_view(signer)}


@router.post("/{document_id}/signers/{signer_id}/otp/resend")
async def resend_otp(
    document_id: str,
    signer_id: str,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    signer = await workflow.resend_otp(document_id, signer_id)
    return {"success": True, "message": "OTP resent successfully", "signer": _signer_view(signer)}


@router.post("/{document_id}/signers/{signer_id}/otp/verify")
async def submit_otp(
    document_id: str,
    signer_id: str,
    request: OtpSubmitRequest,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    signer = await workflow.submit_otp(document_id, signer_id, request.code)
    return {"success": True, "verified": True, "signer": _signer_view(signer)}


@router.post("/{document_id}/signers/{signer_id}/sign")
async def sign(
    document_id: str,
    signer_id: str,
    submission: SignatureSubmission,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    session = await workflow.open_capture(document_id, signer_id, submission.mode, style=submission.style)
    artifact = fill_session(session, submission)
    document = await workflow.sign(document_id, signer_id, artifact)
    return document_view(document)


@router.post("/{document_id}/signers/{signer_id}/sign/upload")
async def sign_with_upload(
    document_id: str,
    signer_id: str,
    file: UploadFile = File(...),
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    """PNG / JPEG / PDF signature file, max 5MB."""
    session = await workflow.open_capture(document_id, signer_id, CaptureMode.UPLOAD)
    artifact = await fill_session_from_upload(session, file)
    document = await workflow.sign(document_id, signer_id, artifact)
    return document_view(document)


@router.post("/{document_id}/signers/{signer_id}/reject")
async def reject(
    document_id: str,
    signer_id: str,
    request: RejectRequest,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    document = await workflow.reject_signer(document_id, signer_id, request.reason)
    return document_view(document)


# ============================================================================
# Recipients
# ============================================================================

@router.post("/{document_id}/send")
async def send_for_signing(
    document_id: str,
    request: SendForSigningRequest,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    """Each recipient receives an email with a personal signing link."""
    document = await workflow.send_for_signing(document_id, request.recipients)
    return {
        "success": True,
        "message": f"Document sent for signing to {len(request.recipients)} recipient(s)",
        "document": document_view(document),
    }
