"""Public Signing Routes (no login; the signing-link token is the credential)

Endpoints:
- GET /api/signing/public/documents/{id}?token= - Resolve a signing link
- POST /api/signing/public/documents/{id}/sign - Sign as the invited recipient
- POST /api/signing/public/documents/{id}/sign/upload - Sign with an uploaded file
"""

import logging

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel

from signing.models.documents import CaptureMode
from signing.routes.common import SignatureSubmission, fill_session, fill_session_from_upload
from signing.services.capture_service import begin_capture
from signing.services.signing_workflow import SigningWorkflowService, get_signing_workflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/signing/public", tags=["Digital Signature (Public)"])


class RecipientSignRequest(BaseModel):
    token: str
    signature: SignatureSubmission


def _signed_response(document) -> dict:
    return {
        "success": True,
        "message": "Document signed successfully",
        "document_id": document.document_id,
        "status": document.status.value,
    }


@router.get("/documents/{document_id}")
async def open_signing_link(
    document_id: str,
    token: str = Query(...),
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    document, recipient = await workflow.redeem_token(document_id, token)
    return {
        "document_id": document.document_id,
        "document_name": document.name,
        "deadline": document.deadline.isoformat(),
        "status": document.status.value,
        "recipient": {
            "recipient_id": recipient.recipient_id,
            "name": recipient.name,
            "email": recipient.email,
        },
    }


@router.post("/documents/{document_id}/sign")
async def sign_as_recipient(
    document_id: str,
    request: RecipientSignRequest,
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    await workflow.redeem_token(document_id, request.token)
    session = begin_capture(request.signature.mode, style=request.signature.style)
    artifact = fill_session(session, request.signature)
    document = await workflow.sign_as_recipient(document_id, request.token, artifact)
    return _signed_response(document)


@router.post("/documents/{document_id}/sign/upload")
async def sign_as_recipient_with_upload(
    document_id: str,
    token: str = Form(...),
    file: UploadFile = File(...),
    workflow: SigningWorkflowService = Depends(get_signing_workflow),
):
    await workflow.redeem_token(document_id, token)
    session = begin_capture(CaptureMode.UPLOAD)
    artifact = await fill_session_from_upload(session, file)
    document = await workflow.sign_as_recipient(document_id, token, artifact)
    return _signed_response(document)
