"""Request models and helpers shared by the signing and notary routers."""

from typing import Any, Dict, List, Optional
import base64
import binascii

from fastapi import UploadFile
from pydantic import BaseModel

from signing.errors import CaptureReadError, ValidationError
from signing.models.documents import (
    CaptureMode,
    SignatureArtifact,
    SignaturePlacement,
    SignatureStyle,
    SigningDocument,
)
from signing.services.capture_service import CaptureSession


class SignatureSubmission(BaseModel):
    """Signature as captured by the client in one of the three modes."""
    mode: CaptureMode
    strokes: Optional[List[List[List[float]]]] = None  # draw: strokes of [x, y] points
    text: Optional[str] = None  # type
    file_base64: Optional[str] = None  # upload; a data URL is accepted too
    content_type: Optional[str] = None
    filename: Optional[str] = None
    style: Optional[SignatureStyle] = None
    placement: Optional[SignaturePlacement] = None


def _decode_file(value: str) -> bytes:
    data = value.strip()
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CaptureReadError(f"Failed to read signature file: {e}")


def fill_session(session: CaptureSession, submission: SignatureSubmission) -> SignatureArtifact:
    """Replay a submission into an open capture session and commit it."""
    if submission.mode != session.mode:
        session.switch_mode(submission.mode)
    if submission.style is not None:
        session.style = submission.style

    if submission.mode == CaptureMode.DRAW:
        for stroke in submission.strokes or []:
            session.add_stroke(stroke)
    elif submission.mode == CaptureMode.TYPE:
        session.set_text(submission.text or "")
    elif submission.file_base64:
        content = _decode_file(submission.file_base64)
        session.attach_file(content, submission.content_type or "", size=len(content), filename=submission.filename)

    artifact = session.commit()
    if submission.placement is not None:
        artifact.placement = submission.placement
    return artifact


async def fill_session_from_upload(session: CaptureSession, file: UploadFile) -> SignatureArtifact:
    if session.mode != CaptureMode.UPLOAD:
        session.switch_mode(CaptureMode.UPLOAD)
    if not file.filename:
        raise ValidationError("No file provided")
    try:
        content = await file.read()
    except OSError as e:
        raise CaptureReadError(f"Failed to read signature file: {e}")
    session.attach_file(content, file.content_type or "", size=len(content), filename=file.filename)
    return session.commit()


def document_view(document: SigningDocument) -> Dict[str, Any]:
    """Document as returned to clients; credential hashes are never exposed."""
    data = document.model_dump(
        mode="json",
        exclude={
            "signers": {"__all__": {"verification": {"subject_id_hash", "code_hash"}}},
            "recipients": {"__all__": {"token_hash"}},
        },
    )
    for signer, raw in zip(document.signers, data["signers"]):
        raw["step"] = signer.step.value
    for recipient, raw in zip(document.recipients, data["recipients"]):
        raw["has_signed"] = recipient.has_signed
    data["signed_count"] = document.signed_party_count
    return data
