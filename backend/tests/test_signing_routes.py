"""
HTTP tests for the signing and notary routers (in-memory services via dependency overrides).
Errors come back as {"detail": {"error_code", "message"}} with 400 / 404 / 409 / 422.
"""
import base64
import io

import pytest
from PIL import Image

from conftest import FIXED_OTP, PDF_BYTES, VALID_ID
from signing.routes.documents import content_disposition


def _png_bytes():
    buf = io.BytesIO()
    Image.new("RGBA", (8, 4), (0, 0, 0, 255)).save(buf, format="PNG")
    return buf.getvalue()


def _upload(client, name="Contract.pdf"):
    r = client.post(
        "/api/signing/documents",
        files={"file": (name, PDF_BYTES, "application/pdf")},
    )
    assert r.status_code == 200, r.text
    return r.json()


def _verified_signer(client, document_id, email="ann@example.com"):
    r = client.post(f"/api/signing/documents/{document_id}/signers", json={"name": "Ann", "email": email})
    assert r.status_code == 200, r.text
    signer_id = r.json()["signer_id"]
    base = f"/api/signing/documents/{document_id}/signers/{signer_id}"
    assert client.post(f"{base}/otp", json={"id_number": VALID_ID}).status_code == 200
    assert client.post(f"{base}/otp/verify", json={"code": FIXED_OTP}).status_code == 200
    return signer_id


class TestDocumentRoutes:

    def test_upload_list_get_download_delete(self, client):
        document = _upload(client)
        assert document["status"] == "pending"
        assert document["signed_count"] == 0

        listing = client.get("/api/signing/documents").json()
        assert [d["document_id"] for d in listing] == [document["document_id"]]

        r = client.get(f"/api/signing/documents/{document['document_id']}/download")
        assert r.status_code == 200
        assert r.content == PDF_BYTES
        assert "Contract.pdf" in r.headers["content-disposition"]

        r = client.delete(f"/api/signing/documents/{document['document_id']}")
        assert r.json() == {"success": True, "document_id": document["document_id"]}
        r = client.get(f"/api/signing/documents/{document['document_id']}")
        assert r.status_code == 404
        assert r.json()["detail"]["error_code"] == "document_not_found"

    def test_download_with_non_latin_name(self, client):
        document = _upload(client, name="契約書.pdf")
        r = client.get(f"/api/signing/documents/{document['document_id']}/download")
        assert r.status_code == 200
        assert r.content == PDF_BYTES
        disposition = r.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="')
        assert "filename*=UTF-8''%E5%A5%91%E7%B4%84%E6%9B%B8.pdf" in disposition

    def test_upload_rejects_zip(self, client):
        r = client.post(
            "/api/signing/documents",
            files={"file": ("a.zip", b"PK\x03\x04", "application/zip")},
        )
        assert r.status_code == 400
        assert r.json()["detail"]["error_code"] == "invalid_file_type"


class TestSignerRoutes:

    def test_otp_then_typed_signature(self, client, notifier):
        document_id = _upload(client)["document_id"]
        r = client.post(f"/api/signing/documents/{document_id}/signers", json={"name": "Ann", "email": "ann@example.com"})
        signer = r.json()
        assert signer["step"] == "identity"
        base = f"/api/signing/documents/{document_id}/signers/{signer['signer_id']}"

        r = client.post(f"{base}/otp", json={"id_number": VALID_ID})
        body = r.json()
        assert body["signer"]["verification_state"] == "otp_sent"
        assert body["signer"]["id_last4"] == "9012"
        assert FIXED_OTP not in r.text
        assert notifier.sent[-1][0] == "ann@example.com"

        r = client.post(f"{base}/otp/verify", json={"code": "000000"})
        assert r.status_code == 400
        assert r.json()["detail"]["error_code"] == "otp_mismatch"

        r = client.post(f"{base}/otp/verify", json={"code": FIXED_OTP})
        assert r.json()["signer"]["step"] == "capture"

        r = client.post(f"{base}/sign", json={"mode": "type", "text": "Ann Example"})
        assert r.status_code == 200, r.text
        document = r.json()
        assert document["status"] == "in_progress"
        assert document["signers"][0]["step"] == "done"
        assert "code_hash" not in document["signers"][0]["verification"]
        assert "subject_id_hash" not in document["signers"][0]["verification"]

        r = client.post(f"{base}/sign", json={"mode": "type", "text": "Again"})
        assert r.status_code == 409
        assert r.json()["detail"]["error_code"] == "already_signed"

    def test_malformed_id_is_400(self, client):
        document_id = _upload(client)["document_id"]
        signer_id = client.post(
            f"/api/signing/documents/{document_id}/signers", json={"name": "Ann", "email": "ann@example.com"}
        ).json()["signer_id"]
        r = client.post(f"/api/signing/documents/{document_id}/signers/{signer_id}/otp", json={"id_number": "12ab"})
        assert r.status_code == 400
        assert r.json()["detail"]["error_code"] == "invalid_id_format"

    def test_unverified_signer_cannot_sign(self, client):
        document_id = _upload(client)["document_id"]
        signer_id = client.post(
            f"/api/signing/documents/{document_id}/signers", json={"name": "Ann", "email": "ann@example.com"}
        ).json()["signer_id"]
        r = client.post(
            f"/api/signing/documents/{document_id}/signers/{signer_id}/sign",
            json={"mode": "type", "text": "Ann"},
        )
        assert r.status_code == 409
        assert r.json()["detail"]["error_code"] == "not_verified"

    def test_drawn_and_uploaded_signatures(self, client):
        document_id = _upload(client)["document_id"]
        drawer = _verified_signer(client, document_id, "draw@example.com")
        uploader = _verified_signer(client, document_id, "upload@example.com")

        r = client.post(
            f"/api/signing/documents/{document_id}/signers/{drawer}/sign",
            json={"mode": "draw", "strokes": [[[10, 10], [80, 40], [150, 20]]]},
        )
        assert r.status_code == 200, r.text
        assert r.json()["signers"][0]["signature_artifact"]["payload"].startswith("data:image/png;base64,")

        r = client.post(
            f"/api/signing/documents/{document_id}/signers/{uploader}/sign/upload",
            files={"file": ("sig.png", _png_bytes(), "image/png")},
        )
        assert r.status_code == 200, r.text
        assert r.json()["signed_count"] == 2

    def test_empty_drawing_and_bad_upload(self, client):
        document_id = _upload(client)["document_id"]
        signer_id = _verified_signer(client, document_id)
        base = f"/api/signing/documents/{document_id}/signers/{signer_id}"

        r = client.post(f"{base}/sign", json={"mode": "draw", "strokes": []})
        assert r.status_code == 400
        assert r.json()["detail"]["error_code"] == "empty_capture"

        r = client.post(f"{base}/sign/upload", files={"file": ("sig.zip", b"PK", "application/zip")})
        assert r.status_code == 400
        assert r.json()["detail"]["error_code"] == "invalid_file_type"

        r = client.post(f"{base}/sign", json={"mode": "upload", "file_base64": "not base64!!", "content_type": "image/png"})
        assert r.status_code == 422
        assert r.json()["detail"]["error_code"] == "capture_read_error"

        signature = base64.b64encode(_png_bytes()).decode()
        r = client.post(f"{base}/sign", json={"mode": "upload", "file_base64": signature, "content_type": "image/png"})
        assert r.status_code == 200, r.text

    def test_malformed_stroke_is_400(self, client):
        document_id = _upload(client)["document_id"]
        signer_id = _verified_signer(client, document_id)
        r = client.post(
            f"/api/signing/documents/{document_id}/signers/{signer_id}/sign",
            json={"mode": "draw", "strokes": [[[5]]]},
        )
        assert r.status_code == 400
        assert r.json()["detail"]["error_code"] == "invalid_stroke"
        signer = client.get(f"/api/signing/documents/{document_id}").json()["signers"][0]
        assert signer["status"] != "signed"

    def test_reject_signer(self, client):
        document_id = _upload(client)["document_id"]
        signer_id = _verified_signer(client, document_id)
        r = client.post(
            f"/api/signing/documents/{document_id}/signers/{signer_id}/reject", json={"reason": "Wrong terms"}
        )
        assert r.status_code == 200
        assert r.json()["signers"][0]["status"] == "rejected"
        assert r.json()["status"] == "pending"

    def test_unknown_signer_is_404(self, client):
        document_id = _upload(client)["document_id"]
        r = client.post(f"/api/signing/documents/{document_id}/signers/SGN-NOPE/otp", json={"id_number": VALID_ID})
        assert r.status_code == 404


class TestRecipientRoutes:

    def test_send_without_recipients_is_400(self, client):
        document_id = _upload(client)["document_id"]
        r = client.post(f"/api/signing/documents/{document_id}/send", json={"recipients": []})
        assert r.status_code == 400
        assert r.json()["detail"]["error_code"] == "missing_recipients"
        assert client.get(f"/api/signing/documents/{document_id}").json()["status"] == "pending"

    def test_signing_link_flow(self, client, notifier):
        document_id = _upload(client)["document_id"]
        r = client.post(
            f"/api/signing/documents/{document_id}/send",
            json={"recipients": [{"name": "Rita", "email": "rita@example.com"}]},
        )
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["document"]["status"] == "in_progress"
        assert "token_hash" not in body["document"]["recipients"][0]
        token = notifier.token_for("rita@example.com")
        assert token not in r.text

        r = client.get(f"/api/signing/public/documents/{document_id}", params={"token": token})
        assert r.status_code == 200
        assert r.json()["recipient"]["name"] == "Rita"

        r = client.post(
            f"/api/signing/public/documents/{document_id}/sign",
            json={"token": token, "signature": {"mode": "type", "text": "Rita"}},
        )
        assert r.status_code == 200, r.text
        assert r.json()["status"] == "completed"

        r = client.get(f"/api/signing/public/documents/{document_id}", params={"token": token})
        assert r.status_code == 409
        assert r.json()["detail"]["error_code"] == "token_already_consumed"

    def test_wrong_token_is_rejected(self, client):
        document_id = _upload(client)["document_id"]
        client.post(
            f"/api/signing/documents/{document_id}/send",
            json={"recipients": [{"name": "Rita", "email": "rita@example.com"}]},
        )
        r = client.get(f"/api/signing/public/documents/{document_id}", params={"token": "forged"})
        assert r.status_code == 409
        assert r.json()["detail"]["error_code"] == "token_not_found"

    def test_recipient_upload_signature(self, client, notifier):
        document_id = _upload(client)["document_id"]
        client.post(
            f"/api/signing/documents/{document_id}/send",
            json={"recipients": [{"name": "Rita", "email": "rita@example.com"}]},
        )
        r = client.post(
            f"/api/signing/public/documents/{document_id}/sign/upload",
            data={"token": notifier.token_for("rita@example.com")},
            files={"file": ("sig.png", _png_bytes(), "image/png")},
        )
        assert r.status_code == 200, r.text
        assert r.json()["status"] == "completed"

    def test_completed_document_refuses_new_signer(self, client):
        document_id = _upload(client)["document_id"]
        for n in range(3):
            signer_id = _verified_signer(client, document_id, f"s{n}@example.com")
            client.post(f"/api/signing/documents/{document_id}/signers/{signer_id}/sign", json={"mode": "type", "text": "S"})

        r = client.post(f"/api/signing/documents/{document_id}/signers", json={"name": "Late", "email": "late@example.com"})
        assert r.status_code == 409
        assert r.json()["detail"]["error_code"] == "invalid_transition"
        assert client.get(f"/api/signing/documents/{document_id}").json()["signed_count"] == 3


class TestNotaryRoutes:

    def test_appointments(self, client):
        r = client.post(
            "/api/notary/appointments",
            json={"type": "Document Signing", "date": "2026-11-02", "time": "10:00", "location": "Office", "documents": ["Lease.pdf"]},
        )
        assert r.status_code == 200, r.text
        appointment_id = r.json()["appointment_id"]
        assert r.json()["status"] == "scheduled"

        assert len(client.get("/api/notary/appointments").json()) == 1
        assert client.get(f"/api/notary/appointments/{appointment_id}").json()["location"] == "Office"
        assert client.get("/api/notary/appointments/APT-NOPE").status_code == 404

    def test_missing_appointment_field_is_422(self, client):
        r = client.post("/api/notary/appointments", json={"type": "Document Signing", "date": "2026-11-02"})
        assert r.status_code == 422

    def test_upload_review_witness_register(self, client):
        r = client.post(
            "/api/notary/documents",
            files=[
                ("files", ("Deed.pdf", PDF_BYTES, "application/pdf")),
                ("files", ("notes.txt", b"hello", "text/plain")),
            ],
        )
        assert r.status_code == 200, r.text
        documents = r.json()["documents"]
        assert [d["status"] for d in documents] == ["completed", "completed"]
        document_id = documents[0]["document_id"]

        r = client.post(f"/api/notary/documents/{document_id}/witness", json={"witness_name": "Mary", "signature": {"mode": "type", "text": "Mary"}})
        assert r.status_code == 409

        r = client.post(f"/api/notary/documents/{document_id}/review", json={"acknowledged": False})
        assert r.status_code == 400

        r = client.post(f"/api/notary/documents/{document_id}/review", json={"acknowledged": True, "verification_type": "identity"})
        assert r.json()["verification_step"] == "signature"

        r = client.post(f"/api/notary/documents/{document_id}/witness", json={"witness_name": "Mary"})
        assert r.status_code == 400

        r = client.post(
            f"/api/notary/documents/{document_id}/witness",
            json={"witness_name": "Mary Notary", "witness_type": "notary", "signature": {"mode": "type", "text": "Mary"}},
        )
        assert r.status_code == 200, r.text
        assert r.json()["status"] == "verified"

        records = client.get("/api/notary/notarized", params={"search": "deed"}).json()
        assert len(records) == 1
        assert records[0]["type"] == "Identity"
        assert records[0]["notary_name"] == "Mary Notary"

    def test_upload_rejects_image(self, client):
        r = client.post("/api/notary/documents", files=[("files", ("photo.png", _png_bytes(), "image/png"))])
        assert r.status_code == 400

    def test_invalid_file_in_batch_stores_nothing(self, client):
        r = client.post(
            "/api/notary/documents",
            files=[
                ("files", ("a.pdf", PDF_BYTES, "application/pdf")),
                ("files", ("b.zip", b"PK\x03\x04", "application/zip")),
            ],
        )
        assert r.status_code == 400
        assert r.json()["detail"]["error_code"] == "invalid_file_type"
        assert "b.zip" in r.json()["detail"]["message"]
        assert client.get("/api/notary/documents").json() == []

    def test_remove_document(self, client):
        document_id = client.post(
            "/api/notary/documents", files=[("files", ("Deed.pdf", PDF_BYTES, "application/pdf"))]
        ).json()["documents"][0]["document_id"]
        assert client.delete(f"/api/notary/documents/{document_id}").status_code == 200
        assert client.get(f"/api/notary/documents/{document_id}").status_code == 404


def test_content_disposition_strips_header_breaking_characters():
    header = content_disposition('a"b\r\nX-Injected: 1.pdf')
    assert "\r" not in header and "\n" not in header
    assert header.startswith('attachment; filename="a_b__X-Injected: 1.pdf"')
    assert "filename*=UTF-8''a%22b%0D%0AX-Injected%3A%201.pdf" in header


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
