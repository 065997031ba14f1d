"""
Pytest configuration and shared fixtures for backend tests.
Every test runs against in-memory collaborators; no MongoDB or email provider is needed.
"""
import os
import sys
from pathlib import Path
from urllib.parse import parse_qs, urlparse

# Skip MongoDB startup when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ.setdefault("SIGNING_STORE", "memory")

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from fastapi.testclient import TestClient

from server import app
from signing.services.document_store import InMemoryDocumentStore
from signing.services.file_storage import InMemoryFileStorage
from signing.services.messaging import NotificationResult, Notifier
from signing.services.notary_service import NotaryService, get_notary_service
from signing.services.otp_verifier import FixedOtpGenerator, LocalIdVerifier, OtpPolicy
from signing.services.signing_workflow import SigningWorkflowService, get_signing_workflow
from signing.services.token_service import SigningTokenService, TokenPolicy

PDF_BYTES = b"%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF"
VALID_ID = "123456789012"
FIXED_OTP = "123456"


class RecordingNotifier(Notifier):
    """Keeps every message so tests can read OTPs and signing links."""

    def __init__(self):
        self.sent = []

    async def notify(self, address, payload):
        self.sent.append((address, payload))
        return NotificationResult(outcome="sent", message_id=str(len(self.sent)))

    def links_for(self, address):
        return [p["link"] for a, p in self.sent if a == address and p.get("template_key") == "SIGNING_INVITATION"]

    def token_for(self, address):
        link = self.links_for(address)[-1]
        return parse_qs(urlparse(link).query)["token"][0]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def file_storage():
    return InMemoryFileStorage()


@pytest.fixture
def workflow(store, file_storage, notifier):
    return SigningWorkflowService(
        store=store,
        file_storage=file_storage,
        notifier=notifier,
        verifier=LocalIdVerifier(generator=FixedOtpGenerator(FIXED_OTP), policy=OtpPolicy(), pepper="test-pepper"),
        token_service=SigningTokenService(TokenPolicy()),
    )


@pytest.fixture
def notary(store, file_storage):
    return NotaryService(store=store, file_storage=file_storage)


@pytest.fixture
def client(workflow, notary):
    """TestClient for server:app wired to the in-memory services above."""
    app.dependency_overrides[get_signing_workflow] = lambda: workflow
    app.dependency_overrides[get_notary_service] = lambda: notary
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
