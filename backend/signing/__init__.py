"""
Signing - Document Signing & Identity Verification
==================================================

Multi-party document signing with a signed-party cap, three signature capture
modes (draw, type, upload) and two identity checks:
- local signers: national-ID number + OTP
- remote recipients: personal signing link (possession token), no account

Also covers the notarization desk: appointments, uploaded documents and
witness verification.
"""

__version__ = "1.0.0"
