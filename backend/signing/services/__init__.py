"""Signing Services"""

from .signing_workflow import SigningWorkflowService, get_signing_workflow
from .notary_service import NotaryService, get_notary_service

__all__ = [
    "SigningWorkflowService",
    "get_signing_workflow",
    "NotaryService",
    "get_notary_service",
]
