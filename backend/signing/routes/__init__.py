"""Signing Routes"""

from .documents import router as documents_router
from .public import router as public_router
from .notary import router as notary_router

__all__ = [
    "documents_router",
    "public_router",
    "notary_router",
]
