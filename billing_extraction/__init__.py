"""Billing extraction: turn an inbound bill email into validated PDF documents."""

from .config import AppConfig
from .jobs import InMemoryJobTracker
from .logging import setup_logging
from .models import ExtractionResult, ExtractionRule, InboundEmail, PdfDocument
from .orchestrator import LaneOrchestrator
from .service import ExtractionService

__all__ = [
    "AppConfig",
    "ExtractionResult",
    "ExtractionRule",
    "ExtractionService",
    "InMemoryJobTracker",
    "InboundEmail",
    "LaneOrchestrator",
    "PdfDocument",
    "setup_logging",
]
