"""Extraction lanes, cheapest first."""

from __future__ import annotations

from .agentic import AgenticBrowserLane
from .attachments import AttachmentsLane
from .base import BaseLane
from .direct_link import DirectLinkLane
from .pin_portal import PinPortalLane

__all__ = [
    "AgenticBrowserLane",
    "AttachmentsLane",
    "BaseLane",
    "DirectLinkLane",
    "PinPortalLane",
]
