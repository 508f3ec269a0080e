"""
Core data models for the scraper platform.

Run diagnostics live here: every extractor and validator in a run writes into
one :class:`Diagnostics` instance that is handed down explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class RunWarning(BaseModel):
    """Non-fatal data-shape problem found while extracting a record."""
    type: str
    message: str
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


class RunError(BaseModel):
    """A failure caught somewhere in the run (fetch, extraction, persistence)."""
    type: str
    message: str
    city: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class Diagnostics:
    """Run-scoped accumulator of warnings and errors.

    Execution is single-threaded cooperative asyncio, so plain lists are safe.
    """

    def __init__(self) -> None:
        self.warnings: List[RunWarning] = []
        self.errors: List[RunError] = []

    def add_warning(self, type: str, message: str, **context: Any) -> RunWarning:
        warning = RunWarning(type=getattr(type, "value", type), message=message, context=context)
        self.warnings.append(warning)
        logger.warning("  ⚠ %s: %s", warning.type, message)
        return warning

    def add_error(self, type: str, message: str, city: Optional[str] = None) -> RunError:
        error = RunError(type=type, message=message, city=city)
        self.errors.append(error)
        return error

    def clear(self) -> None:
        self.warnings.clear()
        self.errors.clear()

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Diagnostics warnings={len(self.warnings)} errors={len(self.errors)}>"
