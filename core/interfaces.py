"""
Core interfaces for the scraper platform.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from bs4 import BeautifulSoup

from .models import Diagnostics


T = TypeVar("T")


class Extractor(ABC, Generic[T]):
    """Abstract base class for page extractors.

    An extractor turns one already-fetched document into typed records.  It
    never fetches anything itself and never raises for data-shape problems;
    those go to the run's :class:`~core.models.Diagnostics`.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this extractor."""
        pass

    @abstractmethod
    def extract(self, doc: BeautifulSoup, diagnostics: Diagnostics, **kwargs: Any) -> T:
        """Extract records from a parsed document."""
        pass

    def __repr__(self) -> str:  # pragma: no cover
        return f"<{self.name}>"


class Sink(ABC):
    """Abstract base class for output sinks.

    Sinks receive the finished, in-memory result of a run.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this sink."""
        pass

    @abstractmethod
    async def handle(self, item: Any) -> None:
        """Handle an item."""
        pass

    async def close(self) -> None:
        """Release any resources held by the sink."""
        pass
