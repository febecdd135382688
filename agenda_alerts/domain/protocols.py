"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts for the external collaborators
the refresh core calls into: the agenda parser, the parser loader and the
alert presenter.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from agenda_alerts.domain.models import RawCandidate, Severity


@runtime_checkable
class AgendaParserProtocol(Protocol):
    """Protocol for turning one agenda source into raw candidates."""

    def parse(self, source: str) -> Sequence[RawCandidate]:
        """Parse a single source.

        Must be safe to call repeatedly and concurrently for distinct sources,
        and must not modify the source.

        Args:
            source: Source identifier (usually a file path)

        Returns:
            Raw candidates in source order

        Raises:
            SourceUnreadable: Source could not be opened
            SourceMalformed: Source content could not be parsed
        """
        ...


class ParserLoaderProtocol(Protocol):
    """Protocol for resolving the parser capability at runtime."""

    def load(self) -> AgendaParserProtocol:
        """Return a ready parser.

        Raises:
            ParserUnavailableError: Parser cannot be imported or constructed
        """
        ...


class AlertPresenterProtocol(Protocol):
    """Protocol for popping up a visual or audible notification."""

    def present(self, title: str, message: str, severity: Severity) -> None:
        """Deliver one alert. Fire-and-forget.

        Raises:
            PresentationError: Notification could not be delivered
        """
        ...


__all__ = [
    "AgendaParserProtocol",
    "AlertPresenterProtocol",
    "ParserLoaderProtocol",
]
