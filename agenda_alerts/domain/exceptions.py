"""Custom exception hierarchy for agenda alerts.

Errors are grouped by scope: configuration, per-source, per-timestamp,
presentation, and whole-cycle collection failures.
"""


class AgendaAlertsError(Exception):
    """Base exception for all application errors."""

    pass


class ConfigurationError(AgendaAlertsError):
    """Sources or parser are missing or invalid."""

    pass


class ParserUnavailableError(ConfigurationError):
    """The agenda parser capability could not be loaded."""

    pass


class SourceError(AgendaAlertsError):
    """A single agenda source could not be parsed."""

    def __init__(self, source: str, reason: str) -> None:
        """Initialize with the failing source identifier."""
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class SourceUnreadable(SourceError):
    """Source could not be opened or read."""

    pass


class SourceMalformed(SourceError):
    """Source was read but its content could not be parsed."""

    pass


class MalformedTimestamp(AgendaAlertsError):
    """Timestamp text has no parseable date."""

    def __init__(self, raw: str, reason: str = "no valid date") -> None:
        """Initialize with the offending raw text."""
        self.raw = raw
        super().__init__(f"Malformed timestamp {raw!r}: {reason}")


class PresentationError(AgendaAlertsError):
    """Alert presenter failed to deliver a notification."""

    pass


class CollectionError(AgendaAlertsError):
    """Collection failed for every configured source."""

    pass
