"""Runtime precondition checks run before a refresh cycle.

Checks, in order, stopping at the first failing category:
1. At least one agenda source is configured
2. Every configured source exists
3. The parser capability can be loaded

Issues are returned as human-readable strings; nothing is raised and no
state is mutated, so the caller decides how to count retries.
"""

from collections.abc import Sequence
from pathlib import Path

from agenda_alerts.config.logging_config import get_logger
from agenda_alerts.domain.exceptions import ConfigurationError
from agenda_alerts.domain.protocols import ParserLoaderProtocol

logger = get_logger(__name__)


def _missing_sources(sources: Sequence[str]) -> list[str]:
    return [source for source in sources if not Path(source).exists()]


def validate_preconditions(
    sources: Sequence[str],
    parser_loader: ParserLoaderProtocol | None,
) -> list[str]:
    """Return the ordered list of unresolved issues (empty list = pass).

    Args:
        sources: Configured agenda source paths
        parser_loader: Loader for the external parser, or None if unset

    Returns:
        Issue descriptions
    """
    if not sources:
        return ["No agenda sources are configured"]

    missing = _missing_sources(sources)
    if missing:
        return [f"Agenda source does not exist: {source}" for source in missing]

    if parser_loader is None:
        return ["No agenda parser is configured"]

    try:
        parser_loader.load()
    except ConfigurationError as exc:
        return [f"Agenda parser is unavailable: {exc}"]
    except Exception as exc:  # noqa: BLE001
        logger.exception("parser_load_failed")
        return [f"Agenda parser failed to load: {exc}"]

    return []


__all__ = ["validate_preconditions"]
