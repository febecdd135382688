"""Adapter package exports."""

from agenda_alerts.adapters.collection_runner import (
    InlineCollectionRunner,
    ThreadedCollectionRunner,
)
from agenda_alerts.adapters.parser_loader import ImportParserLoader, StaticParserLoader
from agenda_alerts.adapters.presenters import (
    CommandAlertPresenter,
    LoggingAlertPresenter,
)
from agenda_alerts.adapters.threading_timer import ThreadingTimer

__all__ = [
    "CommandAlertPresenter",
    "ImportParserLoader",
    "InlineCollectionRunner",
    "LoggingAlertPresenter",
    "StaticParserLoader",
    "ThreadedCollectionRunner",
    "ThreadingTimer",
]
