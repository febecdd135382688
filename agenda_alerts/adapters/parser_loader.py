"""Parser loaders resolving the agenda parser capability."""

from __future__ import annotations

import importlib
from typing import Any

from agenda_alerts.config.logging_config import get_logger
from agenda_alerts.domain.exceptions import ParserUnavailableError
from agenda_alerts.domain.protocols import AgendaParserProtocol, ParserLoaderProtocol

logger = get_logger(__name__)


class StaticParserLoader(ParserLoaderProtocol):
    """Loader wrapping an already constructed parser."""

    def __init__(self, parser: AgendaParserProtocol) -> None:
        self._parser = parser

    def load(self) -> AgendaParserProtocol:
        return self._parser


class ImportParserLoader(ParserLoaderProtocol):
    """Loads a parser from a ``"package.module:attribute"`` path.

    The attribute may be a parser instance, a class, or a zero-argument
    factory. The resolved parser is cached after the first successful load;
    failures are not cached so a dependency installed later is picked up on
    the next attempt.

    Example:
        >>> loader = ImportParserLoader("my_org_tools.agenda:OrgParser")
        >>> parser = loader.load()
    """

    def __init__(self, target: str) -> None:
        module_name, _, attribute = target.partition(":")
        if not module_name or not attribute:
            raise ValueError(
                f"Parser target must look like 'package.module:attribute', got {target!r}"
            )
        self._target = target
        self._module_name = module_name
        self._attribute = attribute
        self._parser: AgendaParserProtocol | None = None

    @property
    def target(self) -> str:
        return self._target

    def load(self) -> AgendaParserProtocol:
        if self._parser is not None:
            return self._parser

        try:
            module = importlib.import_module(self._module_name)
        except ImportError as exc:
            raise ParserUnavailableError(
                f"Parser module {self._module_name!r} cannot be imported: {exc}"
            ) from exc

        resolved: Any = getattr(module, self._attribute, None)
        if resolved is None:
            raise ParserUnavailableError(
                f"Module {self._module_name!r} has no attribute {self._attribute!r}"
            )

        parser: Any = resolved
        if isinstance(resolved, type) or not hasattr(resolved, "parse"):
            if not callable(resolved):
                raise ParserUnavailableError(
                    f"{self._target!r} is neither a parser nor a parser factory"
                )
            try:
                parser = resolved()
            except Exception as exc:  # noqa: BLE001
                raise ParserUnavailableError(
                    f"Parser factory {self._target!r} failed: {exc}"
                ) from exc

        if not isinstance(parser, AgendaParserProtocol):
            raise ParserUnavailableError(
                f"{self._target!r} does not provide a parse(source) method"
            )

        self._parser = parser
        logger.info("parser_loaded", target=self._target)
        return parser


__all__ = ["ImportParserLoader", "StaticParserLoader"]
