from __future__ import annotations

import logging
from typing import cast

import structlog
from structlog.typing import EventDict, WrappedLogger

from staked_court.observability.redaction import redact_sensitive

LOGGER_NAMESPACE = "staked_court"


class RedactionProcessor:
    def __call__(self, _: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
        return cast(EventDict, redact_sensitive(dict(event_dict)))


class CourtNameProcessor:
    """Tags every record with the court deployment it came from."""

    def __init__(self, court_name: str) -> None:
        self.court_name = court_name

    def __call__(self, _: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("court_name", self.court_name)
        return event_dict


def configure_logging(level: str = "INFO", court_name: str = "staked-court") -> None:
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            CourtNameProcessor(court_name),
            RedactionProcessor(),
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
    )


def get_logger(name: str = LOGGER_NAMESPACE) -> structlog.stdlib.BoundLogger:
    if name != LOGGER_NAMESPACE and not name.startswith(f"{LOGGER_NAMESPACE}."):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name).bind(logger=name))
