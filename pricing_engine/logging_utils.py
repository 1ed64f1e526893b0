"""
Structured logging utilities for the price resolution engine.
Provides JSON-formatted logging for resolutions, rate refreshes and alerts.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import pytz
import structlog


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True
) -> structlog.stdlib.BoundLogger:
    """
    Configure stdlib logging and structlog for the engine.

    Module loggers and structlog events share the same handlers: stdout,
    plus log_file when given.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        json_format: JSON lines if True, human-readable console output otherwise

    Returns:
        The engine's structlog logger

    Raises:
        ValueError: Unknown level name
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger("pricing_engine")


class PricingLogger:
    """
    Emits the engine's structured events.

    Every event carries event_type and a UTC timestamp; metadata is merged
    into the event fields.
    """

    def __init__(self, logger: Optional[Any] = None):
        self.logger = logger or structlog.get_logger()

    def _emit(
        self,
        level: str,
        event: str,
        event_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        **fields: Any
    ) -> None:
        getattr(self.logger, level)(
            event,
            event_type=event_type,
            timestamp=datetime.now(pytz.UTC).isoformat(),
            **fields,
            **(metadata or {})
        )

    def log_resolution(
        self,
        product_id: str,
        found: bool,
        quantity: int,
        currency: str,
        customer_group_id: Optional[str] = None,
        price: Optional[float] = None,
        rule: Optional[str] = None,
        price_list_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        self._emit(
            "info", "price_resolution", "resolution", metadata,
            product_id=product_id,
            found=found,
            quantity=quantity,
            currency=currency,
            customer_group_id=customer_group_id,
            price=price,
            rule=rule,
            price_list_id=price_list_id,
        )

    def log_batch(
        self,
        requested: int,
        found: int,
        currency: str,
        latency_ms: float,
        rates_as_of: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Summary of one resolve_many call."""
        self._emit(
            "info", "price_batch", "batch", metadata,
            requested=requested,
            found=found,
            missing=requested - found,
            currency=currency,
            latency_ms=round(latency_ms, 2),
            rates_as_of=rates_as_of,
        )

    def log_rate_refresh(
        self,
        success: bool,
        source: str,
        currency_count: int,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Failed refreshes are logged at error level."""
        self._emit(
            "info" if success else "error", "rate_refresh", "rate_refresh", metadata,
            success=success,
            source=source,
            currency_count=currency_count,
            error_message=error_message,
        )

    def log_alert(
        self,
        alert_type: str,
        severity: str,
        message: str,
        value: Optional[float] = None,
        threshold: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Warning-severity alerts log at warning, anything else at error."""
        self._emit(
            "warning" if severity == "warning" else "error", "alert", "alert", metadata,
            alert_type=alert_type,
            severity=severity,
            message=message,
            value=value,
            threshold=threshold,
        )


def get_pricing_logger(name: str = "pricing_engine") -> PricingLogger:
    """Get a pricing logger bound to the named structlog logger."""
    return PricingLogger(structlog.get_logger(name))
