"""
Logging configuration for the step-mapping and self-healing engine.

Structured JSON logs are written per component (step mapping and healing
sessions), with journey context attached through a logger adapter.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import asdict, is_dataclass
from enum import Enum


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    EXTRA_FIELDS = ("journey_id", "test_case", "operation", "phase", "duration",
                    "success", "error_code", "metadata")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        for name in self.EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data['exception'] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        return json.dumps(log_data, default=self._json_serializer)

    def _json_serializer(self, obj):
        """Custom JSON serializer for complex objects."""
        if is_dataclass(obj):
            return asdict(obj)
        elif isinstance(obj, Enum):
            return obj.value
        elif hasattr(obj, 'isoformat'):  # datetime objects
            return obj.isoformat()
        elif hasattr(obj, '__dict__'):
            return obj.__dict__
        else:
            return str(obj)


class HealingLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter for mapping and healing operations with journey context."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Merge the adapter's context into the record's extra fields."""
        kwargs.setdefault('extra', {})
        kwargs['extra'].update(self.extra)
        return msg, kwargs

    def log_operation_start(self, operation: str, **metadata):
        self.info(f"Starting {operation}", extra={
            'operation': operation,
            'phase': 'start',
            'metadata': metadata
        })

    def log_operation_success(self, operation: str, duration: float, **metadata):
        self.info(f"Completed {operation} successfully", extra={
            'operation': operation,
            'phase': 'complete',
            'success': True,
            'duration': duration,
            'metadata': metadata
        })

    def log_operation_failure(self, operation: str, duration: float, error: str,
                              error_code: Optional[str] = None, **metadata):
        self.error(f"Failed {operation}: {error}", extra={
            'operation': operation,
            'phase': 'complete',
            'success': False,
            'duration': duration,
            'error_code': error_code,
            'metadata': metadata
        })


COMPONENTS = ("mapping", "healing")


def _rotating_handler(path: Path, max_mb: int, backup_count: int, level: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_mb * 1024 * 1024, backupCount=backup_count)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_healing_logging(log_level: str = "INFO", log_dir: str = "logs") -> Dict[str, logging.Logger]:
    """
    Set up structured logging for the engine.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory to store log files

    Returns:
        Dictionary of configured component loggers
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    structured_formatter = StructuredFormatter()
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(level)

    all_logs_handler = _rotating_handler(log_path / "journeyheal_all.log", 10, 5, logging.DEBUG, structured_formatter)
    error_handler = _rotating_handler(log_path / "errors.log", 5, 10, logging.ERROR, structured_formatter)
    component_handlers = {
        "mapping": _rotating_handler(log_path / "mapping.log", 10, 5, logging.INFO, structured_formatter),
        "healing": _rotating_handler(log_path / "healing_operations.log", 10, 10, logging.INFO,
                                     structured_formatter),
    }

    root_logger.addHandler(console_handler)
    root_logger.addHandler(all_logs_handler)

    loggers = {}
    for component in COMPONENTS:
        component_logger = logging.getLogger(f"healing.{component}")
        for handler in component_logger.handlers[:]:
            component_logger.removeHandler(handler)
        component_logger.addHandler(component_handlers[component])
        component_logger.addHandler(error_handler)
        loggers[component] = component_logger

    return loggers


def get_healing_logger(component: str, journey_id: Optional[str] = None,
                       test_case: Optional[str] = None) -> HealingLoggerAdapter:
    """
    Get a logger adapter with journey context.

    Args:
        component: Component name (mapping or healing)
        journey_id: Optional journey being mapped or healed
        test_case: Optional test case name

    Returns:
        HealingLoggerAdapter instance
    """
    logger = logging.getLogger(f"healing.{component}")

    extra = {}
    if journey_id:
        extra['journey_id'] = journey_id
    if test_case:
        extra['test_case'] = test_case

    return HealingLoggerAdapter(logger, extra)
