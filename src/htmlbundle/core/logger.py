"""
Logging and Diagnostics System

This module provides centralized logging configuration for htmlbundle and
the DiagnosticTracker that collects the located errors and warnings of a
single build.
"""

import logging
import logging.handlers
import os
import sys
import traceback
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .diagnostics import HTMLParseError


APP_NAME = "htmlbundle"

CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'
DETAILED_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s'

MB = 1024 * 1024


class BundleLogger:
    """
    Centralized logging setup for htmlbundle.

    Installs a console handler on the ``htmlbundle`` logger and, when a log
    directory is given, a rotating detailed log plus an errors-only log.
    Library modules only ever call ``logging.getLogger(__name__)``.
    """

    def __init__(self, log_dir: Optional[str] = None, app_name: str = APP_NAME):
        """
        Args:
            log_dir: Directory to store log files (None for console only)
            app_name: Name of the package logger
        """
        self.log_dir = Path(log_dir) if log_dir else None
        self.app_name = app_name
        self.loggers: Dict[str, logging.Logger] = {}

        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

    def _rotating_handler(self, suffix: str, level: int, max_bytes: int, backups: int) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / f"{self.app_name}{suffix}.log",
            maxBytes=max_bytes,
            backupCount=backups,
            encoding='utf-8',
        )
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        return handler

    def setup_logger(self, level: int = logging.INFO) -> logging.Logger:
        """
        Install handlers on the package logger.

        Calling this again for a logger that already has handlers changes
        nothing, so repeated builds in one process do not double their output.

        Args:
            level: Console logging level (default: INFO)

        Returns:
            The package logger
        """
        logger = logging.getLogger(self.app_name)
        logger.setLevel(min(level, logging.DEBUG) if self.log_dir is not None else level)
        if logger.handlers:
            return logger

        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
        logger.addHandler(console)

        if self.log_dir is not None:
            logger.addHandler(self._rotating_handler('', logging.DEBUG, 10 * MB, 5))
            logger.addHandler(self._rotating_handler('_errors', logging.ERROR, 5 * MB, 3))

        self.loggers[self.app_name] = logger
        return logger

    def get_logger(self, name: str) -> logging.Logger:
        """Logger for one component, below the package logger."""
        full_name = f"{self.app_name}.{name}"
        return self.loggers.setdefault(full_name, logging.getLogger(full_name))

    def log_system_info(self):
        logger = self.get_logger('system')
        logger.debug(f"{self.app_name} logging initialized")
        logger.debug(f"Python {sys.version.split()[0]} on {sys.platform}, cwd {os.getcwd()}")
        if self.log_dir is not None:
            logger.debug(f"Log directory: {self.log_dir.absolute()}")


@dataclass
class TrackedIssue:
    """One error or warning recorded during a build."""
    id: str
    message: str
    type: str = 'Warning'
    context: Optional[str] = None
    path: Optional[str] = None
    diagnostic: Optional[HTMLParseError] = None
    traceback: str = ''
    additional_info: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def log_line(self) -> str:
        if self.diagnostic is not None:
            line = f"[{self.id}] {self.diagnostic.render()}"
        elif self.type != 'Warning':
            line = f"[{self.id}] {self.type}: {self.message}"
        else:
            line = f"[{self.id}] {self.message}"
        if self.context and self.diagnostic is None:
            line += f" (Context: {self.context})"
        if self.path and self.diagnostic is None:
            line += f" (Path: {self.path})"
        return line

    def report_lines(self) -> List[str]:
        lines = [f"[{self.id}] {self.timestamp}"]
        if self.type != 'Warning':
            lines.append(f"Type: {self.type}")
        lines.append(self.diagnostic.render() if self.diagnostic is not None else f"Message: {self.message}")
        if self.context:
            lines.append(f"Context: {self.context}")
        if self.path:
            lines.append(f"Path: {self.path}")
        if self.traceback:
            lines.append(f"Traceback:\n{self.traceback}")
        return lines


class DiagnosticTracker:
    """
    Collects the errors and warnings of one build.

    Located HTML diagnostics keep their HTMLParseError so callers can inspect
    document, line and column; everything else is recorded with its
    exception type and context.
    """

    def __init__(self, logger: logging.Logger, suppress_errors: bool = False):
        self.logger = logger
        self.suppress_errors = suppress_errors
        self.errors: List[TrackedIssue] = []
        self.warnings: List[TrackedIssue] = []

    def _next_id(self, prefix: str, count: int) -> str:
        return f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{count:03d}"

    def _record_error(self, issue: TrackedIssue) -> str:
        self.errors.append(issue)
        if self.suppress_errors:
            self.logger.debug(issue.log_line())
        else:
            self.logger.error(issue.log_line())
        if issue.traceback:
            self.logger.debug(f"[{issue.id}] Full traceback:\n{issue.traceback}")
        return issue.id

    def report(self, diagnostic: HTMLParseError) -> str:
        """
        Record a located HTML diagnostic.

        Returns:
            Error ID for tracking
        """
        return self._record_error(TrackedIssue(
            id=self._next_id('ERR', len(self.errors)),
            message=diagnostic.message,
            type=type(diagnostic).__name__,
            context=diagnostic.reason,
            path=diagnostic.document,
            diagnostic=diagnostic,
            additional_info=diagnostic.to_dict(),
        ))

    def log_error(self,
                  error: Exception,
                  context: Optional[str] = None,
                  path: Optional[str] = None,
                  additional_info: Optional[Dict[str, Any]] = None) -> str:
        """
        Record a failed stage or file.

        Args:
            error: The exception describing the failure
            context: Stage where the failure happened ('script', 'css', ...)
            path: Registry key of the file being processed
            additional_info: Extra details kept in the build report

        Returns:
            Error ID for tracking
        """
        if isinstance(error, HTMLParseError):
            return self.report(error)
        return self._record_error(TrackedIssue(
            id=self._next_id('ERR', len(self.errors)),
            message=str(error),
            type=type(error).__name__,
            context=context,
            path=path,
            traceback=traceback.format_exc() if sys.exc_info()[0] is not None else '',
            additional_info=additional_info or {},
        ))

    def log_warning(self, message: str, context: Optional[str] = None, path: Optional[str] = None) -> str:
        issue = TrackedIssue(id=self._next_id('WARN', len(self.warnings)),
                             message=message, context=context, path=path)
        self.warnings.append(issue)
        self.logger.warning(issue.log_line())
        return issue.id

    @property
    def diagnostics(self) -> List[HTMLParseError]:
        return [e.diagnostic for e in self.errors if e.diagnostic is not None]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def get_error_summary(self) -> Dict[str, Any]:
        """Counts per error type plus the most recent errors and warnings."""
        return {
            'total_errors': len(self.errors),
            'total_warnings': len(self.warnings),
            'error_types': dict(Counter(e.type for e in self.errors)),
            'recent_errors': self.errors[-5:],
            'recent_warnings': self.warnings[-5:],
        }

    def save_error_report(self, output_path: str):
        """
        Write every recorded error and warning to a text report.

        Args:
            output_path: Path of the report file
        """
        lines = [
            "HTMLBUNDLE BUILD REPORT",
            "=" * 50,
            "",
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Total Errors: {len(self.errors)}",
            f"Total Warnings: {len(self.warnings)}",
        ]
        for title, issues in (("ERRORS", self.errors), ("WARNINGS", self.warnings)):
            if not issues:
                continue
            lines += ["", f"{title}:", "-" * 30]
            for issue in issues:
                lines += [""] + issue.report_lines() + ["-" * 30]
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write('\n'.join(lines) + '\n')
            self.logger.info(f"Build report saved to: {output_path}")
        except OSError as e:
            self.logger.error(f"Failed to save build report: {e}")


_logger_instance: Optional[BundleLogger] = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger below the package logger.

    Unlike ``initialize_logging`` this installs no handlers, so library
    use stays silent unless the application configures logging.
    """
    global _logger_instance

    if _logger_instance is None:
        _logger_instance = BundleLogger()
    if name:
        return _logger_instance.get_logger(name)
    return logging.getLogger(APP_NAME)


def initialize_logging(log_dir: Optional[str] = None, level: int = logging.INFO):
    """
    Configure console (and optionally file) logging for htmlbundle.

    Args:
        log_dir: Directory for log files (None for console only)
        level: Console logging level
    """
    global _logger_instance
    _logger_instance = BundleLogger(log_dir)
    _logger_instance.setup_logger(level)
    _logger_instance.log_system_info()


def create_diagnostic_tracker(logger_name: Optional[str] = None,
                              suppress_errors: bool = False) -> DiagnosticTracker:
    """
    Create a diagnostic tracker for one build.

    Args:
        logger_name: Component logger name, 'build' by default
        suppress_errors: Log collected errors at DEBUG instead of ERROR

    Returns:
        DiagnosticTracker instance
    """
    return DiagnosticTracker(get_logger(logger_name or 'build'), suppress_errors=suppress_errors)
