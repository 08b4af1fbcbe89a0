"""
Error types for report generation.

Every failure raised by the pipeline derives from ``DashReportError`` so callers
(API, CLI) can handle them uniformly. Each error carries an exit code used by
the CLI.

Exit Codes:
- 0: Success
- 10: Configuration error
- 11: Upstream error (Grafana, metrics API or renderer failure)
- 12: Template query error
- 13: Document assembly error
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    CONFIG_ERROR = 10
    UPSTREAM_ERROR = 11
    TEMPLATE_ERROR = 12
    ASSEMBLY_ERROR = 13
    UNKNOWN_ERROR = 127


class DashReportError(Exception):
    """Base exception for report errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(DashReportError):
    """Raised for invalid settings or layout files."""

    exit_code = ExitCode.CONFIG_ERROR


class MalformedTemplateQuery(DashReportError):
    """Raised when a templating query is not of the form ``label_values(metric, label)``."""

    exit_code = ExitCode.TEMPLATE_ERROR


class ResolverUpstreamError(DashReportError):
    """Raised when the series-label API fails or answers with an unexpected payload."""

    exit_code = ExitCode.UPSTREAM_ERROR


class DashboardFetchError(DashReportError):
    """Raised when the dashboard JSON cannot be fetched or decoded."""

    exit_code = ExitCode.UPSTREAM_ERROR


class PanelFetchFailure:
    """One failed panel image fetch."""

    __slots__ = ("panel_id", "reason")

    def __init__(self, panel_id: int, reason: str) -> None:
        self.panel_id = panel_id
        self.reason = reason

    def __repr__(self) -> str:
        return f"PanelFetchFailure(panel_id={self.panel_id!r}, reason={self.reason!r})"


class ImageFetchError(DashReportError):
    """Aggregate of every panel image that could not be fetched."""

    exit_code = ExitCode.UPSTREAM_ERROR

    def __init__(self, failures: list[PanelFetchFailure]):
        self.failures = list(failures)
        panel_ids = [f.panel_id for f in self.failures]
        super().__init__(
            f"{len(self.failures)} panel image(s) failed to render",
            details={"panel_ids": panel_ids},
        )


class AssemblyError(DashReportError):
    """Raised for font, layout or write failures while building the PDF."""

    exit_code = ExitCode.ASSEMBLY_ERROR


class ReportGenerationError(DashReportError):
    """Raised by the orchestrator, naming the stage that failed.

    The underlying error is chained as ``__cause__``.
    """

    def __init__(self, stage: str, cause: Exception):
        self.stage = stage
        message = f"report generation failed during {stage}: {cause}"
        details = {"stage": stage}
        if isinstance(cause, DashReportError):
            details.update(cause.details)
            self.exit_code = cause.exit_code
        super().__init__(message, details=details)


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI entry points that converts exceptions to exit codes.

    Exit codes:
        - DashReportError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except DashReportError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        details=e.details,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: DashReportError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
