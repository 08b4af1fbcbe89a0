"""Core error types shared by every stage of report generation."""

from dashreport.core.errors import (
    AssemblyError,
    ConfigurationError,
    DashboardFetchError,
    DashReportError,
    ExitCode,
    ImageFetchError,
    MalformedTemplateQuery,
    PanelFetchFailure,
    ReportGenerationError,
    ResolverUpstreamError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "AssemblyError",
    "ConfigurationError",
    "DashboardFetchError",
    "DashReportError",
    "ExitCode",
    "ImageFetchError",
    "MalformedTemplateQuery",
    "PanelFetchFailure",
    "ReportGenerationError",
    "ResolverUpstreamError",
    "format_error_message",
    "main_with_error_handling",
]
