"""
Exception hierarchy for the Lighthouse audit pipeline.

Every error raised on purpose by this package derives from `PipelineError`, so
the orchestrator can tell its own failures apart from SDK or runtime errors
when it logs them at the top level.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for all errors raised by the pipeline."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ConfigValidationError(PipelineError):
    """The static configuration failed schema or consistency checks."""


class CatalogFetchError(PipelineError):
    """The external subject catalog could not be fetched or parsed."""


class ReportFieldMissing(PipelineError):
    """An audit report lacks a category, check or field the schema requires."""


class AuditError(PipelineError):
    """The auditor exited unsuccessfully or produced unusable output."""


class WarehouseError(PipelineError):
    """A warehouse statement failed or was aborted."""
