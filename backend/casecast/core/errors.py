# backend/casecast/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class CasecastError(Exception):
    """Base error; carries a stable code plus context for the caller."""

    code: str = "CASECAST_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        ctx = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({ctx})"


class SchemaError(CasecastError):
    """Identifier or date columns of a feed could not be located. Fatal."""

    code = "SCHEMA_ERROR"


class ParseError(CasecastError):
    """A date header or cell failed to parse. Recovered locally; kept on ParseReport.errors."""

    code = "PARSE_ERROR"


class ReconciliationError(CasecastError):
    """A required metric is wholly missing after coalescing. Fatal."""

    code = "RECONCILIATION_ERROR"


class InsufficientDataError(CasecastError):
    code = "INSUFFICIENT_DATA"


class FitConvergenceError(CasecastError):
    code = "FIT_CONVERGENCE"


__all__ = [
    "CasecastError",
    "SchemaError",
    "ParseError",
    "ReconciliationError",
    "InsufficientDataError",
    "FitConvergenceError",
]
