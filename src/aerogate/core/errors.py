#!/usr/bin/env python3
"""
AEROGATE ERROR TAXONOMY
-----------------------
Every rejection the admission engine can produce is one of five kinds.
Checkers raise these; only the AdmissionOrchestrator catches them and
turns them into a rejected AdmissionResult.

Author: AeroGate Team
Date: 2026-10-18
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    STRUCTURAL = "StructuralError"
    IMMUTABILITY = "ImmutabilityViolation"
    SAFETY = "SafetyViolation"
    EXTERNAL = "ExternalValidationError"
    PRECONDITION = "PreconditionError"


class AdmissionError(Exception):
    """
    Base class for a single, final rejection reason.

    Attributes:
        message: Human-readable explanation shown to the submitter.
        field: Dotted path of the offending field, when one can be named.
        old / new: Previous and incoming values for immutability errors.
        bound: Computed safe limit, so the caller can self-correct.
    """

    kind: ErrorKind = ErrorKind.STRUCTURAL

    def __init__(self, message: str, field: Optional[str] = None,
                 old: Any = None, new: Any = None, bound: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.old = old
        self.new = new
        self.bound = bound

    def __str__(self) -> str:
        return self.message


class StructuralError(AdmissionError):
    kind = ErrorKind.STRUCTURAL


class ImmutabilityViolation(AdmissionError):
    kind = ErrorKind.IMMUTABILITY

    def __init__(self, message: str, field: Optional[str] = None,
                 old: Any = None, new: Any = None):
        if field is not None and (old is not None or new is not None):
            message = f"{message}: field '{field}' old value {old!r}, new value {new!r}"
        super().__init__(message, field=field, old=old, new=new)


class SafetyViolation(AdmissionError):
    kind = ErrorKind.SAFETY


class ExternalValidationError(AdmissionError):
    kind = ErrorKind.EXTERNAL


class PreconditionError(AdmissionError):
    """Raised when an upstream mutation step has evidently not run."""
    kind = ErrorKind.PRECONDITION
