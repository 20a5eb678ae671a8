"""
Error kinds raised inside the engine.

Every error here is recoverable. Engine internals raise the exception
types below; LabSession catches LabError at its boundary and hands the
caller an EngineResult tagged with the matching ErrorKind.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Tag carried by a failed EngineResult."""
    INCOMPLETE_PRECONDITION = "IncompletePrecondition"
    INVALID_SETUP_VALUE = "InvalidSetupValue"
    NO_REFERENCE_DATA = "NoReferenceData"
    DIVIDE_BY_ZERO = "DivideByZero"
    UNDEFINED_RESULT = "UndefinedResult"
    INCOMPLETE_RECORD = "IncompleteRecord"


class LabError(Exception):
    """Base class for all engine errors."""
    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class IncompletePrecondition(LabError):
    """Raised when an action is attempted before its step allows it."""
    kind = ErrorKind.INCOMPLETE_PRECONDITION


class InvalidSetupValue(LabError):
    """Raised when a manual setup value does not match the required constant."""
    kind = ErrorKind.INVALID_SETUP_VALUE


class NoReferenceData(LabError):
    """Raised when no reference entry exists for a component/condition pair."""
    kind = ErrorKind.NO_REFERENCE_DATA

    def __init__(self, component: str, condition: str):
        super().__init__(f"No reference data for {component!r} at {condition!r}")
        self.component = component
        self.condition = condition


class DivideByZero(LabError):
    """Raised when a formula denominator is zero."""
    kind = ErrorKind.DIVIDE_BY_ZERO


class UndefinedResult(LabError):
    """Raised when a formula has no finite result for its inputs."""
    kind = ErrorKind.UNDEFINED_RESULT


class IncompleteRecord(LabError):
    """Raised when a ledger append is attempted with missing data."""
    kind = ErrorKind.INCOMPLETE_RECORD
