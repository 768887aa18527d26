"""
Domain Exceptions for the Omega pipeline

Every exception derives from BaseOmegaException. Stage nodes raise these
inside their own boundary; the stage decorator turns them into entries of
``state["errors"]``, so none of them escape ``process_signal``.
"""


class BaseOmegaException(Exception):
    """Base exception for all pipeline errors"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Serialize for API responses"""
        return {
            "error": {
                "code": self.__class__.__name__,
                "message": self.message,
                "details": self.details
            }
        }


# =============================================================================
# Reasoning oracle
# =============================================================================

class OracleError(BaseOmegaException):
    """The reasoning oracle failed to produce a response"""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Oracle call failed: {reason}",
            details={"reason": reason}
        )


class OracleTimeout(OracleError):
    """The reasoning oracle did not answer in time"""

    def __init__(self, timeout_s: float):
        super().__init__(reason=f"timed out after {timeout_s:g}s")
        self.details["timeout_s"] = timeout_s


class OracleParseError(BaseOmegaException):
    """Oracle output could not be decoded as JSON"""

    def __init__(self, preview: str):
        super().__init__(
            message="Could not parse JSON from oracle output",
            details={"preview": preview[:200]}
        )


# =============================================================================
# Pipeline structure
# =============================================================================

class MissingStageInput(BaseOmegaException):
    """A stage was reached without the input it requires"""

    def __init__(self, stage: str, field: str):
        super().__init__(
            message=f"{stage} requires {field}",
            details={"stage": stage, "field": field}
        )


class TransitionTableError(BaseOmegaException):
    """The stage transition table is inconsistent"""

    def __init__(self, problem: str):
        super().__init__(
            message=f"Invalid transition table: {problem}",
            details={"problem": problem}
        )


# =============================================================================
# Drafts
# =============================================================================

class DraftNotFound(BaseOmegaException):
    """Feedback was given for a draft that does not exist"""

    def __init__(self, draft_id: str):
        super().__init__(
            message="Draft not found",
            details={"draft_id": draft_id}
        )
