"""
exceptions.py

Error taxonomy for the personalization core.
ValidationError is fatal for a query; ProviderError and its subclasses are
recovered locally by the caller; DataIntegrityWarning is only ever logged.
Part of LifeTwin — Adaptive Personalization Core.
"""


class LifeTwinError(Exception):
    """Base exception for all LifeTwin errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serialize for logging or API responses."""
        return {
            "error": {
                "code": self.__class__.__name__,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(LifeTwinError):
    """A query is missing required input (query text or user id)."""

    def __init__(self, missing: list[str]):
        super().__init__(
            message="Invalid query: missing required fields",
            details={"missing": missing},
        )


class ProviderError(LifeTwinError):
    """An external collaborator (store, context provider, engine) failed."""


class EngineError(ProviderError):
    """A text-generation engine could not produce a response."""

    def __init__(self, engine: str, reason: str):
        super().__init__(
            message=f"Engine '{engine}' failed: {reason}",
            details={"engine": engine, "reason": reason},
        )


class LearningPipelineError(LifeTwinError):
    """A stage of the learning derivation pipeline failed."""

    def __init__(self, stage: str, event_id: str, cause: Exception):
        super().__init__(
            message=f"Learning pipeline failed at stage '{stage}'",
            details={"stage": stage, "event_id": event_id, "cause": str(cause)},
        )


class DataIntegrityWarning(UserWarning):
    """A stored event carried a malformed payload field that was defaulted."""
