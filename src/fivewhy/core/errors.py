from __future__ import annotations


class FiveWhyError(RuntimeError):
    """Base error for the reasoning core."""


class ConfigError(FiveWhyError):
    pass


class FeatureDisabled(FiveWhyError):
    def __init__(self, feature: str) -> None:
        self.feature = feature
        super().__init__(f"feature_disabled:{feature}")


class InvalidRequest(FiveWhyError):
    pass


class EmptyQuery(InvalidRequest):
    pass


class MissingSessionId(InvalidRequest):
    pass


class MissingId(InvalidRequest):
    pass


class MissingVector(InvalidRequest):
    pass


class EmptyVector(InvalidRequest):
    pass


class PolicyError(FiveWhyError):
    pass


class BackendNotRegistered(FiveWhyError):
    def __init__(self, backend: str) -> None:
        self.backend = backend
        super().__init__(f"llm backend not registered: {backend}")


class MalformedModelOutput(FiveWhyError):
    def __init__(self, message: str, raw: str | None = None) -> None:
        self.raw = raw
        super().__init__(message)


class SessionNotFound(FiveWhyError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"session not found: {session_id}")


class Cancelled(FiveWhyError):
    def __init__(self, operation: str, reason: str = "cancelled") -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{reason}:{operation}")


class BackendFailure(FiveWhyError):
    """Wraps whatever a generation back end raised."""

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"backend_failure:{backend}: {message}")


class StoreFailure(FiveWhyError):
    """Wraps whatever a key/value or vector store raised."""

    def __init__(self, store: str, message: str) -> None:
        self.store = store
        super().__init__(f"store_failure:{store}: {message}")
