from typing import List, Optional


class CallIngestError(Exception):
    """Base class for everything the webhook pipeline raises."""


class AuthenticationError(CallIngestError):
    """Missing, malformed, stale or mismatched signature. Maps to 401."""


class MalformedPayloadError(CallIngestError):
    pass


class UnresolvedIdentityError(CallIngestError):
    """No strategy could attach the event to a household and relative."""

    def __init__(self, provider_call_id: Optional[str], message: str = "identity unresolved") -> None:
        super().__init__(message)
        self.provider_call_id = provider_call_id


class AmbiguousIdentityError(UnresolvedIdentityError):
    """Phone number belongs to several relatives and nothing corroborates a pick."""

    def __init__(self, provider_call_id: Optional[str], households: List[str]) -> None:
        super().__init__(provider_call_id, f"phone shared by {len(households)} households")
        self.households = households


class PersistenceWarning(CallIngestError):
    """A store write failed after the event was resolved."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause
