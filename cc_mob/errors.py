"""
Error types shared by the registry, credential store and gateway.
"""


class ValidationError(ValueError):
    """Malformed request creation (bad kind, non-object payload, missing fields)."""


class RequestNotFound(KeyError):
    """No request with the given id exists."""

    def __init__(self, request_id: str):
        super().__init__(request_id)
        self.request_id = request_id

    def __str__(self) -> str:
        return f"Request {self.request_id} not found"


class CredentialStoreError(RuntimeError):
    """The token file could not be read or written."""
