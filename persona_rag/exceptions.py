"""
Custom exceptions for the persona RAG backend.
Each exception carries the HTTP status the API maps it to.
"""

from typing import Optional


class PersonaRagError(Exception):
    """Base exception for persona_rag."""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(PersonaRagError):
    """Resource missing or outside the caller's organization."""

    status_code = 404
    error = "not_found"

    def __init__(self, resource: str = "Resource", resource_id: Optional[str] = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(message)


class ConfigurationMissingError(PersonaRagError):
    """A credential or endpoint needed for the operation is not configured."""

    status_code = 503
    error = "configuration_missing"

    def __init__(self, setting: str):
        self.setting = setting
        super().__init__(f"{setting} is not configured")


class ProviderFailureError(PersonaRagError):
    """An embedding or chat-completion call failed."""

    status_code = 502
    error = "provider_failure"

    def __init__(self, provider: str, detail: str = ""):
        self.provider = provider
        message = f"{provider} call failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ValidationError(PersonaRagError):
    """Validation failed."""

    status_code = 422
    error = "validation_error"

    def __init__(self, message: str = "Validation failed", field: Optional[str] = None):
        if field:
            message = f"Validation failed for field '{field}': {message}"
        super().__init__(message)
