"""
Core Exceptions
================

Custom exceptions for the ticket RAG pipeline.

Every exception carries a ``kind`` naming its category in the error
taxonomy (Database, VectorDatabase, EmbeddingService, RerankService,
LLMService, Configuration, Validation, NotFound, Permission, Network,
Internal). Provider errors are raised with their originating kind and
propagate unchanged through the pipeline to the caller.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    kind = "Internal"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serializable view for boundary layers."""
        return {"kind": self.kind, "message": self.message, "details": self.details}


class InternalException(ApplicationException):
    """Unexpected internal failure."""

    kind = "Internal"


class DatabaseException(ApplicationException):
    """Exception for relational storage failures."""

    kind = "Database"


class ValidationException(ApplicationException):
    """Exception for invalid input, raised before any provider is called."""

    kind = "Validation"

    def __init__(self, field: str, message: str, details: Optional[dict] = None):
        self.field = field
        super().__init__(f"{field}: {message}", details or {"field": field})


class DomainException(ValidationException):
    """Domain rule violation (e.g. illegal status transition), reported as a Validation error."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    kind = "NotFound"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class PermissionException(ApplicationException):
    """Exception when an action is not permitted."""

    kind = "Permission"

    def __init__(self, action: str, details: Optional[dict] = None):
        self.action = action
        super().__init__(f"Permission denied: {action}", details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors. Fatal at startup."""

    kind = "Configuration"


class NetworkException(ApplicationException):
    """Exception for transport failures and timeouts of provider calls."""

    kind = "Network"

    def __init__(
        self,
        message: str,
        service_name: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        if service_name:
            message = f"{service_name}: {message}"
        super().__init__(message, details)


class ExternalServiceException(ApplicationException):
    """Base exception for malformed responses or failures of a provider backend."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class EmbeddingServiceException(ExternalServiceException):
    """Exception for embedding provider failures."""

    kind = "EmbeddingService"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Embedding Service", message, details)


class RerankServiceException(ExternalServiceException):
    """Exception for rerank provider failures."""

    kind = "RerankService"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Rerank Service", message, details)


class LLMException(ExternalServiceException):
    """Exception for LLM API failures."""

    kind = "LLMService"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class VectorStoreException(ExternalServiceException):
    """Exception for vector store failures."""

    kind = "VectorDatabase"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Vector Store", message, details)
