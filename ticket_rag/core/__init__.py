"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from ticket_rag.core.exceptions import (
    ApplicationException,
    DomainException,
    InternalException,
    DatabaseException,
    ValidationException,
    ResourceNotFoundException,
    PermissionException,
    ConfigurationException,
    NetworkException,
    ExternalServiceException,
    EmbeddingServiceException,
    RerankServiceException,
    LLMException,
    VectorStoreException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "InternalException",
    "DatabaseException",
    "ValidationException",
    "ResourceNotFoundException",
    "PermissionException",
    "ConfigurationException",
    "NetworkException",
    "ExternalServiceException",
    "EmbeddingServiceException",
    "RerankServiceException",
    "LLMException",
    "VectorStoreException",
]
