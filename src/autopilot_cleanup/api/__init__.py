"""Microsoft Graph API modules.

This package provides the HTTP client and the resource classes used to
talk to Windows Autopilot and Intune.

Classes:
    GraphClient: HTTP client with nextLink pagination and $batch support
    TokenManager: OAuth2 client credentials token management
    AutopilotRegistry: Autopilot identities (list, lookup, delete, sync)
    ManagedDeviceInventory: Intune managed devices (list, delete)

Exceptions:
    GraphError: Base exception for every error in this package
    ConfigurationError, AuthenticationError, APIError, NetworkError,
    CleanupError and their subclasses
"""
from .auth import CachedToken, TokenManager
from .autopilot import (
    AutopilotRegistry,
    ById,
    BySerial,
    BySerialExpanded,
    ListAll,
    RegistryQuery,
)
from .client import (
    AUTOPILOT_PAGINATION,
    MANAGED_DEVICES_PAGINATION,
    MAX_BATCH_REQUESTS,
    BatchRequest,
    BatchResponse,
    GraphClient,
    PaginationConfig,
)
from .exceptions import (
    AmbiguousMatchError,
    APIError,
    AuthenticationError,
    BatchLimitError,
    CleanupError,
    ConfigurationError,
    ConnectionError,
    DuplicateSerialError,
    ErrorCollector,
    GraphError,
    InputFileError,
    InvalidCredentialsError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
    TokenExpiredError,
    TokenFetchError,
    ValidationError,
)
from .managed_devices import ManagedDeviceInventory

__all__ = [
    # Auth
    "TokenManager",
    "CachedToken",
    # Client
    "GraphClient",
    "PaginationConfig",
    "BatchRequest",
    "BatchResponse",
    "AUTOPILOT_PAGINATION",
    "MANAGED_DEVICES_PAGINATION",
    "MAX_BATCH_REQUESTS",
    # Resources
    "AutopilotRegistry",
    "ManagedDeviceInventory",
    "RegistryQuery",
    "ById",
    "BySerial",
    "BySerialExpanded",
    "ListAll",
    # Exceptions
    "GraphError",
    "ConfigurationError",
    "AuthenticationError",
    "TokenFetchError",
    "TokenExpiredError",
    "InvalidCredentialsError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "CleanupError",
    "AmbiguousMatchError",
    "DuplicateSerialError",
    "BatchLimitError",
    "InputFileError",
    "ErrorCollector",
]
