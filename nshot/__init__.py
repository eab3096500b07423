"""
nshot - N-time-use secret exchange

Stores opaque payloads under provisioned identifiers and lets each payload be
fetched only a bounded number of times.
"""

from .nshot_service import NShotService
from .models import AccessEntry, RegistrySnapshot, AdminCommand, MeteringPolicy, FetchResult, PushResult, AdminResult
from .errors import (
    NShotError,
    NotFoundError,
    ExhaustedError,
    AlreadyExistsError,
    PayloadTooLargeError,
    UnsupportedCommandError,
    InvalidRequestError,
    StorageError,
    ConfigurationError,
    EntropyError,
)

__version__ = "0.1.0"

__all__ = [
    "NShotService",
    "AccessEntry",
    "RegistrySnapshot",
    "AdminCommand",
    "MeteringPolicy",
    "FetchResult",
    "PushResult",
    "AdminResult",
    "NShotError",
    "NotFoundError",
    "ExhaustedError",
    "AlreadyExistsError",
    "PayloadTooLargeError",
    "UnsupportedCommandError",
    "InvalidRequestError",
    "StorageError",
    "ConfigurationError",
    "EntropyError",
]
