"""
Typed errors for nshot

Every failure the access-counted store can report is one of these classes.
The HTTP layer maps them to status codes; nothing in the core signals errors
through return flags.
"""

from typing import Optional


class NShotError(Exception):
    """Base exception for all nshot errors"""

    error_code = "INTERNAL_ERROR"


class NotFoundError(NShotError):
    """Raised when an identifier (or its payload) is unknown"""

    error_code = "NOT_FOUND"

    def __init__(self, entry_id: str, detail: Optional[str] = None):
        self.entry_id = entry_id
        self.detail = detail
        message = f"Identifier not found: {entry_id}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ExhaustedError(NShotError):
    """Raised when an identifier exists but its budget has reached zero"""

    error_code = "EXHAUSTED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Identifier exhausted: {entry_id}")


class AlreadyExistsError(NShotError):
    """Raised when inserting an identifier that is already registered"""

    error_code = "ALREADY_EXISTS"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Identifier already exists: {entry_id}")


class PayloadTooLargeError(NShotError):
    """Raised when a payload exceeds the configured size cap"""

    error_code = "PAYLOAD_TOO_LARGE"

    def __init__(self, entry_id: str, size: int, limit: int):
        self.entry_id = entry_id
        self.size = size
        self.limit = limit
        super().__init__(f"Payload for {entry_id} is {size} bytes, limit is {limit}")


class UnsupportedCommandError(NShotError):
    """Raised for admin command names outside the supported set"""

    error_code = "UNSUPPORTED_COMMAND"

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unsupported admin command: {command}")


class InvalidRequestError(NShotError):
    """Raised for malformed client input (empty token, bad identifier)"""

    error_code = "INVALID_REQUEST"


class StorageError(NShotError):
    """Raised when the underlying database fails"""

    error_code = "STORAGE_ERROR"


class ConfigurationError(NShotError):
    """Raised for unreadable or malformed configuration"""

    error_code = "CONFIGURATION_ERROR"


class EntropyError(NShotError):
    """Raised when the system entropy source cannot produce identifiers"""

    error_code = "ENTROPY_ERROR"
