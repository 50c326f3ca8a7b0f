"""Error types raised while migrating organization secrets.

Run-level errors (authentication, public key, listing) abort the whole run.
Per-secret errors are caught by the orchestrator and recorded as a failed
outcome for that secret only.
"""

from typing import Optional


class SecretMigrationError(Exception):
    """Base class for every error raised by the migrator"""


class ConfigurationError(SecretMigrationError, ValueError):
    """Missing or invalid configuration"""


class APIError(SecretMigrationError):
    """The GitHub API answered with an unexpected status"""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class TransientAPIError(APIError):
    """Network failure, rate limit or server error that outlived its retries"""


class AuthenticationError(APIError):
    """Credentials were rejected"""


class KeyUnavailableError(SecretMigrationError):
    """The destination public key could not be fetched or is malformed"""


class IncompleteListingError(SecretMigrationError):
    """A paginated listing returned fewer items than its total_count"""


class ScopeResolutionError(SecretMigrationError):
    """Selected repositories of one secret could not be translated"""


class EncryptionError(SecretMigrationError):
    """Sealing a secret value failed"""


class UpsertError(SecretMigrationError):
    """Creating or updating a secret in the destination failed"""


class MissingValueError(SecretMigrationError):
    """No plaintext value was supplied for a secret"""


# Errors no secret can recover from
FATAL_ERRORS = (AuthenticationError, KeyUnavailableError, IncompleteListingError)
