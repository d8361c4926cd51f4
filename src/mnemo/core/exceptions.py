"""
Custom exceptions for mnemo.

Crypto operations are all-or-nothing: any exception raised from the crypto
package means no plaintext was produced.
"""

from typing import List, Optional


class MnemoError(Exception):
    """Base exception for all mnemo errors."""
    pass


class ValidationError(MnemoError):
    """
    Malformed input sizes or ranges.

    Raised when:
    - Passphrase is shorter than 8 characters
    - DEK is not 32 bytes, or a key/nonce has an invalid length
    - Chunking, MMR or budget parameters are out of range
    """
    pass


class AuthenticationError(MnemoError):
    """
    AEAD tag mismatch.

    Raised when:
    - A wrapped DEK is unwrapped with the wrong KEK
    - A ciphertext, nonce or wrapped key has been tampered with
    - A vault is unlocked with the wrong passphrase
    """
    pass


class SecurityError(MnemoError):
    """
    Fatal failure of a security primitive. No fallback is attempted.

    Raised when:
    - The operating system random source is unavailable
    - Key derivation fails inside the KDF backend
    """
    pass


class VaultLockedError(SecurityError):
    """Raised when a locked vault session is asked to seal or open content."""
    pass


class ProcessingError(MnemoError):
    """
    Chunking or embedding failure. Retryable by the job queue.

    Raised when:
    - The embedding backend fails or returns malformed vectors
    - Vector dimensionality changes for a fixed model
    - A job exceeds its configured timeout
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class ProviderError(ProcessingError):
    """
    Error communicating with a model provider.

    Raised when:
    - Provider is unreachable or times out
    - Provider returns an error response
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class SynthesisError(ProcessingError):
    """
    Answer synthesizer reply does not match the required JSON shape.

    Raised when:
    - The reply is not valid JSON
    - Required fields are missing or have the wrong type
    """

    def __init__(self, message: str, validation_errors: Optional[List[str]] = None):
        super().__init__(message, retryable=False)
        self.validation_errors = validation_errors or []


class QueueTerminalError(MnemoError):
    """
    An embedding job exhausted its retries.

    Delivered through the queue's failure notification, never raised to the
    caller of add_job.
    """

    def __init__(self, job_id: str, attempts: int, cause: Optional[BaseException] = None):
        super().__init__(f"Job {job_id} failed after {attempts} attempts: {cause}")
        self.job_id = job_id
        self.attempts = attempts
        self.cause = cause


class ConfigError(MnemoError):
    """
    Error in configuration.

    Raised when:
    - Configuration file is missing or invalid
    - Configuration values are out of valid range
    """
    pass
