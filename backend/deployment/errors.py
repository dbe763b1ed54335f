"""
Exception types raised by the deploy pipeline.

Decryption errors are raised before anything touches the disk, so they are
always safe to report straight back to the caller. ConfigWriteError is the
only error raised after the pipeline has started mutating state, and even
then the atomic write guarantees the previous file is still in place.
"""


class DeployError(Exception):
    """Base class for deploy pipeline errors."""


class ConfigurationError(DeployError):
    """The agent is missing server-side configuration required to deploy."""


class DecryptionError(DeployError):
    """Base class for envelope decryption failures (never retryable)."""


class MalformedEncoding(DecryptionError):
    """Envelope is not valid base64."""


class MalformedEnvelope(DecryptionError):
    """Envelope is too short or is missing the Salted__ marker."""


class InvalidCiphertextLength(DecryptionError):
    """Ciphertext length is not a multiple of the cipher block size."""


class InvalidPadding(DecryptionError):
    """PKCS#7 padding check failed (wrong passphrase or tampered payload)."""


class ConfigWriteError(DeployError):
    """Writing the new configuration file failed; the old file is untouched."""
