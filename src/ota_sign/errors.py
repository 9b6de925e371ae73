"""Exception hierarchy for OTA payload signing."""


class OtaSignError(Exception):
    """Base class for all signing and verification errors."""


class InvalidDigestLengthError(OtaSignError, ValueError):
    """A digest does not have the expected fixed size."""


class InvalidArgumentError(OtaSignError, ValueError):
    """A caller passed an argument outside its valid range."""


class ConfigError(OtaSignError, ValueError):
    """A configuration file cannot be read or fails validation."""


class KeyUnreadableError(OtaSignError):
    """A key file could not be read."""


class KeyMalformedError(OtaSignError):
    """A key file was read but does not hold a usable RSA key."""


class SigningBackendError(OtaSignError):
    """The RSA transform failed for a given key."""


class MalformedBlobError(OtaSignError, ValueError):
    """A signature blob cannot be decoded."""


class PayloadFormatError(OtaSignError, ValueError):
    """A payload container is structurally invalid."""


class PayloadIOError(OtaSignError, OSError):
    """A payload container could not be read or written."""


class InvalidStateError(OtaSignError):
    """A signing session step was called out of order."""


class LayoutInvariantViolation(AssertionError):
    """Predicted and actual layout disagree.

    Raised when the predicted signature blob length differs from the blob
    actually produced, or when the metadata size changes between the unsigned
    and signed writes. These indicate a defect in this package, not bad input.
    """
