from typing import Optional


class PayloadNoiseError(Exception):
    """Base class for every error raised by payload_noise."""
    pass


class ConfigurationError(PayloadNoiseError):
    """Raised when the long-term secret (or another setting) is missing or invalid."""
    pass


class InputError(PayloadNoiseError):
    """Raised when encode() is given something it cannot encode."""
    pass


class StructuralError(PayloadNoiseError):
    """Raised when a candidate envelope is missing a required field or is malformed."""
    pass


class IntegrityError(PayloadNoiseError):
    """Raised when the envelope tag does not match its fields (tampering, corruption or wrong secret)."""
    pass


class ExpiredPayloadError(PayloadNoiseError):
    """Raised when a decoder with a freshness window receives an envelope outside it."""
    pass


class EncodingError(PayloadNoiseError):
    """Raised when encoding fails for a reason other than bad input."""
    pass


class DecodingError(PayloadNoiseError):
    """Raised when decoding fails after validation, e.g. during key derivation."""
    pass


class FieldDecodeError(PayloadNoiseError):
    '''
    A single field could not be decrypted or parsed.
    Never raised out of decode(): it is handed to the diagnostic sink and kept on the FieldOutcome.
    '''

    def __init__(self, obfuscated_name: str, name: str, cause: Optional[BaseException] = None):
        self.obfuscated_name = obfuscated_name
        self.name = name
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"cannot decode field {obfuscated_name!r}{detail}")
