"""
payload_noise - turn a JSON object into a "noisy" envelope and back.

Every field value is AES-CBC encrypted under a PBKDF2-derived key, every field
name gets a timestamp-dependent hash suffix, and the fields carry an HMAC tag
keyed with the long-term secret.
"""

from .codec import PayloadNoise, encode, decode
from .errors import (
    PayloadNoiseError,
    ConfigurationError,
    InputError,
    StructuralError,
    IntegrityError,
    ExpiredPayloadError,
    EncodingError,
    DecodingError,
    FieldDecodeError,
)
from .messages import Envelope, FieldOutcome
from .protocol import PROTOCOL_VERSION, dumps_envelope, loads_envelope, envelope_to_dict, envelope_from_dict

__version__ = "1.0.0"

__all__ = [
    'PayloadNoise',
    'encode',
    'decode',
    'Envelope',
    'FieldOutcome',
    'PROTOCOL_VERSION',
    'dumps_envelope',
    'loads_envelope',
    'envelope_to_dict',
    'envelope_from_dict',
    'PayloadNoiseError',
    'ConfigurationError',
    'InputError',
    'StructuralError',
    'IntegrityError',
    'ExpiredPayloadError',
    'EncodingError',
    'DecodingError',
    'FieldDecodeError',
]
