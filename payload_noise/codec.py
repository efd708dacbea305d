"""
Encoder/decoder for noisy envelopes.

encode: payload -> (fresh timestamp, salt, iv) -> derived key -> per field
        (obfuscated name, AES-CBC ciphertext) -> HMAC tag over the fields.
decode: structure check -> tag check -> [freshness check] -> derived key ->
        per field decrypt; a bad field yields None instead of failing the call.
"""
import json
import logging
import time
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

from .config import Settings
from .crypto import (
    ENC, SALT_SIZE, IV_SIZE,
    random_bytes, derive_key, aes_cbc_encrypt, aes_cbc_decrypt,
    obfuscate_name, recover_name, compute_tag, verify_tag,
)
from .errors import (
    PayloadNoiseError, ConfigurationError, InputError, StructuralError,
    IntegrityError, ExpiredPayloadError, EncodingError, DecodingError, FieldDecodeError,
)
from .messages import Envelope, FieldOutcome
from .protocol import (
    PROTOCOL_VERSION, canonical_json, fields_digest_input,
    envelope_to_dict, envelope_from_dict, loads_envelope,
)

logger = logging.getLogger(__name__)

FieldErrorSink = Callable[[FieldDecodeError], None]


def now_ms() -> int:
    '''Return current time in epoch milliseconds'''
    return time.time_ns() // 1_000_000


def log_field_error(err: FieldDecodeError) -> None:
    ''' Default diagnostic sink: log the failed field and carry on '''
    logger.error("Error decoding field %s: %s", err.obfuscated_name, err.cause)


def _restage(stage: str, exc: PayloadNoiseError) -> PayloadNoiseError:
    # same error kind, message prefixed with the failing stage
    return exc.__class__(f"{stage} failed: {exc}")


class PayloadNoise:
    ''' Symmetric encoder/decoder bound to one long-term secret '''

    def __init__(self, key, max_age_ms: Optional[int] = None,
                 on_field_error: Optional[FieldErrorSink] = None,
                 clock: Optional[Callable[[], int]] = None):
        '''
        Input:
            - key: long-term shared secret, non-empty str or bytes
            - max_age_ms: reject envelopes whose timestamp is further than this from now (None = no check)
            - on_field_error: called with a FieldDecodeError for every field that fails to decode
            - clock: returns epoch ms, used for timestamps and the freshness check
        Raises ConfigurationError immediately when the key is missing.
        '''
        if not key:
            raise ConfigurationError(
                "Encryption key is required. Set PAYLOAD_NOISE_KEY environment variable or provide a key."
            )
        if not isinstance(key, (str, bytes, bytearray)):
            raise ConfigurationError(f"Encryption key must be str or bytes, got {type(key).__name__}")
        if max_age_ms is not None and max_age_ms <= 0:
            raise ConfigurationError(f"max_age_ms must be positive, got {max_age_ms}")
        self._key = bytes(key) if isinstance(key, bytearray) else key
        self.max_age_ms = max_age_ms
        self.on_field_error = on_field_error or log_field_error
        self._clock = clock or now_ms

    @classmethod
    def from_env(cls, settings: Optional[Settings] = None, **kwargs) -> "PayloadNoise":
        ''' Build an instance from PAYLOAD_NOISE_* environment variables (and .env) '''
        settings = settings or Settings.from_env()
        kwargs.setdefault("max_age_ms", settings.max_age_ms)
        return cls(settings.require_key(), **kwargs)

    def __repr__(self):
        return f"{self.__class__.__name__}(max_age_ms={self.max_age_ms!r})"

    # ------------------------------------------------------------------ encode

    def encode(self, payload: Mapping) -> Envelope:
        '''
        Encrypt every top-level field of payload into a new Envelope.
        Nested values are serialized whole, they are not transformed field by field.
        Raises InputError for a non-mapping payload, a bad field name or a non-JSON value.
        '''
        try:
            return self._encode(payload)
        except PayloadNoiseError as exc:
            logger.error("Encoding error details: %s", exc)
            raise _restage("encoding", exc) from exc
        except Exception as exc:
            logger.exception("Encoding error details")
            raise EncodingError(f"encoding failed: {exc}") from exc

    def _encode(self, payload) -> Envelope:
        if not isinstance(payload, Mapping):
            raise InputError(f"Payload must be an object, got {type(payload).__name__}")

        # serialize everything up front so bad input is refused before any crypto work
        plaintexts = []
        for name, value in payload.items():
            if not isinstance(name, str) or not name:
                raise InputError(f"field names must be non-empty strings, got {name!r}")
            try:
                text = canonical_json(value)
            except (TypeError, ValueError) as exc:
                raise InputError(f"value of field {name!r} is not JSON serializable: {exc}") from exc
            plaintexts.append((name, text))

        timestamp = self._clock()
        salt = random_bytes(SALT_SIZE)
        iv = random_bytes(IV_SIZE)
        derived = derive_key(self._key, salt)

        fields: Dict[str, str] = {}
        for name, text in plaintexts:
            # every field shares (derived, iv) in protocol 1.0
            fields[obfuscate_name(name, timestamp)] = aes_cbc_encrypt(derived, iv, text.encode(ENC))

        # tag last, over the fields exactly as they will be transmitted
        tag = compute_tag(self._key, fields_digest_input(fields))
        logger.debug("Encoded %d fields at %d", len(fields), timestamp)
        return Envelope(version=PROTOCOL_VERSION, timestamp=timestamp,
                        salt=salt, iv=iv, fields=fields, tag=tag)

    # ------------------------------------------------------------------ decode

    def decode(self, envelope) -> Dict[str, Any]:
        '''
        Recover the original mapping from an envelope.
        Input: Envelope, the dict form of one (either key layout) or its JSON text
        Output: dict of original name -> value, None for fields that could not be decoded
        Raises StructuralError, IntegrityError, ExpiredPayloadError or DecodingError when
        the envelope is rejected as a whole.
        '''
        result: Dict[str, Any] = {}
        for outcome in self.decode_fields(envelope):
            if outcome.name in result:
                logger.warning("Duplicate field name %r after recovery, keeping the last one", outcome.name)
            result[outcome.name] = outcome.value
        return result

    def decode_fields(self, envelope) -> List[FieldOutcome]:
        ''' Same as decode() but returns one FieldOutcome per envelope field, in envelope order '''
        try:
            env = self._coerce(envelope)
            self._verify(env)
            self._check_age(env)
            derived = derive_key(self._key, env.salt)
        except PayloadNoiseError as exc:
            logger.error("Decoding error details: %s", exc)
            raise _restage("decoding", exc) from exc
        except Exception as exc:
            logger.exception("Decoding error details")
            raise DecodingError(f"decoding failed: {exc}") from exc

        return [self._decode_field(derived, env.iv, noisy, ct) for noisy, ct in env.fields.items()]

    @staticmethod
    def _coerce(envelope) -> Envelope:
        if isinstance(envelope, Envelope):
            try:
                data = envelope_to_dict(envelope)
            except (TypeError, ValueError) as exc:
                raise StructuralError(f"malformed envelope: {exc}") from exc
            return envelope_from_dict(data)
        if isinstance(envelope, (str, bytes, bytearray)):
            return loads_envelope(envelope)
        return envelope_from_dict(envelope)

    def _verify(self, env: Envelope) -> None:
        try:
            data = fields_digest_input(env.fields)
        except (TypeError, ValueError) as exc:
            raise IntegrityError(f"fields cannot be serialized for verification: {exc}") from exc
        if not verify_tag(self._key, data, env.tag):
            raise IntegrityError("Payload integrity check failed")

    def _check_age(self, env: Envelope) -> None:
        if self.max_age_ms is None:
            return
        age = self._clock() - env.timestamp
        if abs(age) > self.max_age_ms:
            raise ExpiredPayloadError(
                f"envelope timestamp {env.timestamp} is {age} ms away from now (limit {self.max_age_ms} ms)"
            )

    def _decode_field(self, derived: bytes, iv: bytes, noisy: str, ct: Any) -> FieldOutcome:
        name = recover_name(noisy)
        try:
            if not isinstance(ct, str):
                raise TypeError(f"ciphertext must be a string, got {type(ct).__name__}")
            plaintext = aes_cbc_decrypt(derived, iv, ct)
            value = json.loads(plaintext.decode(ENC))
        except (TypeError, ValueError) as exc:
            err = FieldDecodeError(noisy, name, exc)
            self._report(err)
            return FieldOutcome(noisy, name, None, err)
        return FieldOutcome(noisy, name, value)

    def _report(self, err: FieldDecodeError) -> None:
        try:
            self.on_field_error(err)
        except Exception:
            # a broken sink must not turn a field failure into a terminal one
            logger.exception("Field error sink failed for %s", err.obfuscated_name)


def encode(secret, obj: Mapping) -> Envelope:
    ''' Encode obj under secret (see PayloadNoise.encode) '''
    return PayloadNoise(secret).encode(obj)


def decode(secret, envelope, **kwargs) -> Dict[str, Any]:
    ''' Decode envelope under secret (see PayloadNoise.decode); kwargs go to PayloadNoise '''
    return PayloadNoise(secret, **kwargs).decode(envelope)
