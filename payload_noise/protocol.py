import json
from collections.abc import Mapping
from typing import Any, Dict

from .crypto import SALT_SIZE, IV_SIZE, to_hex, from_hex
from .errors import StructuralError
from .messages import Envelope

ENC = "utf-8"   # encoding for JSON text
PROTOCOL_VERSION = "1.0"
SUPPORTED_VERSIONS = (PROTOCOL_VERSION,)

# Wire key names, in serialization order. The compact names are the ones emitted by
# the reference JavaScript encoder; both layouts carry the same information.
LONG_KEYS = ("version", "timestamp", "salt", "iv", "fields", "tag")
COMPACT_KEYS = ("_v", "_t", "_s", "_i", "data", "_h")
_FROM_COMPACT = dict(zip(COMPACT_KEYS, LONG_KEYS))
_TO_COMPACT = dict(zip(LONG_KEYS, COMPACT_KEYS))


def canonical_json(obj: Any) -> str:
    '''
    The function returns the canonical text form used for field values and for the tag input.
    Compact separators, non-ASCII kept as is, key order as inserted. NaN/Infinity are refused
    (raises ValueError) since no JSON peer can parse them back.
    '''
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def fields_digest_input(fields: Mapping) -> bytes:
    '''This function returns the exact bytes covered by the envelope tag'''
    return canonical_json(dict(fields)).encode(ENC)


def envelope_to_dict(env: Envelope, compact: bool = False) -> Dict[str, Any]:
    '''
    The function converts an Envelope into a JSON-ready dict.
    Input:
        - env: assembled Envelope
        - compact: emit the short key layout (_v, _t, _s, _i, data, _h)
    Output: dict with salt and iv hex encoded
    '''
    out = {
        "version": env.version,
        "timestamp": env.timestamp,
        "salt": to_hex(env.salt),
        "iv": to_hex(env.iv),
        "fields": dict(env.fields),
        "tag": env.tag,
    }
    if compact:
        return {_TO_COMPACT[k]: v for k, v in out.items()}
    return out


def _normalize_layout(data: Mapping) -> Dict[str, Any]:
    has_long = any(k in data for k in LONG_KEYS)
    has_compact = any(k in data for k in COMPACT_KEYS)
    if has_long and has_compact:
        raise StructuralError("envelope mixes long and compact key layouts")
    if has_compact:
        return {_FROM_COMPACT[k]: data[k] for k in COMPACT_KEYS if k in data}
    return {k: data[k] for k in LONG_KEYS if k in data}


def _decode_random(name: str, value: Any, size: int) -> bytes:
    try:
        raw = from_hex(value)
    except ValueError as exc:
        raise StructuralError(f"field {name!r} is not valid hex") from exc
    if len(raw) != size:
        raise StructuralError(f"field {name!r} must be {size} bytes, got {len(raw)}")
    return raw


def envelope_from_dict(data: Any) -> Envelope:
    '''
    The function validates the structure of an untrusted envelope and builds an Envelope.
    No cryptography happens here.
    Input: the parsed JSON document (either key layout)
    Output: Envelope
    Raises StructuralError on any missing, empty or malformed top-level field.
    '''
    if not isinstance(data, Mapping):
        raise StructuralError(f"envelope must be a JSON object, got {type(data).__name__}")
    d = _normalize_layout(data)

    for key in LONG_KEYS:
        if key not in d:
            raise StructuralError(f"missing required field {key!r}")
        # `fields` may legitimately be empty ({} round-trips); everything else must be truthy
        if key != "fields" and not d[key]:
            raise StructuralError(f"required field {key!r} is empty")

    version = d["version"]
    if version not in SUPPORTED_VERSIONS:
        raise StructuralError(f"unsupported version {version!r}")

    timestamp = d["timestamp"]
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise StructuralError("field 'timestamp' must be an integer")

    fields = d["fields"]
    if not isinstance(fields, Mapping):
        raise StructuralError("field 'fields' must be an object")
    if not all(isinstance(k, str) for k in fields):
        raise StructuralError("field names must be strings")

    tag = d["tag"]
    if not isinstance(tag, str):
        raise StructuralError("field 'tag' must be a string")

    return Envelope(
        version=version,
        timestamp=timestamp,
        salt=_decode_random("salt", d["salt"], SALT_SIZE),
        iv=_decode_random("iv", d["iv"], IV_SIZE),
        fields=dict(fields),
        tag=tag,
    )


def dumps_envelope(env: Envelope, compact: bool = False, indent=None) -> str:
    ''' This function serializes an Envelope to JSON text '''
    return json.dumps(envelope_to_dict(env, compact=compact), ensure_ascii=False, indent=indent)


def loads_envelope(text) -> Envelope:
    '''
    This function parses JSON text (str or bytes) into a validated Envelope.
    Text that is not JSON at all is reported as a StructuralError too.
    '''
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode(ENC)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StructuralError(f"envelope is not valid JSON: {exc}") from exc
    return envelope_from_dict(data)
