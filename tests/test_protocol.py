import json

import pytest

from payload_noise import StructuralError
from payload_noise.messages import Envelope
from payload_noise.protocol import (
    PROTOCOL_VERSION,
    canonical_json,
    fields_digest_input,
    envelope_to_dict,
    envelope_from_dict,
    dumps_envelope,
    loads_envelope,
)


def _sample():
    return Envelope(
        version=PROTOCOL_VERSION,
        timestamp=1734614571089,
        salt=bytes.fromhex("7286bc529aaf8e44196972cc00dd6319"),
        iv=bytes.fromhex("9598bd7cad5e06bf0758e5d7fdef8e05"),
        fields={"tt_0787ade0": "QNzDEHYDlAGTsdV5pzTpUg==", "tor_b1d772bb": "9EcP7Rync6MbMMHS1xF9TQ=="},
        tag="76a68f18f7d6955a1bc988ff6e21712252512a5f32db552553054ac56976f505",
    )


def test_canonical_json_is_compact_and_ordered():
    assert canonical_json({"b": 1, "a": [1, "é"]}) == '{"b":1,"a":[1,"é"]}'
    assert canonical_json("x") == '"x"'
    assert canonical_json(None) == "null"


def test_canonical_json_refuses_nan():
    with pytest.raises(ValueError):
        canonical_json(float("nan"))


def test_fields_digest_input_keeps_insertion_order():
    assert fields_digest_input({"z": "1", "a": "2"}) == b'{"z":"1","a":"2"}'


def test_dict_roundtrip_long_layout():
    env = _sample()
    d = envelope_to_dict(env)
    assert list(d) == ["version", "timestamp", "salt", "iv", "fields", "tag"]
    assert d["salt"] == "7286bc529aaf8e44196972cc00dd6319"
    assert envelope_from_dict(d) == env


def test_dict_roundtrip_compact_layout():
    env = _sample()
    d = envelope_to_dict(env, compact=True)
    assert list(d) == ["_v", "_t", "_s", "_i", "data", "_h"]
    assert envelope_from_dict(d) == env


def test_text_roundtrip():
    env = _sample()
    assert loads_envelope(dumps_envelope(env)) == env
    assert loads_envelope(dumps_envelope(env, compact=True).encode("utf-8")) == env


def test_empty_fields_allowed():
    d = envelope_to_dict(_sample())
    d["fields"] = {}
    assert envelope_from_dict(d).fields == {}


@pytest.mark.parametrize("key", ["version", "timestamp", "salt", "iv", "fields", "tag"])
def test_missing_required_key(key):
    d = envelope_to_dict(_sample())
    del d[key]
    with pytest.raises(StructuralError, match=key):
        envelope_from_dict(d)


@pytest.mark.parametrize("key", ["version", "timestamp", "salt", "iv", "tag"])
def test_empty_required_key(key):
    d = envelope_to_dict(_sample())
    d[key] = 0 if key == "timestamp" else ""
    with pytest.raises(StructuralError):
        envelope_from_dict(d)


@pytest.mark.parametrize("key,value", [
    ("version", "2.0"),
    ("timestamp", "1734614571089"),
    ("timestamp", True),
    ("salt", "nothex"),
    ("salt", "00ff"),
    ("iv", "aa" * 17),
    ("fields", ["a"]),
    ("fields", "abc"),
    ("tag", 12345),
])
def test_malformed_values(key, value):
    d = envelope_to_dict(_sample())
    d[key] = value
    with pytest.raises(StructuralError):
        envelope_from_dict(d)


def test_mixed_layout_rejected():
    d = envelope_to_dict(_sample())
    d["_h"] = d["tag"]
    with pytest.raises(StructuralError, match="mixes"):
        envelope_from_dict(d)


@pytest.mark.parametrize("doc", [None, [], "text", 42])
def test_non_object_envelope(doc):
    with pytest.raises(StructuralError):
        envelope_from_dict(doc)


def test_loads_invalid_json():
    with pytest.raises(StructuralError, match="not valid JSON"):
        loads_envelope("{not json")


def test_dumps_is_plain_json():
    data = json.loads(dumps_envelope(_sample()))
    assert data["version"] == "1.0"
    assert data["timestamp"] == 1734614571089
