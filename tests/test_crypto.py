import hashlib
import hmac
import re

import pytest

from payload_noise import crypto


def test_derive_key_is_pbkdf2_sha256():
    salt = bytes(range(16))
    expected = hashlib.pbkdf2_hmac("sha256", b"k", salt, 1000, 32)
    assert crypto.derive_key("k", salt) == expected
    assert crypto.derive_key(b"k", salt) == expected


def test_derive_key_depends_on_salt_and_secret():
    salt = b"\x00" * 16
    key = crypto.derive_key("k", salt)
    assert len(key) == 32
    assert crypto.derive_key("k", salt) == key
    assert crypto.derive_key("k", b"\x01" * 16) != key
    assert crypto.derive_key("other", salt) != key


def test_aes_cbc_roundtrip_and_padding():
    key, iv = b"\x11" * 32, b"\x22" * 16
    for plaintext in (b"", b"x", b"0123456789abcdef", "ünïcode".encode("utf-8") * 5):
        ct = crypto.aes_cbc_encrypt(key, iv, plaintext)
        raw = crypto.b64d(ct)
        # PKCS#7 always adds at least one byte of padding
        assert len(raw) % 16 == 0 and len(raw) > len(plaintext)
        assert crypto.aes_cbc_decrypt(key, iv, ct) == plaintext


def test_aes_cbc_decrypt_rejects_garbage():
    key, iv = b"\x11" * 32, b"\x22" * 16
    with pytest.raises(ValueError):
        crypto.aes_cbc_decrypt(key, iv, "not base64!")
    with pytest.raises(ValueError):
        crypto.aes_cbc_decrypt(key, iv, crypto.b64(b"short"))


def test_aes_cbc_wrong_key_fails_or_differs():
    iv = b"\x22" * 16
    ct = crypto.aes_cbc_encrypt(b"\x11" * 32, iv, b'"secret value"')
    try:
        out = crypto.aes_cbc_decrypt(b"\x33" * 32, iv, ct)
    except ValueError:
        return
    assert out != b'"secret value"'


def test_obfuscate_name_format():
    noisy = crypto.obfuscate_name("username", 1734614571089)
    suffix = hashlib.sha256(b"username1734614571089").hexdigest()[:8]
    assert noisy == f"username_{suffix}"
    assert re.fullmatch(r"username_[0-9a-f]{8}", noisy)


def test_obfuscate_name_varies_with_timestamp():
    assert crypto.obfuscate_name("a", 1) != crypto.obfuscate_name("a", 2)


@pytest.mark.parametrize("name", ["username", "user_id", "a_b_c", "_leading", "trailing_", "ünï"])
def test_recover_name(name):
    assert crypto.recover_name(crypto.obfuscate_name(name, 42)) == name


def test_recover_name_without_delimiter():
    assert crypto.recover_name("plain") == "plain"


def test_compute_tag_is_hmac_sha256_hex():
    data = b'{"a_12345678":"AAAA"}'
    expected = hmac.new(b"k", data, hashlib.sha256).hexdigest()
    assert crypto.compute_tag("k", data) == expected
    assert crypto.verify_tag("k", data, expected)


def test_verify_tag_rejects():
    data = b"payload"
    tag = crypto.compute_tag("k", data)
    assert not crypto.verify_tag("other", data, tag)
    assert not crypto.verify_tag("k", data + b"!", tag)
    assert not crypto.verify_tag("k", data, tag[:-1] + ("0" if tag[-1] != "0" else "1"))
    assert not crypto.verify_tag("k", data, "zz-not-hex")
    assert not crypto.verify_tag("k", data, tag[:10])


def test_random_bytes_fresh():
    a, b = crypto.random_bytes(16), crypto.random_bytes(16)
    assert len(a) == 16 and a != b


def test_hex_helpers():
    assert crypto.to_hex(b"\x00\xff") == "00ff"
    assert crypto.from_hex("00ff") == b"\x00\xff"
    with pytest.raises(ValueError):
        crypto.from_hex("xyz")
    with pytest.raises(ValueError):
        crypto.from_hex(1234)
