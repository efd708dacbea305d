import base64, binascii, os

from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.exceptions import InvalidSignature

ENC = "utf-8"            # encoding for secrets, names and serialized values

# Protocol constants for version 1.0. Encoder and decoder must agree on these,
# they are not carried in the envelope.
KDF_ITERATIONS = 1000
KEY_SIZE = 32            # 256-bit derived key
SALT_SIZE = 16
IV_SIZE = 16
BLOCK_BITS = 128         # AES block size, used by PKCS#7
NAME_DELIM = "_"
SUFFIX_LEN = 8           # hex chars of the name hash kept in the obfuscated name


def _as_bytes(value) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return str(value).encode(ENC)


def random_bytes(size: int) -> bytes:
    '''This function returns `size` bytes from the OS CSPRNG (used for salt and iv)'''
    return os.urandom(size)


def derive_key(secret, salt: bytes) -> bytes:
    '''
    The function derives the per-envelope AES key from the long-term secret.
        Input:
            - secret: long-term shared secret (str or bytes)
            - salt: 16 random bytes, fresh per envelope
        Output: 32-byte key
    Deterministic for the same (secret, salt) pair.
    '''
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(_as_bytes(secret))


def aes_cbc_encrypt(key: bytes, iv: bytes, plaintext: bytes) -> str:
    '''
    This function encrypts plaintext with AES-CBC and PKCS#7 padding.
    Input:
        - key: derived key (256 bits)
        - iv: 16-byte initialization vector shared by all fields of an envelope
        - plaintext: data to encrypt in bytes
    Output: Base64 string of the ciphertext
    '''
    padder = padding.PKCS7(BLOCK_BITS).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ct = encryptor.update(padded) + encryptor.finalize()
    return b64(ct)


def aes_cbc_decrypt(key: bytes, iv: bytes, ct_b64: str) -> bytes:
    '''
    This function reverses aes_cbc_encrypt().
    Input:
        - key: derived key (256 bits)
        - iv: 16-byte initialization vector
        - ct_b64: Base64 string of the ciphertext
    Output: decrypted plaintext in bytes
    Raises ValueError when the ciphertext is not valid base64, not block aligned or badly padded.
    '''
    ct = b64d(ct_b64)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ct) + decryptor.finalize()
    unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def sha256_hex(data: bytes) -> str:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(data)
    return digest.finalize().hex()


def obfuscate_name(name: str, timestamp: int) -> str:
    '''
    The function appends a timestamp-dependent hash suffix to a field name.
        Input: field name and envelope timestamp (epoch ms)
        Output: "<name>_<8 hex chars>"
    The plaintext name stays visible; only the suffix changes between calls.
    '''
    suffix = sha256_hex(f"{name}{timestamp}".encode(ENC))[:SUFFIX_LEN]
    return f"{name}{NAME_DELIM}{suffix}"


def recover_name(obfuscated_name: str) -> str:
    '''
    The function strips the hash suffix added by obfuscate_name().
    The split happens on the last delimiter because the suffix never contains one,
    so names like "user_id" come back intact. A name without delimiter is returned as is.
    '''
    name, delim, _suffix = obfuscated_name.rpartition(NAME_DELIM)
    if not delim:
        return obfuscated_name
    return name


def compute_tag(secret, data: bytes) -> str:
    '''This function returns the hex HMAC-SHA256 of data keyed with the long-term secret'''
    mac = hmac.HMAC(_as_bytes(secret), hashes.SHA256())
    mac.update(data)
    return mac.finalize().hex()


def verify_tag(secret, data: bytes, tag: str) -> bool:
    '''
    This function checks a hex tag against data in constant time.
    A tag that is not valid hex simply does not verify.
    '''
    try:
        expected = from_hex(tag)
    except ValueError:
        return False
    mac = hmac.HMAC(_as_bytes(secret), hashes.SHA256())
    mac.update(data)
    try:
        mac.verify(expected)
    except InvalidSignature:
        return False
    return True


def b64(b: bytes) -> str:
    ''' This function encodes bytes to a Base64 string '''
    return base64.b64encode(b).decode()

def b64d(s: str) -> bytes:
    ''' This function decodes a Base64 string to bytes (strict alphabet) '''
    return base64.b64decode(s.encode(), validate=True)

def to_hex(b: bytes) -> str:
    return binascii.hexlify(b).decode()

def from_hex(s: str) -> bytes:
    ''' This function decodes a hex string, raising ValueError on bad input '''
    if not isinstance(s, str):
        raise ValueError(f"expected hex string, got {type(s).__name__}")
    return bytes.fromhex(s)
