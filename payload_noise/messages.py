from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from .errors import FieldDecodeError

# Everything except `fields` values is plaintext on the wire; salt/iv are raw bytes here
# and hex strings once serialized by protocol.py.
@dataclass(frozen=True)
class Envelope:
    version: str         # protocol tag, "1.0"
    timestamp: int       # epoch milliseconds at encode time
    salt: bytes          # 16 bytes, key derivation input
    iv: bytes            # 16 bytes, shared by every field
    fields: Dict[str, str] = field(default_factory=dict)   # obfuscated name -> base64 ciphertext, insertion ordered
    tag: str = ""        # hex HMAC over the canonical JSON of `fields`


@dataclass(frozen=True)
class FieldOutcome:
    ''' Result of decoding one field: either a value or the captured error '''
    obfuscated_name: str
    name: str
    value: Any = None
    error: Optional[FieldDecodeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
