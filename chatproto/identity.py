from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from nacl.bindings import crypto_core_ed25519_is_valid_point
from nacl.signing import VerifyKey

from chatproto.errors import InvalidIdentity

PUBLIC_KEY_LENGTH = 32


@dataclass(frozen=True, order=True)
class UserKey:
    # Raw Ed25519 public key. Ordering is byte order, which is what rosters sort by.
    raw: bytes

    def __post_init__(self):
        if not isinstance(self.raw, bytes):
            raise InvalidIdentity(f"user key must be bytes, got {type(self.raw).__name__}")
        if len(self.raw) != PUBLIC_KEY_LENGTH:
            raise InvalidIdentity(f"user key must be {PUBLIC_KEY_LENGTH} bytes, got {len(self.raw)}")

    def __str__(self) -> str:
        return self.raw.hex()

    @classmethod
    def from_hex(cls, text: str) -> "UserKey":
        ''' This function parses the 64-char hex form of a user key '''
        if not isinstance(text, str) or len(text) != PUBLIC_KEY_LENGTH * 2:
            raise InvalidIdentity(f"user key must be {PUBLIC_KEY_LENGTH * 2} hex chars")
        try:
            return cls(bytes.fromhex(text))
        except ValueError as err:
            raise InvalidIdentity(f"invalid user key hex: {text!r}") from err

    @classmethod
    def from_signing_key(cls, key: Ed25519PrivateKey) -> "UserKey":
        ''' This function derives the identity belonging to a private key '''
        return cls.from_public_key(key.public_key())

    @classmethod
    def from_public_key(cls, pub: Ed25519PublicKey) -> "UserKey":
        return cls(pub.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw))

    def is_valid(self) -> bool:
        '''
        This function tells whether the bytes encode a usable public key:
        a canonical point on edwards25519, in the prime-order subgroup and
        not of small order.
        '''
        return crypto_core_ed25519_is_valid_point(self.raw)

    def validated(self) -> "UserKey":
        ''' Return self after checking that the bytes form a legitimate public key '''
        if not self.is_valid():
            raise InvalidIdentity(f"invalid pubkey: {self}")
        return self

    def verifying_key(self) -> VerifyKey:
        ''' Return the libsodium verify key, validating the point first '''
        return VerifyKey(self.validated().raw)

    def to_wire(self) -> str:
        return str(self)
