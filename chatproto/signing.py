import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, Optional, Protocol, Type, TypeVar

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from nacl.exceptions import BadSignatureError

from chatproto import canonical
from chatproto.errors import DecodeError, InvalidSignature, SigningError, TimestampOutOfRange
from chatproto.identity import UserKey
from chatproto.payloads import Payload, decode_payload, expect_object

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 64
TIMESTAMP_TOLERANCE = 90   # seconds, both directions
NONCE_BITS = 32

Clock = Callable[[], float]


class RandomSource(Protocol):
    def getrandbits(self, k: int) -> int: ...


P = TypeVar("P", bound=Payload)


def get_timestamp(clock: Optional[Clock] = None) -> int:
    '''Return current unix time in whole seconds'''
    return int((clock or time.time)())


@dataclass(frozen=True)
class Signee(Generic[P]):
    # Field order is the canonical order; keep it sorted.
    nonce: int
    payload: P
    timestamp: int
    user: UserKey

    def to_wire(self) -> Dict[str, Any]:
        return {
            "nonce": self.nonce,
            "payload": self.payload.to_wire(),
            "timestamp": self.timestamp,
            "user": self.user.to_wire(),
        }

    def canonical_bytes(self) -> bytes:
        ''' The exact bytes that get signed '''
        return canonical.encode(self)

    @classmethod
    def from_wire(cls, obj: Any, allowed: Optional[Iterable[Type[Payload]]] = None) -> "Signee":
        obj = expect_object(obj, ("nonce", "payload", "timestamp", "user"), "signee")
        nonce, timestamp = obj["nonce"], obj["timestamp"]
        if isinstance(nonce, bool) or not isinstance(nonce, int) or not 0 <= nonce < 2**NONCE_BITS:
            raise DecodeError(f"signee.nonce: expected u32, got {nonce!r}")
        if isinstance(timestamp, bool) or not isinstance(timestamp, int) or not 0 <= timestamp < 2**64:
            raise DecodeError(f"signee.timestamp: expected u64, got {timestamp!r}")
        if not isinstance(obj["user"], str):
            raise DecodeError("signee.user: expected hex string")
        return cls(nonce=nonce,
                   payload=decode_payload(obj["payload"], allowed),
                   timestamp=timestamp,
                   user=UserKey.from_hex(obj["user"]))


@dataclass(frozen=True)
class WithSig(Generic[P]):
    # Signed envelope: the unit that is transmitted and stored.
    sig: bytes
    signee: Signee[P]

    def __post_init__(self):
        if not isinstance(self.sig, bytes) or len(self.sig) != SIGNATURE_LENGTH:
            raise DecodeError(f"signature must be {SIGNATURE_LENGTH} bytes")

    @property
    def payload(self) -> P:
        return self.signee.payload

    @property
    def user(self) -> UserKey:
        return self.signee.user

    def verify(self, clock: Optional[Clock] = None) -> None:
        verify(self, clock)

    def to_wire(self) -> Dict[str, Any]:
        return {"sig": self.sig.hex(), "signee": self.signee.to_wire()}

    @classmethod
    def from_wire(cls, obj: Any, allowed: Optional[Iterable[Type[Payload]]] = None) -> "WithSig":
        '''
        This function rebuilds an envelope from its decoded wire object.
        Input:
            - obj: decoded JSON object {"sig": hex, "signee": {...}}
            - allowed: payload classes accepted inside (default: all)
        Output: WithSig instance (not yet verified)
        '''
        obj = expect_object(obj, ("sig", "signee"), "envelope")
        sig_hex = obj["sig"]
        if not isinstance(sig_hex, str) or len(sig_hex) != SIGNATURE_LENGTH * 2:
            raise DecodeError(f"envelope.sig: expected {SIGNATURE_LENGTH * 2} hex chars")
        try:
            sig = bytes.fromhex(sig_hex)
        except ValueError as err:
            raise DecodeError("envelope.sig: invalid hex") from err
        return cls(sig=sig, signee=Signee.from_wire(obj["signee"], allowed))


def sign(key: Ed25519PrivateKey, payload: P, rng: Optional[RandomSource] = None,
         clock: Optional[Clock] = None) -> WithSig[P]:
    '''
    This function signs a payload into an envelope.
    Input:
        - key: signer's Ed25519 private key
        - payload: any Payload instance
        - rng: random source with getrandbits() (default: secrets.SystemRandom)
        - clock: callable returning unix seconds (default: time.time)
    Output: WithSig envelope over the canonical signee bytes
    Raises SigningError on key or RNG failure, InvalidRoster if the payload
    does not accept this signer.
    '''
    if not isinstance(key, Ed25519PrivateKey):
        raise SigningError(f"expected an Ed25519 private key, got {type(key).__name__}")
    rng = rng or secrets.SystemRandom()
    try:
        nonce = rng.getrandbits(NONCE_BITS)
    except Exception as err:
        raise SigningError(f"random source failed: {err}") from err

    user = UserKey.from_signing_key(key)
    payload.check_signer(user)
    signee = Signee(nonce=nonce, payload=payload, timestamp=get_timestamp(clock), user=user)

    canonical_signee = signee.canonical_bytes()
    try:
        sig = key.sign(canonical_signee)
    except Exception as err:
        raise SigningError(f"failed to sign: {err}") from err
    logger.debug("signed %s payload for %s (nonce=%d)", payload.TAG, user, nonce)
    return WithSig(sig=sig, signee=signee)


def verify(envelope: WithSig, clock: Optional[Clock] = None) -> None:
    '''
    This function verifies an envelope's signature and freshness.
    Input:
        - envelope: WithSig to check
        - clock: callable returning unix seconds (default: time.time)
    Output: None on success
    Raises InvalidIdentity, InvalidSignature, SerializationError,
    TimestampOutOfRange or InvalidRoster.
    The signature is checked before the timestamp, so a tampered timestamp is
    reported as InvalidSignature rather than as a stale envelope.
    '''
    signee = envelope.signee
    verify_key = signee.user.verifying_key()

    # libsodium verification is strict: small-order R, non-canonical S and
    # non-canonical keys are all rejected.
    try:
        verify_key.verify(signee.canonical_bytes(), envelope.sig)
    except BadSignatureError as err:
        logger.debug("bad signature from %s", signee.user)
        raise InvalidSignature("signature does not match signee") from err

    now = get_timestamp(clock)
    if abs(signee.timestamp - now) >= TIMESTAMP_TOLERANCE:
        logger.debug("rejecting envelope from %s: timestamp %d, now %d", signee.user, signee.timestamp, now)
        raise TimestampOutOfRange(f"invalid timestamp: {signee.timestamp} (now {now})")

    signee.payload.check_signer(signee.user)
    logger.debug("verified %s payload from %s", signee.payload.TAG, signee.user)
