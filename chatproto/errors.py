class ProtocolError(Exception):
    """Base class for every error raised by chatproto."""
    pass

class SerializationError(ProtocolError):
    """Raised when a value is outside the canonically encodable shape."""
    pass

class SigningError(ProtocolError):
    """Raised when the key or the random source fails during signing."""
    pass

class VerificationError(ProtocolError):
    """Raised when an envelope fails verification."""
    pass

class TimestampOutOfRange(VerificationError):
    """Raised when the signed timestamp is outside the tolerance window."""
    pass

class InvalidSignature(VerificationError):
    """Raised when the signature does not match the canonical signee bytes."""
    pass

class InvalidIdentity(ProtocolError):
    """Raised when public-key bytes do not decode to a valid Ed25519 key."""
    pass

class InvalidRoster(ProtocolError):
    """Raised when a member list is unsorted, duplicated or misses its creator."""
    pass

class DecodeError(ProtocolError):
    """Raised when wire data does not have the expected shape."""
    pass

class UnknownPayloadTag(DecodeError):
    """Raised when a payload carries an unrecognized `typ` discriminant."""
    pass

class ReplayedEnvelope(ProtocolError):
    """Raised by the nonce ledger when an envelope has been seen before."""
    pass
