"""
64-bit permission masks.

Three independent types share one implementation: a server-level mask
(`ServerPermission`), a per-room member mask (`MemberPermission`) and the
room attribute mask (`RoomAttrs`). Masks of different types never combine.
Every bit pattern is legal and preserved verbatim, named or not, so newer
peers can add bits without breaking older ones.
"""
import re
from dataclasses import dataclass
from typing import ClassVar, Dict, Iterator, List

from chatproto.errors import DecodeError

MASK64 = (1 << 64) - 1
_WIRE_RE = re.compile(r"[0-9a-f]{16}\Z")


@dataclass(frozen=True)
class PermissionSet:
    bits: int = 0

    # name -> bit value, filled in by each subclass
    FLAGS: ClassVar[Dict[str, int]] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        for name, value in cls.FLAGS.items():
            setattr(cls, name, cls(value))
        cls.ALL = cls(MASK64)

    def __post_init__(self):
        if isinstance(self.bits, bool) or not isinstance(self.bits, int):
            raise TypeError(f"{type(self).__name__} bits must be an int")
        if not 0 <= self.bits <= MASK64:
            raise ValueError(f"{type(self).__name__} bits out of u64 range: {self.bits}")

    def _same(self, other) -> bool:
        return type(other) is type(self)

    def __or__(self, other):
        if not self._same(other):
            return NotImplemented
        return type(self)(self.bits | other.bits)

    def __and__(self, other):
        if not self._same(other):
            return NotImplemented
        return type(self)(self.bits & other.bits)

    def __le__(self, other):
        if not self._same(other):
            return NotImplemented
        return self.issubset(other)

    def __ge__(self, other):
        if not self._same(other):
            return NotImplemented
        return self.contains(other)

    def __bool__(self) -> bool:
        return self.bits != 0

    def issubset(self, other) -> bool:
        ''' True if every bit of self is also set in other '''
        if not self._same(other):
            raise TypeError(f"cannot compare {type(self).__name__} with {type(other).__name__}")
        return self.bits & other.bits == self.bits

    def contains(self, other) -> bool:
        ''' True if self carries all bits of other '''
        if not self._same(other):
            raise TypeError(f"cannot compare {type(self).__name__} with {type(other).__name__}")
        return self.bits & other.bits == other.bits

    def names(self) -> List[str]:
        return [name for name, value in self.FLAGS.items() if self.bits & value == value]

    def __iter__(self) -> Iterator["PermissionSet"]:
        ''' Iterate over the named flags that are set '''
        for name in self.names():
            yield getattr(type(self), name)

    def __repr__(self) -> str:
        if self.bits == MASK64:
            return f"{type(self).__name__}.ALL"
        names = self.names()
        known = 0
        for name in names:
            known |= self.FLAGS[name]
        extra = self.bits & ~known
        parts = names + ([f"{extra:#x}"] if extra else [])
        return f"{type(self).__name__}({'|'.join(parts) or '0'})"

    # unsigned integer form

    def to_int(self) -> int:
        return self.bits

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    # wire form: fixed-width lowercase hex

    def to_wire(self) -> str:
        return f"{self.bits:016x}"

    @classmethod
    def from_wire(cls, value):
        '''
        This function parses the wire form of a mask.
        Input: 16-digit lowercase hex string
        Output: mask of this type
        '''
        if not isinstance(value, str) or not _WIRE_RE.match(value):
            raise DecodeError(f"{cls.__name__} must be 16 lowercase hex digits, got {value!r}")
        return cls(int(value, 16))


class ServerPermission(PermissionSet):
    FLAGS = {
        "CREATE_ROOM": 1 << 0,
    }


class MemberPermission(PermissionSet):
    FLAGS = {
        "POST_CHAT": 1 << 0,
        "ADD_MEMBER": 1 << 1,
    }


class RoomAttrs(PermissionSet):
    FLAGS = {
        "PUBLIC_READABLE": 1 << 0,
    }
