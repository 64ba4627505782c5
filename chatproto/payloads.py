"""
Signed payload variants and the room member list.

Every payload is a frozen dataclass whose fields are declared in sorted
order, with a class-level TAG that travels on the wire as `typ`.
`decode_payload` dispatches on that tag; unknown tags, unknown fields and
missing fields are all rejected.
"""
import uuid
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, Iterator, Optional, Tuple, Type

from chatproto.errors import DecodeError, InvalidRoster, UnknownPayloadTag
from chatproto.identity import UserKey
from chatproto.permissions import MemberPermission, RoomAttrs

TAG_FIELD = "typ"


def expect_object(obj: Any, fields: Iterable[str], where: str) -> Dict[str, Any]:
    '''
    This function checks that a decoded wire object has exactly the given fields.
    Input:
        - obj: decoded JSON value
        - fields: required field names (no others allowed)
        - where: name used in error messages
    Output: obj itself, as a dict
    '''
    if not isinstance(obj, dict):
        raise DecodeError(f"{where}: expected object, got {type(obj).__name__}")
    wanted = set(fields)
    unknown = sorted(set(obj) - wanted)
    missing = sorted(wanted - set(obj))
    if unknown:
        raise DecodeError(f"{where}: unknown field(s) {', '.join(unknown)}")
    if missing:
        raise DecodeError(f"{where}: missing field(s) {', '.join(missing)}")
    return obj


def _str(obj: Dict[str, Any], key: str, where: str) -> str:
    value = obj[key]
    if not isinstance(value, str):
        raise DecodeError(f"{where}.{key}: expected string")
    # JSON \ud800-style escapes can smuggle in strings that have no UTF-8 form
    if any(0xD800 <= ord(ch) <= 0xDFFF for ch in value):
        raise DecodeError(f"{where}.{key}: lone surrogate in string")
    return value


def _room_id(value: Any, where: str) -> uuid.UUID:
    # only the canonical lowercase hyphenated form is accepted
    if not isinstance(value, str):
        raise DecodeError(f"{where}.room: expected uuid string")
    try:
        room = uuid.UUID(value)
    except ValueError as err:
        raise DecodeError(f"{where}.room: invalid uuid {value!r}") from err
    if str(room) != value:
        raise DecodeError(f"{where}.room: non-canonical uuid {value!r}")
    return room


def _user(value: Any, where: str) -> UserKey:
    if not isinstance(value, str):
        raise DecodeError(f"{where}.user: expected hex string")
    return UserKey.from_hex(value)


@dataclass(frozen=True)
class RoomMember:
    permission: MemberPermission
    user: UserKey

    def to_wire(self) -> Dict[str, Any]:
        return {"permission": self.permission.to_wire(), "user": self.user.to_wire()}

    @classmethod
    def from_wire(cls, obj: Any) -> "RoomMember":
        obj = expect_object(obj, ("permission", "user"), "member")
        return cls(permission=MemberPermission.from_wire(obj["permission"]),
                   user=_user(obj["user"], "member"))


@dataclass(frozen=True)
class RoomMemberList:
    '''
    A collection of room members, with these invariants:
    1. Sorted by user key bytes.
    2. No duplicated users.
    Input that breaks either is rejected, never re-sorted.
    '''
    members: Tuple[RoomMember, ...] = ()

    def __post_init__(self):
        members = tuple(self.members)
        object.__setattr__(self, "members", members)
        for prev, cur in zip(members, members[1:]):
            if not prev.user.raw < cur.user.raw:
                raise InvalidRoster("unsorted or duplicated users")

    def __iter__(self) -> Iterator[RoomMember]:
        return iter(self.members)

    def __len__(self) -> int:
        return len(self.members)

    def get(self, user: UserKey) -> Optional[RoomMember]:
        ''' Return the member entry for a user, or None '''
        for m in self.members:
            if m.user == user:
                return m
        return None

    def to_wire(self):
        return [m.to_wire() for m in self.members]

    @classmethod
    def from_wire(cls, value: Any) -> "RoomMemberList":
        if not isinstance(value, list):
            raise DecodeError("members: expected array")
        return cls(tuple(RoomMember.from_wire(item) for item in value))


class Payload:
    # discriminant carried on the wire as `typ`
    TAG: ClassVar[str] = ""

    def check_signer(self, user: UserKey) -> None:
        ''' Hook for payload rules that depend on who signs it; no-op by default '''
        return None


@dataclass(frozen=True)
class ChatPayload(Payload):
    TAG: ClassVar[str] = "chat"

    room: uuid.UUID
    text: str

    def to_wire(self) -> Dict[str, Any]:
        return {"room": str(self.room), "text": self.text, TAG_FIELD: self.TAG}

    @classmethod
    def from_wire(cls, obj: Any) -> "ChatPayload":
        obj = expect_object(obj, ("room", "text", TAG_FIELD), cls.TAG)
        return cls(room=_room_id(obj["room"], cls.TAG), text=_str(obj, "text", cls.TAG))


@dataclass(frozen=True)
class CreateRoomPayload(Payload):
    TAG: ClassVar[str] = "create_room"

    attrs: RoomAttrs
    # Besides the RoomMemberList invariants, this must include the room
    # creator with MemberPermission.ALL; see check_signer.
    members: RoomMemberList
    title: str

    def check_signer(self, user: UserKey) -> None:
        '''
        This function checks that the signing user is a member with every permission bit.
        Input:
            - user: identity of the signer
        Raises InvalidRoster otherwise.
        '''
        member = self.members.get(user)
        if member is None or member.permission != MemberPermission.ALL:
            raise InvalidRoster(f"room creator {user} must be a member with all permissions")

    def to_wire(self) -> Dict[str, Any]:
        return {
            "attrs": self.attrs.to_wire(),
            "members": self.members.to_wire(),
            "title": self.title,
            TAG_FIELD: self.TAG,
        }

    @classmethod
    def from_wire(cls, obj: Any) -> "CreateRoomPayload":
        obj = expect_object(obj, ("attrs", "members", "title", TAG_FIELD), cls.TAG)
        return cls(attrs=RoomAttrs.from_wire(obj["attrs"]),
                   members=RoomMemberList.from_wire(obj["members"]),
                   title=_str(obj, "title", cls.TAG))


@dataclass(frozen=True)
class AuthPayload(Payload):
    ''' Proof of room membership for read access. Carries nothing but the tag. '''
    TAG: ClassVar[str] = "auth"

    def to_wire(self) -> Dict[str, Any]:
        return {TAG_FIELD: self.TAG}

    @classmethod
    def from_wire(cls, obj: Any) -> "AuthPayload":
        expect_object(obj, (TAG_FIELD,), cls.TAG)
        return cls()


@dataclass(frozen=True)
class AddMemberPayload(Payload):
    TAG: ClassVar[str] = "add_member"

    permission: MemberPermission
    room: uuid.UUID
    user: UserKey

    def to_wire(self) -> Dict[str, Any]:
        return {
            "permission": self.permission.to_wire(),
            "room": str(self.room),
            TAG_FIELD: self.TAG,
            "user": self.user.to_wire(),
        }

    @classmethod
    def from_wire(cls, obj: Any) -> "AddMemberPayload":
        obj = expect_object(obj, ("permission", "room", TAG_FIELD, "user"), cls.TAG)
        return cls(permission=MemberPermission.from_wire(obj["permission"]),
                   room=_room_id(obj["room"], cls.TAG),
                   user=_user(obj["user"], cls.TAG))


# Room administration commands; add_member is the only one so far.
ROOM_ADMIN_PAYLOADS: Tuple[Type[Payload], ...] = (AddMemberPayload,)

PAYLOAD_TYPES: Dict[str, Type[Payload]] = {
    cls.TAG: cls for cls in (ChatPayload, CreateRoomPayload, AuthPayload, AddMemberPayload)
}


def decode_payload(obj: Any, allowed: Optional[Iterable[Type[Payload]]] = None) -> Payload:
    '''
    This function decodes a wire payload by its `typ` discriminant.
    Input:
        - obj: decoded JSON object
        - allowed: payload classes acceptable at this point (default: all)
    Output: payload instance
    Raises UnknownPayloadTag for a tag outside `allowed`, DecodeError for a bad shape.
    '''
    if not isinstance(obj, dict):
        raise DecodeError(f"payload: expected object, got {type(obj).__name__}")
    if TAG_FIELD not in obj:
        raise DecodeError("payload: missing field typ")
    tag = obj[TAG_FIELD]
    cls = PAYLOAD_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None or (allowed is not None and cls not in tuple(allowed)):
        raise UnknownPayloadTag(f"unknown payload tag: {tag!r}")
    return cls.from_wire(obj)
