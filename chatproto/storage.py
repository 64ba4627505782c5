"""
Column mappings for storing identities and permission masks in sqlite.

sqlite has no unsigned 64-bit integer, so masks are stored as the signed
integer with the same bit pattern. Key bytes read back from a column are
validated again; storage accepting them says nothing about their validity.
"""
import sqlite3
from typing import Generic, Type, TypeVar, Union

from chatproto.errors import DecodeError
from chatproto.identity import UserKey
from chatproto.permissions import MASK64, MemberPermission, PermissionSet, RoomAttrs, ServerPermission

F = TypeVar("F", bound=PermissionSet)

I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1


def to_i64(bits: int) -> int:
    ''' Reinterpret an unsigned 64-bit pattern as a two's-complement signed integer '''
    return bits - (1 << 64) if bits > I64_MAX else bits


def from_i64(value: int) -> int:
    ''' Inverse of to_i64 '''
    if not I64_MIN <= value <= I64_MAX:
        raise DecodeError(f"value out of i64 range: {value}")
    return value & MASK64


class FlagColumn(Generic[F]):
    '''
    Generic mapping between a permission mask type and a signed INTEGER column.
    Attributes:
        flag_type: the PermissionSet subclass this column holds
        decltype: declared column type name used with PARSE_DECLTYPES
    '''

    def __init__(self, flag_type: Type[F], decltype: str):
        self.flag_type = flag_type
        self.decltype = decltype

    def to_sql(self, value: F) -> int:
        if type(value) is not self.flag_type:
            raise TypeError(f"{self.decltype} column holds {self.flag_type.__name__}, got {type(value).__name__}")
        return to_i64(value.bits)

    def from_sql(self, raw: Union[int, bytes, str]) -> F:
        # converters hand us the text form as bytes
        if isinstance(raw, (bytes, str)):
            try:
                raw = int(raw)
            except ValueError as err:
                raise DecodeError(f"{self.decltype}: not an integer: {raw!r}") from err
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise DecodeError(f"{self.decltype}: not an integer: {raw!r}")
        return self.flag_type(from_i64(raw))


class UserKeyColumn:
    ''' Mapping between UserKey and a 32-byte BLOB column '''

    decltype = "userkey"

    def to_sql(self, value: UserKey) -> bytes:
        return value.raw

    def from_sql(self, raw: bytes) -> UserKey:
        if not isinstance(raw, (bytes, bytearray, memoryview)):
            raise DecodeError(f"{self.decltype}: expected blob, got {type(raw).__name__}")
        # invalid keys raise InvalidIdentity
        return UserKey(bytes(raw)).validated()


USER_KEY = UserKeyColumn()
SERVER_PERMISSION = FlagColumn(ServerPermission, "server_permission")
MEMBER_PERMISSION = FlagColumn(MemberPermission, "member_permission")
ROOM_ATTRS = FlagColumn(RoomAttrs, "room_attrs")

COLUMNS = (USER_KEY, SERVER_PERMISSION, MEMBER_PERMISSION, ROOM_ATTRS)


def register_sqlite_types() -> None:
    '''
    This function installs sqlite3 adapters and converters for every column type.
    Connections must be opened with detect_types=sqlite3.PARSE_DECLTYPES and
    columns declared as userkey, server_permission, member_permission or room_attrs.
    sqlite3 keeps these registrations process-wide, so this is opt-in.
    '''
    sqlite3.register_adapter(UserKey, USER_KEY.to_sql)
    sqlite3.register_converter(USER_KEY.decltype, USER_KEY.from_sql)
    for col in (SERVER_PERMISSION, MEMBER_PERMISSION, ROOM_ATTRS):
        sqlite3.register_adapter(col.flag_type, col.to_sql)
        sqlite3.register_converter(col.decltype, col.from_sql)
