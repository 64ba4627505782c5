"""Tests for the sqlite column mappings."""

import sqlite3

import pytest

from chatproto import storage
from chatproto.errors import DecodeError, InvalidIdentity
from chatproto.identity import UserKey
from chatproto.permissions import MASK64, MemberPermission, RoomAttrs, ServerPermission

from conftest import RFC8032_PUBLIC_HEX


class TestBitCast:
    @pytest.mark.parametrize("bits,signed", [
        (0, 0),
        (1, 1),
        ((1 << 63) - 1, (1 << 63) - 1),
        (1 << 63, -(1 << 63)),
        (MASK64, -1),
    ])
    def test_to_i64(self, bits, signed):
        assert storage.to_i64(bits) == signed
        assert storage.from_i64(signed) == bits

    def test_out_of_range(self):
        with pytest.raises(DecodeError):
            storage.from_i64(1 << 63)


class TestFlagColumn:
    @pytest.mark.parametrize("col,value", [
        (storage.SERVER_PERMISSION, ServerPermission.ALL),
        (storage.MEMBER_PERMISSION, MemberPermission.ALL),
        (storage.ROOM_ATTRS, RoomAttrs(1 << 63 | 1)),
        (storage.ROOM_ATTRS, RoomAttrs()),
    ])
    def test_round_trip(self, col, value):
        assert col.from_sql(col.to_sql(value)) == value

    def test_all_is_minus_one(self):
        assert storage.MEMBER_PERMISSION.to_sql(MemberPermission.ALL) == -1

    def test_text_form(self):
        assert storage.MEMBER_PERMISSION.from_sql(b"-1") == MemberPermission.ALL

    def test_wrong_type(self):
        with pytest.raises(TypeError):
            storage.MEMBER_PERMISSION.to_sql(RoomAttrs.PUBLIC_READABLE)

    @pytest.mark.parametrize("raw", [b"abc", 1.5, None])
    def test_garbage(self, raw):
        with pytest.raises(DecodeError):
            storage.ROOM_ATTRS.from_sql(raw)


class TestUserKeyColumn:
    def test_round_trip(self):
        key = UserKey.from_hex(RFC8032_PUBLIC_HEX)
        assert storage.USER_KEY.from_sql(storage.USER_KEY.to_sql(key)) == key

    def test_corrupt_key(self):
        with pytest.raises(InvalidIdentity):
            storage.USER_KEY.from_sql(b"\xff" * 32)

    def test_wrong_length(self):
        with pytest.raises(InvalidIdentity):
            storage.USER_KEY.from_sql(b"\x01" * 16)


class TestSqlite:
    @pytest.fixture
    def db(self):
        storage.register_sqlite_types()
        conn = sqlite3.connect(":memory:", detect_types=sqlite3.PARSE_DECLTYPES)
        conn.execute("CREATE TABLE member (user userkey, perm member_permission, "
                     "attrs room_attrs, server server_permission)")
        yield conn
        conn.close()

    def test_store_and_load(self, db):
        key = UserKey.from_hex(RFC8032_PUBLIC_HEX)
        with db:
            db.execute("INSERT INTO member VALUES (?, ?, ?, ?)",
                       (key, MemberPermission.ALL, RoomAttrs(1 << 63), ServerPermission.CREATE_ROOM))
        row = db.execute("SELECT user, perm, attrs, server FROM member").fetchone()
        assert row == (key, MemberPermission.ALL, RoomAttrs(1 << 63), ServerPermission.CREATE_ROOM)

    def test_stored_as_signed_integer(self, db):
        with db:
            db.execute("INSERT INTO member (perm) VALUES (?)", (MemberPermission.ALL,))
        assert db.execute("SELECT perm + 0, typeof(perm) FROM member").fetchone() == (-1, "integer")

    def test_corrupt_key_rejected_on_read(self, db):
        with db:
            db.execute("INSERT INTO member (user) VALUES (?)", (b"\xff" * 32,))
        with pytest.raises(InvalidIdentity):
            db.execute("SELECT user FROM member").fetchone()
