"""Tests for the text wire form of envelopes."""

import json
import uuid

import pytest

from chatproto import wire
from chatproto.errors import DecodeError, InvalidIdentity, InvalidRoster, UnknownPayloadTag
from chatproto.payloads import AuthPayload, ChatPayload, ROOM_ADMIN_PAYLOADS
from chatproto.signing import sign, verify

from conftest import FixedRng

ROOM = uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture
def envelope(signing_key, clock):
    return sign(signing_key, ChatPayload(room=ROOM, text="hi"), FixedRng(670593955), clock)


@pytest.fixture
def wire_obj(envelope):
    return json.loads(wire.dumps(envelope))


class TestDumps:
    def test_shape(self, envelope):
        text = wire.dumps(envelope)
        assert text.startswith('{"sig":"' + envelope.sig.hex() + '","signee":{"nonce":670593955,')
        assert " " not in text.replace('"hi"', "")

    def test_bytes_match_text(self, envelope):
        assert wire.dump_bytes(envelope) == wire.dumps(envelope).encode("utf-8")

    def test_signee_section_is_signed_bytes(self, envelope):
        text = wire.dumps(envelope)
        assert envelope.signee.canonical_bytes().decode("utf-8") in text


class TestLoads:
    def test_round_trip(self, envelope, clock):
        loaded = wire.loads(wire.dumps(envelope))
        assert loaded == envelope
        verify(loaded, clock)

    def test_bytes_input(self, envelope):
        assert wire.loads(wire.dump_bytes(envelope)) == envelope

    def test_key_order_of_input_irrelevant(self, envelope, wire_obj, clock):
        reordered = {"signee": dict(reversed(list(wire_obj["signee"].items()))), "sig": wire_obj["sig"]}
        loaded = wire.loads(json.dumps(reordered, indent=2))
        verify(loaded, clock)

    def test_allowed_payloads(self, envelope):
        with pytest.raises(UnknownPayloadTag):
            wire.loads(wire.dumps(envelope), [AuthPayload])
        with pytest.raises(UnknownPayloadTag):
            wire.loads(wire.dumps(envelope), ROOM_ADMIN_PAYLOADS)
        assert wire.loads(wire.dumps(envelope), [ChatPayload]) == envelope

    @pytest.mark.parametrize("path", [(), ("signee",), ("signee", "payload")])
    def test_unknown_field(self, wire_obj, path):
        target = wire_obj
        for key in path:
            target = target[key]
        target["extra"] = 0
        with pytest.raises(DecodeError, match="unknown field"):
            wire.loads(json.dumps(wire_obj))

    @pytest.mark.parametrize("key", ["nonce", "timestamp", "user", "payload"])
    def test_missing_signee_field(self, wire_obj, key):
        del wire_obj["signee"][key]
        with pytest.raises(DecodeError, match="missing field"):
            wire.loads(json.dumps(wire_obj))

    @pytest.mark.parametrize("key,value", [
        ("nonce", -1), ("nonce", 2**32), ("nonce", 1.5), ("nonce", True),
        ("timestamp", "1700000000"), ("timestamp", -5),
    ])
    def test_bad_numbers(self, wire_obj, key, value):
        wire_obj["signee"][key] = value
        with pytest.raises(DecodeError):
            wire.loads(json.dumps(wire_obj))

    @pytest.mark.parametrize("sig", ["00" * 63, "zz" * 64, 5])
    def test_bad_signature_field(self, wire_obj, sig):
        wire_obj["sig"] = sig
        with pytest.raises(DecodeError):
            wire.loads(json.dumps(wire_obj))

    def test_bad_user(self, wire_obj):
        wire_obj["signee"]["user"] = "ab"
        with pytest.raises(InvalidIdentity):
            wire.loads(json.dumps(wire_obj))

    def test_unsorted_roster(self, wire_obj):
        wire_obj["signee"]["payload"] = {
            "attrs": "0000000000000001",
            "members": [{"permission": "ffffffffffffffff", "user": "0b" * 32},
                        {"permission": "ffffffffffffffff", "user": "0a" * 32}],
            "title": "t",
            "typ": "create_room",
        }
        with pytest.raises(InvalidRoster):
            wire.loads(json.dumps(wire_obj))

    @pytest.mark.parametrize("text", ["", "{", "[]", '"x"', "NaN", b"\xff\xfe"])
    def test_not_an_envelope(self, text):
        with pytest.raises(DecodeError):
            wire.loads(text)

    def test_duplicate_keys(self, envelope):
        text = wire.dumps(envelope)
        dup = text[:-1] + ',"sig":"' + "00" * 64 + '"}'
        with pytest.raises(DecodeError, match="duplicate"):
            wire.loads(dup)

    def test_escaped_lone_surrogate(self, envelope):
        text = wire.dumps(envelope).replace('"hi"', '"\\ud800"')
        with pytest.raises(DecodeError, match="surrogate"):
            wire.loads(text)


class TestFeed:
    def test_chunked(self, signing_key, rng, clock):
        envs = [sign(signing_key, ChatPayload(room=ROOM, text=t), rng, clock) for t in ("a", "b", "c")]
        data = wire.encode_feed(envs)
        dec = wire.FeedDecoder([ChatPayload])
        out = []
        for i in range(0, len(data), 7):
            out.extend(dec.feed(data[i:i + 7]))
        assert out == envs
        assert dec.pending == 0

    def test_partial_line_kept(self, envelope):
        data = wire.dump_bytes(envelope)
        dec = wire.FeedDecoder()
        assert dec.feed(data) == []
        assert dec.pending == len(data)
        assert dec.feed(b"\n") == [envelope]

    def test_blank_lines_skipped(self, envelope):
        dec = wire.FeedDecoder()
        assert dec.feed(b"\n\n" + wire.dump_bytes(envelope) + b"\n") == [envelope]

    def test_bad_line_after_good_ones(self, envelope):
        good = wire.dump_bytes(envelope)
        dec = wire.FeedDecoder()
        assert dec.feed(good + b"\n" + b"{bad json\n" + good + b"\n") == [envelope]
        assert dec.pending > 0
        with pytest.raises(DecodeError):
            dec.feed()
        assert dec.pending == len(good) + 1
        assert dec.feed() == [envelope]
        assert dec.pending == 0

    def test_bad_first_line_raises_then_recovers(self, envelope):
        good = wire.dump_bytes(envelope)
        dec = wire.FeedDecoder()
        with pytest.raises(DecodeError):
            dec.feed(b"{bad json\n" + good)
        assert dec.pending == len(good)
        assert dec.feed(b"\n") == [envelope]
