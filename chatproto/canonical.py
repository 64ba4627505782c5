"""
Canonical JSON encoding (RFC 8785, via the `jcs` package).

Signatures are computed over the bytes produced here, so two structurally
equal values must always give identical output: object keys are sorted by
UTF-16 code units, arrays keep their order, there is no whitespace and
numbers have exactly one textual form.

Values are first reduced to plain JSON data (objects exposing `to_wire()`
are replaced by their wire form, tuples become lists) and checked against
the encodable shape, so anything jcs would silently coerce is refused.
"""
import math
from typing import Any

import jcs

from chatproto.errors import SerializationError

ENC = "utf-8"


def _check_string(s: str) -> str:
    # lone surrogates have no UTF-8 encoding
    for ch in s:
        if 0xD800 <= ord(ch) <= 0xDFFF:
            raise SerializationError(f"string contains a lone surrogate: U+{ord(ch):04X}")
    return s


def to_plain(value: Any) -> Any:
    '''
    This function reduces a value to plain JSON data.
    Input:
        - value: dict/list/tuple/str/int/float/bool/None, or an object exposing to_wire()
    Output: the same data built only from dict/list/str/int/float/bool/None
    Raises SerializationError for anything outside that shape.
    '''
    to_wire = getattr(value, "to_wire", None)
    if callable(to_wire):
        return to_plain(to_wire())
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise SerializationError(f"non-finite number: {value!r}")
        return value
    if isinstance(value, str):
        return _check_string(value)
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise SerializationError(f"object key must be a string, got {type(key).__name__}")
            out[_check_string(key)] = to_plain(item)
        return out
    raise SerializationError(f"cannot canonicalize type: {type(value).__name__}")


def encode(value: Any) -> bytes:
    '''
    The function serializes a value into its canonical byte form.
    Input:
        - value: JSON-shaped data or any object exposing to_wire()
    Output: UTF-8 bytes of the canonical JSON text
    Raises SerializationError for anything outside that shape.
    '''
    plain = to_plain(value)
    try:
        return jcs.canonicalize(plain)
    except (TypeError, ValueError) as err:
        raise SerializationError(f"cannot canonicalize: {err}") from err


def encode_text(value: Any) -> str:
    ''' This function returns the canonical JSON text of a value '''
    return encode(value).decode(ENC)
