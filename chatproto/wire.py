import json
from typing import Iterable, List, Optional, Type

from chatproto import canonical
from chatproto.errors import DecodeError, ProtocolError
from chatproto.payloads import Payload
from chatproto.signing import WithSig

ENC = "utf-8"   # encoding for JSON text
DELIM = b"\n"    # delimiter between envelopes in a feed


def dumps(envelope: WithSig) -> str:
    ''' This function returns the canonical JSON text of an envelope '''
    return canonical.encode_text(envelope)


def dump_bytes(envelope: WithSig) -> bytes:
    return canonical.encode(envelope)


def _reject_constant(name: str):
    raise DecodeError(f"non-finite number in envelope: {name}")


def _unique_object(pairs):
    # duplicate keys would make the canonical form ambiguous
    obj = {}
    for key, value in pairs:
        if key in obj:
            raise DecodeError(f"duplicate field: {key}")
        obj[key] = value
    return obj


def loads(data, allowed: Optional[Iterable[Type[Payload]]] = None) -> WithSig:
    '''
    The function parses an envelope from JSON text or bytes.
    Inputs:
        - data: str or bytes holding one JSON envelope
        - allowed: payload classes accepted in this context (default: all)
    Output: WithSig (call verify() before trusting it)
    '''
    if isinstance(data, (bytes, bytearray)):
        try:
            data = bytes(data).decode(ENC)
        except UnicodeDecodeError as err:
            raise DecodeError(f"envelope is not valid {ENC}") from err
    try:
        obj = json.loads(data, parse_constant=_reject_constant, object_pairs_hook=_unique_object)
    except json.JSONDecodeError as err:
        raise DecodeError(f"invalid JSON: {err}") from err
    return WithSig.from_wire(obj, allowed)


def encode_feed(envelopes: Iterable[WithSig]) -> bytes:
    ''' This function joins envelopes into newline-delimited canonical JSON '''
    return b"".join(dump_bytes(env) + DELIM for env in envelopes)


class FeedDecoder:
    '''
    Incremental decoder for a newline-delimited stream of envelopes.
    Bytes may arrive in arbitrary chunks; residual data is kept until the
    next delimiter shows up.

    A line is only dropped from the buffer once it has been decoded or its
    error has been raised. When a bad line follows good ones in the same
    chunk, the good envelopes are returned first and the error is raised by
    the next call to feed().
    '''

    def __init__(self, allowed: Optional[Iterable[Type[Payload]]] = None):
        self.allowed = tuple(allowed) if allowed is not None else None
        self._buf = bytearray()

    def feed(self, chunk: bytes = b"") -> List[WithSig]:
        '''
        Append a chunk and return every envelope completed by it.
        Input:
            - chunk: raw bytes as read from the stream
        Output: list of decoded envelopes, possibly empty
        Raises ProtocolError for the first bad line, after it is removed.
        '''
        self._buf.extend(chunk)
        out: List[WithSig] = []
        while True:
            nl = self._buf.find(DELIM)
            if nl == -1:   # no complete line yet
                return out
            line = bytes(self._buf[:nl])
            if line.strip():
                try:
                    env = loads(line, self.allowed)
                except ProtocolError:
                    if out:
                        return out
                    del self._buf[:nl + 1]
                    raise
                out.append(env)
            del self._buf[:nl + 1]

    @property
    def pending(self) -> int:
        ''' Number of buffered bytes not yet returned or rejected '''
        return len(self._buf)
