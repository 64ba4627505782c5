import random

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from chatproto.identity import UserKey

# RFC 8032 section 7.1, TEST 1
RFC8032_SECRET_HEX = "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
RFC8032_PUBLIC_HEX = "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"

T = 1_700_000_000


class FixedRng:
    ''' Random source that always returns the same nonce '''

    def __init__(self, value: int):
        self.value = value

    def getrandbits(self, k: int) -> int:
        return self.value & ((1 << k) - 1)


class FixedClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def signing_key():
    return Ed25519PrivateKey.from_private_bytes(bytes.fromhex(RFC8032_SECRET_HEX))


@pytest.fixture
def other_key():
    return Ed25519PrivateKey.from_private_bytes(bytes(range(32)))


@pytest.fixture
def user(signing_key):
    return UserKey.from_signing_key(signing_key)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def clock():
    return FixedClock(T)
