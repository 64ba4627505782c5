import logging
import time
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from chatproto.errors import ReplayedEnvelope
from chatproto.identity import UserKey
from chatproto.signing import TIMESTAMP_TOLERANCE, WithSig

logger = logging.getLogger(__name__)


class NonceLedger:
    '''
    Caller-side record of (user, nonce) pairs seen recently.

    verify() only bounds an envelope's lifetime to the tolerance window; an
    envelope can be replayed inside that window. Checking verified envelopes
    against this ledger closes that gap for a single process. Entries older
    than the window are pruned, since verify() would reject them anyway.
    '''

    def __init__(self, window: int = TIMESTAMP_TOLERANCE, clock: Optional[Callable[[], float]] = None):
        self.lock = Lock()  # guards seen
        self.window = window
        self.clock = clock or time.time
        self.seen: Dict[Tuple[UserKey, int], int] = {}   # (user, nonce) -> signed timestamp

    def check(self, envelope: WithSig) -> None:
        '''
        This function records an envelope's nonce, rejecting a repeat.
        Input:
            - envelope: an envelope that already passed verify()
        Raises ReplayedEnvelope if the same user already used this nonce within the window.
        '''
        signee = envelope.signee
        key = (signee.user, signee.nonce)
        with self.lock:
            self._prune()
            if key in self.seen:
                logger.debug("replayed nonce %d from %s", signee.nonce, signee.user)
                raise ReplayedEnvelope(f"nonce {signee.nonce} from {signee.user} already seen")
            self.seen[key] = signee.timestamp

    def _prune(self):
        # verify() already rejects anything this old
        cutoff = int(self.clock()) - self.window
        stale = [k for k, ts in self.seen.items() if ts <= cutoff]
        for k in stale:
            del self.seen[k]

    def __len__(self) -> int:
        with self.lock:
            return len(self.seen)
