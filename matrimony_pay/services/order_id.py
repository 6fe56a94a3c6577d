from __future__ import annotations

import secrets
import string
import time
from typing import Callable

_ALPHABET = string.ascii_lowercase + string.digits


class OrderIdGenerator:
    """TXN_<epoch ms>_<random base36 suffix>.

    The gateway accepts at most 35 characters from [A-Za-z0-9_-]; uniqueness is
    enforced by the unique index on subscriptions.order_id.
    """

    def __init__(
        self,
        prefix: str = "TXN",
        suffix_length: int = 9,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.prefix = prefix
        self.suffix_length = suffix_length
        self._clock = clock

    def new_order_id(self) -> str:
        millis = int(self._clock() * 1000)
        suffix = "".join(secrets.choice(_ALPHABET) for _ in range(self.suffix_length))
        return f"{self.prefix}_{millis}_{suffix}"
