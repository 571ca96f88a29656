import logging
import threading

log = logging.getLogger("soakload.nonce")


class NonceLedger:
    """Per-identity sequence counter.

    Every operation holds a plain ``threading.Lock`` for a few instructions and never
    suspends, so it is safe from asyncio tasks and worker threads alike.

    ``rollback`` is decrement-if-positive and does not know which reservation it is
    compensating. When a failed operation's rollback races a later reservation from the
    same identity, the rollback can shift that later slot instead of its own. Use
    ``release`` when the caller needs reservation-identified compensation.
    """

    __slots__ = ("_lock", "_value")

    def __init__(self, initial: int = 0):
        if initial < 0:
            raise ValueError(f"initial nonce must not be negative, got {initial}")
        self._lock = threading.Lock()
        self._value = initial

    def reserve(self) -> int:
        with self._lock:
            n = self._value
            self._value += 1
            return n

    def rollback(self) -> None:
        with self._lock:
            if self._value > 0:
                self._value -= 1

    def release(self, reserved: int) -> bool:
        """Give ``reserved`` back only if it is still the most recent reservation."""
        with self._lock:
            if self._value == reserved + 1:
                self._value = reserved
                return True
        log.debug("Cannot release nonce %s - counter moved on to %s", reserved, self._value)
        return False

    def current(self) -> int:
        return self._value

    def set(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"nonce must not be negative, got {value}")
        with self._lock:
            self._value = value

    def __repr__(self) -> str:
        return f"NonceLedger({self._value})"
