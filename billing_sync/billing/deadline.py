import time

from billing_sync.errors import DeadlineExceeded


class Deadline:
    """Wall-clock limit for handling one webhook delivery."""

    def __init__(self, seconds, clock=time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self):
        if self.expired():
            raise DeadlineExceeded(f"Processing deadline of {self.seconds}s exceeded")
