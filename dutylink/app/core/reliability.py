"""
Reliability utilities.

Exponential backoff used when re-opening dropped subscriptions.
"""


class ExponentialBackoff:
    """
    Doubling delay between attempts, capped at ``max_delay``.

    ``reset()`` is called after a successful attempt so the next
    failure starts again from ``initial_delay``.
    """
    def __init__(self, initial_delay: float = 1.0, max_delay: float = 30.0, factor: float = 2.0):
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.factor = factor
        self.attempts = 0

    def next_delay(self) -> float:
        delay = min(self.initial_delay * (self.factor ** self.attempts), self.max_delay)
        # Stop growing once capped; the exponent would otherwise overflow on long outages
        if delay < self.max_delay:
            self.attempts += 1
        return delay

    def reset(self):
        self.attempts = 0
