"""Detection of repeated identical tool calls."""

import hashlib
import logging

logger = logging.getLogger(__name__)

LOOP_THRESHOLD = 3


class LoopDetector:
    """Counts consecutive tool calls with the same name and arguments.

    Attributes:
        threshold: Number of identical consecutive calls treated as a loop
        count: Length of the current run of identical calls
    """

    def __init__(self, threshold: int = LOOP_THRESHOLD) -> None:
        self.threshold = threshold
        self.count = 0
        self._last_fingerprint = ""

    @staticmethod
    def fingerprint(name: str, arguments: str) -> str:
        return hashlib.sha256(f"{name}:{arguments}".encode()).hexdigest()

    def check(self, name: str, arguments: str) -> bool:
        """Record a call and report whether it completes a loop.

        Returns:
            True once the same call has been seen ``threshold`` times in a row
        """
        key = self.fingerprint(name, arguments)
        if key == self._last_fingerprint:
            self.count += 1
        else:
            self._last_fingerprint = key
            self.count = 1

        if self.count >= self.threshold:
            logger.warning(f"Tool call loop detected: {name} repeated {self.count} times")
            return True
        return False

    def reset(self) -> None:
        self._last_fingerprint = ""
        self.count = 0
