# src/spicecore/simulation/cancellation.py
import logging
import threading

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative cancellation flag shared between the thread running an
    analysis and the thread that wants to stop it. Drivers check it between
    transient steps and sweep points, never inside a Newton solve.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.info("Cancellation requested.")
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
