"""Cooperative cancellation of an optimization run.

Classes:
    CancellationToken: Flag polled by the driver at half-iteration boundaries.

Functions:
    interrupt_on_sigint: Context manager routing SIGINT to a cancellation token.

"""

from typing import Iterator
from contextlib import contextmanager
import logging
import signal
import threading

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancellation request for one optimization run.

    Tokens are independent, so concurrent runs with their own tokens never
    interfere. The request is only observed between half-iterations.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request that the run stop at its next half-iteration boundary."""
        self._event.set()

    def reset(self) -> None:
        """Clear any pending request."""
        self._event.clear()

    @property
    def is_cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()


@contextmanager
def interrupt_on_sigint(token: CancellationToken) -> Iterator[CancellationToken]:
    """Cancel the token when SIGINT arrives while the block executes.

    The previous SIGINT handler is restored on exit. Signal handlers can only be
    installed from the main thread; elsewhere this is a no-op.

    Args:
        token: The token to cancel

    Yields:
        The same token.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def _handler(signum: int, frame: object) -> None:  # pylint: disable=unused-argument
        logger.error("Procedure was interrupted.")
        token.cancel()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)
