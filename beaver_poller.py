"""
Beaver Status Poller

Calls ``BeaverDevice.update_status()`` on a fixed period from a background
thread. The poll period comes from the device configuration; the device
itself has no timer.
"""

import threading
from typing import Optional

# Configuration constants
DEFAULT_POLL_PERIOD = 1.0  # seconds
STOP_TIMEOUT = 3.0         # seconds


class StatusPoller:
    """Recurring status tick for one device."""

    def __init__(self, device, logger, poll_period: float = DEFAULT_POLL_PERIOD):
        """Initialize poller.

        Args:
            device: BeaverDevice to poll
            logger: Logger instance for error reporting
            poll_period: Seconds between ticks

        Raises:
            ValueError: If poll_period is not positive
        """
        if poll_period <= 0:
            raise ValueError("Poll period must be positive")

        self.logger = logger
        self._device = device
        self._poll_period = poll_period
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def poll_period(self) -> float:
        return self._poll_period

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the background poll thread."""
        with self._lock:
            if self._thread and self._thread.is_alive():
                self.logger.warning("Status poller already running")
                return

            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name='BeaverPoller',
                daemon=True
            )
            self._thread.start()
            self.logger.info(f"Status poller started, period {self._poll_period}s")

    def stop(self):
        """Stop the background poll thread."""
        with self._lock:
            if self._thread and self._thread.is_alive():
                self.logger.info("Stopping status poller...")
                self._stop_event.set()
                self._thread.join(timeout=STOP_TIMEOUT)

                if self._thread.is_alive():
                    self.logger.warning("Status poller did not stop gracefully")
                else:
                    self.logger.info("Status poller stopped")

            self._thread = None

    def tick(self):
        """Run one status update synchronously.

        Returns:
            Whatever ``update_status()`` returned
        """
        return self._device.update_status()

    def _run(self):
        """Thread body: tick, then wait one period or until stopped."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                self.logger.error(f"Error in status poll: {e}")

            if self._stop_event.wait(self._poll_period):
                break
