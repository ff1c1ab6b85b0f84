"""Background lease renewal for held locks."""

import threading
from typing import Callable, Optional

import structlog

from .exceptions import StoreError

logger = structlog.get_logger(__name__)


class KeepAlive:
    """Periodically renews a lease from a daemon thread.

    ``renew`` must atomically refresh the TTL only while the caller still
    owns the record, and return False once it does not. A False result ends
    the loop and fires ``on_lost``; store errors are reported to
    ``on_error`` and the loop carries on with the next tick.
    """

    def __init__(
        self,
        name: str,
        renew: Callable[[], bool],
        interval: float,
        on_lost: Optional[Callable[["KeepAlive"], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.name = name
        self.interval = interval
        self.renewals = 0
        self.renewal_failures = 0
        self._renew = renew
        self._on_lost = on_lost
        self._on_error = on_error
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"keepalive:{name}", daemon=True
        )
        self._log = logger.bind(lock=name)

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stopped.is_set()

    def start(self) -> None:
        self._thread.start()
        self._log.debug("keepalive_started", interval=self.interval)

    def stop(self) -> None:
        """Stop renewing and wait for the renewal thread to exit.

        A tick already talking to the store finishes first; none starts
        after this returns.
        """
        self._stopped.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()
        self._log.debug("keepalive_stopped", renewals=self.renewals)

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                renewed = self._renew()
            except StoreError as e:
                self.renewal_failures += 1
                self._log.warning("lease_renewal_failed", error=str(e))
                self._call_hook(self._on_error, e)
                continue

            if not renewed:
                # released while this tick was in flight
                if self._stopped.is_set():
                    return
                self._log.warning("lease_lost")
                self._stopped.set()
                self._call_hook(self._on_lost, self)
                return

            self.renewals += 1
            self._log.debug("lease_renewed")

    def _call_hook(self, hook, arg) -> None:
        if hook is None:
            return
        try:
            hook(arg)
        except Exception:
            self._log.exception("renewal_hook_failed")
