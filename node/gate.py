import threading


class Gate:
    """
    One-shot "wait until signalled" flag.

    signal() may come before, during or after any wait(); once open the gate
    stays open and every waiter returns True.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._open = False

    def signal(self):
        with self._cond:
            self._open = True
            self._cond.notify_all()

    def wait(self, timeout=None) -> bool:
        """Block until signalled or timeout seconds pass. Returns True if signalled."""
        with self._cond:
            return self._cond.wait_for(lambda: self._open, timeout)

    def is_open(self) -> bool:
        with self._cond:
            return self._open
