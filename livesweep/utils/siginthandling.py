"""Lets a first `SIGINT` (`CTRL+C`) stop a sweep gracefully and a second one kill it"""

import signal
import sys
import threading


FIRST_SIGINT_MESSAGE = ('\nYou interrupted the sweep via `SIGINT` (`CTRL+C`). '
                        'I am tearing down the workers and keep the results '
                        'received so far. Press `CTRL+C` once more to exit immediately.\n')


class _GracefulInterrupt(object):
    """Replaces the `SIGINT` handler while a sweep runs.

    The coordinator polls `hit` between messages.

    """
    def __init__(self):
        self.hit = False
        self._previous = None
        self.started = False

    def start(self):
        """Installs the handler, NO-OP outside of the main thread"""
        if self.started or threading.current_thread() is not threading.main_thread():
            return
        self._previous = signal.signal(signal.SIGINT, self._on_sigint)
        self.started = True

    def finalize(self):
        """Restores the previous handler and forgets earlier interrupts"""
        if self.started:
            signal.signal(signal.SIGINT, self._previous)
            self._previous = None
            self.started = False
        self.hit = False

    def _on_sigint(self, signum, frame):
        if self.hit:
            raise KeyboardInterrupt('Second SIGINT, exiting immediately!')
        self.hit = True
        sys.stderr.write(FIRST_SIGINT_MESSAGE)


sigint_handling = _GracefulInterrupt()
