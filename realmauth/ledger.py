import logging
import threading

from .exceptions import ExchangeFinishedError


logger = logging.getLogger(__name__)

PENDING = ""  # An expected but not yet submitted answer. It is also how the wire shows it.


class AnswerLedger(object):
    """Challenge answers of one authorization exchange, keyed by realm.

    Handlers may submit answers from any thread.
    Each mutation and its "are we filled now" check happen under one lock,
    and only the mutation which moves the ledger into ``RESENDING`` gets a True,
    so that racing handlers trigger exactly one resend.
    """
    IDLE = "idle"
    PENDING = "pending"
    FILLED = "filled"
    RESENDING = "resending"
    FINISHED = "finished"  # The caller has been notified; late answers are refused

    def __init__(self):
        self._lock = threading.Lock()
        self._answers = None  # None means no challenge has been seen yet
        self._state = self.IDLE

    @property
    def state(self):
        return self._state

    def expect(self, realms):
        with self._lock:
            if self._answers is None:
                self._answers = {}
            for realm in realms:
                self._answers[realm] = PENDING
            self._state = self.FILLED if self._is_filled() else self.PENDING
            logger.debug("Expecting answers for %s", list(realms))

    def submit(self, realm, answer):
        with self._lock:
            self._refuse_if_finished(realm)
            if self._answers is None:
                self._answers = {}
            self._answers[realm] = answer
            return self._claim_resend()

    def remove(self, realm):
        with self._lock:
            self._refuse_if_finished(realm)
            if self._answers is not None:
                self._answers.pop(realm, None)
            return self._claim_resend()

    def is_filled(self):
        with self._lock:
            return self._is_filled()

    def _is_filled(self):
        return not self._answers or all(
            not (isinstance(v, str) and v == PENDING) for v in self._answers.values())

    def _claim_resend(self):
        if not self._is_filled():
            self._state = self.PENDING
            return False
        if self._state == self.RESENDING:
            return False  # Another mutation already claimed it
        self._state = self.RESENDING
        return True

    def resend_finished(self):
        with self._lock:
            if self._state == self.RESENDING:
                self._state = self.IDLE

    def snapshot(self):
        with self._lock:
            return None if self._answers is None else dict(self._answers)

    def clear(self):
        with self._lock:
            self._answers = None
            self._state = self.IDLE

    def finish(self):
        """Returns True only for the first call after the exchange started."""
        with self._lock:
            if self._state == self.FINISHED:
                return False
            self._answers = None
            self._state = self.FINISHED
            return True

    @property
    def finished(self):
        return self._state == self.FINISHED

    def _refuse_if_finished(self, realm):
        if self._state == self.FINISHED:
            raise ExchangeFinishedError(
                f"The exchange has already finished. Answer of {realm} is refused.")
