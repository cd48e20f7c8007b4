from abc import ABC, abstractmethod
import logging
import threading


logger = logging.getLogger(__name__)


class ChallengeHandler(ABC):
    """The contract between an authorization manager and the code owning one realm."""

    @abstractmethod
    def handle_challenge(self, manager, challenge, context):
        """Called when the server challenges this realm.

        Eventually, call ``manager.submit_answer(answer, realm)``,
        or ``manager.remove_expected_answer(realm)`` if there is no answer.
        """

    @abstractmethod
    def handle_failure(self, context, info):
        pass

    @abstractmethod
    def handle_success(self, context, info):
        pass


class ChallengeHandlerRegistry(object):
    """Maps a realm to its :class:`ChallengeHandler`."""
    def __init__(self, handlers=None):
        self._lock = threading.Lock()
        self._handlers = dict(handlers or {})

    def register(self, realm, handler):
        if not realm:
            raise ValueError("realm must be provided")
        if handler is None:
            raise ValueError("handler must be provided")
        with self._lock:
            self._handlers[realm] = handler
        logger.debug("Registered challenge handler for realm %s", realm)

    def unregister(self, realm):
        with self._lock:
            return self._handlers.pop(realm, None)

    def get(self, realm):
        with self._lock:
            return self._handlers.get(realm)

    def realms(self):
        with self._lock:
            return list(self._handlers)

    def __contains__(self, realm):
        return self.get(realm) is not None


class AuthenticationListener(ABC):  # Implemented by an app, typically with some UI
    @abstractmethod
    def on_challenge_received(self, handler, challenge, context):
        """Obtain credentials somehow, then call ``handler.submit_answer(...)``
        or ``handler.submit_failure(...)``, possibly from another thread."""

    def on_success(self, context, info):
        logger.debug("Authentication succeeded: %s", info)

    def on_failure(self, context, info):
        logger.debug("Authentication failed: %s", info)


class RealmChallengeHandler(ChallengeHandler):
    """A :class:`ChallengeHandler` which hands challenges to an
    :class:`AuthenticationListener`, one manager at a time.

    While one manager is waiting for an answer of this realm,
    other managers challenged for the same realm are parked in a waiting list,
    so that the end user is asked only once.
    They are released after the active manager succeeds, or failed otherwise.
    """
    def __init__(self, realm, listener: AuthenticationListener):
        self.realm = realm
        self._listener = listener
        self._lock = threading.RLock()
        self._active_manager = None
        self._waiting_managers = []

    def handle_challenge(self, manager, challenge, context):
        with self._lock:
            if self._active_manager is not None:
                self._waiting_managers.append(manager)
                return
            self._active_manager = manager
        self._listener.on_challenge_received(self, challenge, context)

    def submit_answer(self, answer):
        with self._lock:
            manager, self._active_manager = self._active_manager, None
        if manager is None:
            logger.warning("No pending challenge for realm %s. Answer ignored.", self.realm)
            return {}
        if answer is not None:
            return manager.submit_answer(answer, self.realm)
        return manager.remove_expected_answer(self.realm)

    def submit_success(self):
        with self._lock:
            manager, self._active_manager = self._active_manager, None
        result = manager.remove_expected_answer(self.realm) if manager else {}
        self._release_waiting_managers()
        return result

    def submit_failure(self, info=None):
        with self._lock:
            manager, self._active_manager = self._active_manager, None
        if manager:
            manager.request_failed(info)
        self._release_waiting_managers()

    def handle_success(self, context, info):
        self._listener.on_success(context, info)
        with self._lock:
            self._active_manager = None
        self._release_waiting_managers()

    def handle_failure(self, context, info):
        self._listener.on_failure(context, info)
        with self._lock:
            self._active_manager = None
            waiting, self._waiting_managers = self._waiting_managers, []
        for manager in waiting:
            manager.request_failed(None)

    def _release_waiting_managers(self):
        with self._lock:
            waiting, self._waiting_managers = self._waiting_managers, []
        for manager in waiting:  # Each of them shall now retry without our answer
            manager.remove_expected_answer(self.realm)
