"""Sends requests to the authorization server, answers its challenges,
and re-sends the request once every challenged realm has an answer.

A typical exchange looks like this::

    manager = AuthorizationRequestManager(config, registry)
    manager.initialize(context=app_context, listener=my_listener)
    manager.send_request("authorization", RequestOptions(method="GET"))

If the server responds with a 401 composite challenge,
each realm's :class:`realmauth.handlers.ChallengeHandler` is asked for an answer.
When the last answer arrives, the manager re-sends the original request
with an ``Authorization: Bearer {"realm": answer, ...}`` header.
``my_listener`` only hears about the final outcome.
"""
from abc import ABC, abstractmethod
import json
import logging
from typing import Dict  # Needed in Python 3.7 & 3.8
from urllib.parse import urlsplit

from .config import AUTH_SERVER_NAME, AuthorizationConfig
from .exceptions import ConfigurationError, ExchangeFinishedError, ProtocolError
from .handlers import ChallengeHandlerRegistry
from .ledger import AnswerLedger
from .transport import GET, HttpTransport, RequestSpec
from .utils import (
    concatenate_urls, extract_secure_json, get_parameter_value_from_query)


logger = logging.getLogger(__name__)

AUTH_PATH = "authorization/v1/apps/"
WL_RESULT = "wl_result"
LOCATION_HEADER_NAME = "Location"
AUTHENTICATE_HEADER_NAME = "WWW-Authenticate"
AUTHENTICATE_HEADER_VALUE = "WL-Composite-Challenge"
AUTH_FAILURE_VALUE_NAME = "WL-Authentication-Failure"
AUTH_SUCCESS_VALUE_NAME = "WL-Authentication-Success"
CHALLENGES_VALUE_NAME = "challenges"

# Outcomes of reconciling one response
_SUCCEEDED = "succeeded"
_FAILED = "failed"
_CHALLENGED = "challenged"  # The handlers now own the exchange


class ResponseListener(ABC):
    @abstractmethod
    def on_success(self, response):
        pass

    @abstractmethod
    def on_failure(self, response, cause, extended_info):
        pass


class _DefaultResponseListener(ResponseListener):
    _MESSAGE = "ResponseListener is not specified. Defaulting to empty listener."

    def on_success(self, response):
        logger.debug(self._MESSAGE)

    def on_failure(self, response, cause, extended_info):
        logger.debug(self._MESSAGE)


class RequestOptions(object):
    """The caller's options of one request. They are cached to re-send the request."""
    def __init__(
        self,
        method: str=GET,
        *,
        timeout: float=0,  # 0 means to use the configured default timeout
        headers: Dict[str, str]=None,
        parameters: Dict[str, str]=None,
    ):
        self.method = method
        self.timeout = timeout
        self.headers = headers
        self.parameters = parameters


class AuthorizationRequestManager(ResponseListener):
    """Drives one authorization exchange, including its challenge/resend cycles.

    Do not share an instance among concurrent exchanges,
    because a second :meth:`send_request` replaces the request to be re-sent.
    """
    def __init__(
        self,
        config: AuthorizationConfig,
        registry: ChallengeHandlerRegistry,
        *,
        transport=None,
    ):
        """
        :param AuthorizationConfig config: Where the authorization server lives.

        :param ChallengeHandlerRegistry registry:
            The challenge handlers, keyed by realm.

        :param transport:
            Optional. Anything with a ``send(request_spec, listener)`` method
            which eventually calls exactly one of ``listener.on_success(response)``
            or ``listener.on_failure(response, cause, extended_info)``.
            Defaults to :class:`realmauth.transport.HttpTransport`.
        """
        self._config = config
        self._registry = registry
        self._transport = transport or HttpTransport()
        self._ledger = AnswerLedger()
        self._request_path = None
        self._request_options = None
        self._context = None
        self._listener = _DefaultResponseListener()

    def initialize(self, context=None, listener: ResponseListener=None):
        """Bind the caller's listener, and a context which is passed to challenge handlers."""
        self._context = context
        self._listener = listener or _DefaultResponseListener()
        logger.debug("AuthorizationRequestManager is initialized.")

    @property
    def answers(self):
        """A copy of the answers collected so far, or None before any challenge."""
        return self._ledger.snapshot()

    def send_request(self, path: str, options: RequestOptions=None):
        """Start a new exchange. Answers of any previous exchange are forgotten."""
        self._ledger.clear()
        self._send_request(path, options)

    def _send_request(self, path, options):
        if path is None:
            raise ValueError("'path' parameter can't be None.")
        if path.startswith("http") and ":" in path:  # A full url
            parts = urlsplit(path)
            root_url = f"{parts.scheme}://{parts.netloc}"
            path = path[len(root_url):]
        else:
            if not self._config.app_guid:
                raise ConfigurationError(
                    "app_guid is required to build a relative authorization url")
            root_url = "/".join([
                self._config.server_host,
                AUTH_SERVER_NAME,
                AUTH_PATH + self._config.app_guid,
                ])
        self._send_request_internal(root_url, path, options)

    def resend_request(self):
        if self._request_path is None:
            raise RuntimeError("There is no prior request to re-send")
        logger.debug("Re-sending request to %s", self._request_path)
        self._send_request(self._request_path, self._request_options)

    def _send_request_internal(self, root_url, path, options):
        logger.debug("Sending request to root: %s with path: %s", root_url, path)
        options = options or RequestOptions()
        self._request_path = concatenate_urls(root_url, path)
        self._request_options = options

        headers = dict(options.headers or {})
        answers = self._ledger.snapshot()
        if answers is not None:
            headers["Authorization"] = "Bearer {}".format(
                json.dumps(answers, separators=(",", ":")).replace("\n", ""))
            logger.debug("Added authorization header for realms %s", list(answers))
        self._transport.send(RequestSpec(
            self._request_path,
            options.method or GET,
            timeout=options.timeout or self._config.default_timeout,
            headers=headers,
            parameters=options.parameters,
            ), self)

    def submit_answer(self, answer, realm):
        """Record the answer of a realm, and re-send the request if it was the last one.

        This never raises, because it is typically called from UI code.

        :return:
            * On failure, a dict containing "error" and "error_description".
            * ``{"resent": True}`` if this call re-sent the request.
            * Otherwise an empty dict.
        """
        try:
            return self._resend_if_claimed(self._ledger.submit(realm, answer))
        except ExchangeFinishedError as e:
            logger.warning("%s", e)
            return {"error": e.error, "error_description": e.error_description}
        except Exception as e:
            logger.exception("submit_answer failed with exception: %s", e)
            return {"error": "bookkeeping_failed", "error_description": str(e)}

    def remove_expected_answer(self, realm):
        """Stop waiting for a realm's answer. The return value is the same as
        :meth:`submit_answer`."""
        try:
            return self._resend_if_claimed(self._ledger.remove(realm))
        except ExchangeFinishedError as e:
            logger.warning("%s", e)
            return {"error": e.error, "error_description": e.error_description}
        except Exception as e:
            logger.exception("remove_expected_answer failed with exception: %s", e)
            return {"error": "bookkeeping_failed", "error_description": str(e)}

    def _resend_if_claimed(self, claimed):
        if not claimed:
            return {}
        try:
            self.resend_request()
        except Exception:
            self._ledger.resend_finished()  # So that a later answer can retry
            raise
        return {"resent": True}

    def is_answers_filled(self):
        return self._ledger.is_filled()

    def request_failed(self, info=None):
        logger.error("Request failed with info: %s", info)
        self._notify_failure(None, None, info)

    def on_success(self, response):
        if self._ledger.finished:
            logger.warning("Exchange already finished. Ignoring %s", response)
            return
        self._ledger.resend_finished()
        self._process_response_wrapper(response, is_failure=False)

    def on_failure(self, response, cause=None, extended_info=None):
        if self._ledger.finished:
            logger.warning("Exchange already finished. Ignoring %s", response)
            return
        self._ledger.resend_finished()
        if self._is_authorization_required(response):
            self._process_response_wrapper(response, is_failure=True)
        else:
            self._notify_failure(response, cause, extended_info)

    def _process_response_wrapper(self, response, *, is_failure):
        try:
            if is_failure or not response.is_redirect:
                outcome = self._process_response(response)
            else:
                outcome = self._process_redirect_response(response)
        except Exception as e:
            logger.error("Failed to process response: %s", e)
            self._notify_failure(response, e, None)
            return
        if outcome == _SUCCEEDED:
            self._notify_success(response)
        elif outcome == _FAILED:
            self._notify_failure(response, None, None)

    def _process_redirect_response(self, response):
        location = response.get_first_header(LOCATION_HEADER_NAME)
        if not location:
            raise ProtocolError("Redirect response does not contain 'Location' header.")
        result = get_parameter_value_from_query(urlsplit(location).query, WL_RESULT)
        if result is None:
            return _SUCCEEDED  # The rest is handled by the caller
        try:
            json_result = json.loads(result)
        except ValueError as e:
            raise ProtocolError(f"{WL_RESULT} is not valid JSON: {e}") from e
        if not isinstance(json_result, dict):
            raise ProtocolError(f"{WL_RESULT} should be a JSON object")

        failures = json_result.get(AUTH_FAILURE_VALUE_NAME)
        if isinstance(failures, dict):
            for handler, realm in self._get_handlers(failures):
                handler.handle_failure(self._context, failures[realm])
            return _FAILED

        successes = json_result.get(AUTH_SUCCESS_VALUE_NAME)
        if isinstance(successes, dict):
            for handler, realm in self._get_handlers(successes):
                handler.handle_success(self._context, successes[realm])
        return _SUCCEEDED

    def _process_response(self, response):
        json_response = extract_secure_json(response)
        challenges = (json_response or {}).get(CHALLENGES_VALUE_NAME)
        if not isinstance(challenges, dict):
            return _SUCCEEDED
        handlers = self._get_handlers(challenges)  # Fails early on an unknown realm
        if self._is_authorization_required(response):
            self._ledger.expect(list(challenges))
        for handler, realm in handlers:
            handler.handle_challenge(self, challenges[realm], self._context)
        return _CHALLENGED

    def _get_handlers(self, realm_map):
        # Returns [(handler, realm), ...], or raises if any realm is unknown
        handlers = []
        for realm in realm_map:
            handler = self._registry.get(realm)
            if handler is None:
                raise ConfigurationError(
                    f"Challenge handler for realm is not found: {realm}")
            handlers.append((handler, realm))
        return handlers

    @staticmethod
    def _is_authorization_required(response):
        # A 401 which carries our composite challenges, rather than a plain 401
        if response is not None and response.status == 401:
            header = response.get_first_header(AUTHENTICATE_HEADER_NAME)
            return (header or "").lower() == AUTHENTICATE_HEADER_VALUE.lower()
        return False

    def _notify_success(self, response):
        if not self._ledger.finish():
            logger.warning("Listener was already notified. Dropping success.")
            return
        self._listener.on_success(response)

    def _notify_failure(self, response, cause, extended_info):
        if not self._ledger.finish():
            logger.warning("Listener was already notified. Dropping failure.")
            return
        self._listener.on_failure(response, cause, extended_info)
