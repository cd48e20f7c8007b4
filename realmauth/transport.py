import json
import logging
from typing import (
    List, Dict, Optional,  # Needed in Python 3.7 & 3.8
)

import requests
from urllib3.util.retry import Retry


logger = logging.getLogger(__name__)

GET = "GET"
_REDIRECT_STATUSES = frozenset([300, 301, 302, 303, 307, 308])


def _get_http_client():  # Better reuse the result of this function to save resources
    http_client = requests.Session()
    a = requests.adapters.HTTPAdapter(
        # Retry gateway hiccups only. A 401 or a redirect is part of the protocol,
        # so it must reach the listener untouched.
        max_retries=Retry(
            total=3, backoff_factor=0.1, status_forcelist=[502, 503, 504],
            redirect=False, raise_on_status=False))
    http_client.mount("http://", a)
    http_client.mount("https://", a)
    return http_client


class RequestSpec(object):
    """A fully built request. It is not modified once built,
    so that it can be sent again verbatim."""
    __slots__ = ("url", "method", "timeout", "headers", "parameters")

    def __init__(
        self,
        url: str,
        method: str=GET,
        *,
        timeout: float=None,
        headers: Dict[str, str]=None,
        parameters: Dict[str, str]=None,
    ):
        # Bypass our own __setattr__, which guards the built instance
        object.__setattr__(self, "url", url)
        object.__setattr__(self, "method", method.upper())
        object.__setattr__(self, "timeout", timeout)
        object.__setattr__(self, "headers", dict(headers or {}))
        object.__setattr__(self, "parameters", dict(parameters or {}))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is read-only")

    @property
    def uses_query_string(self):
        return self.method == GET

    def __repr__(self):
        return f"RequestSpec({self.method} {self.url})"


class Response(object):
    """A transport-neutral view of an HTTP response."""
    def __init__(
        self,
        status: int,
        *,
        headers: Dict[str, List[str]]=None,
        text: str="",
    ):
        self.status = status
        self.text = text
        # Header names are case-insensitive, each name maps to its ordered values
        self.headers = {}
        for name, values in (headers or {}).items():
            self.headers.setdefault(name.lower(), []).extend(
                [values] if isinstance(values, str) else values)

    @classmethod
    def from_requests(cls, resp):
        raw_headers = getattr(resp.raw, "headers", None)
        if hasattr(raw_headers, "getlist"):  # urllib3 keeps repeated headers apart
            headers = {name: raw_headers.getlist(name) for name in raw_headers.keys()}
        else:
            headers = dict(resp.headers)
        return cls(resp.status_code, headers=headers, text=resp.text)

    def get_header(self, name) -> List[str]:
        return self.headers.get(name.lower(), [])

    def get_first_header(self, name) -> Optional[str]:
        values = self.get_header(name)
        return values[0] if values else None

    def json(self):
        return json.loads(self.text)

    @property
    def is_redirect(self):
        return self.status in _REDIRECT_STATUSES

    @property
    def is_successful(self):
        return 200 <= self.status < 300

    def __repr__(self):
        return f"Response: Status={self.status}, Response Text: {self.text}"


class HttpTransport(object):
    """Sends a :class:`RequestSpec` with requests,
    then reports back to exactly one of the listener's callbacks.
    """
    def __init__(self, session=None, executor=None):
        """
        :param requests.Session session:
            Optional. Defaults to a new session with a minimal retry policy.

        :param concurrent.futures.Executor executor:
            Optional. When present, requests are sent from the executor,
            and the listener is called back from there.
            Otherwise :meth:`send` blocks until the listener has been called.
        """
        self._session = session or _get_http_client()
        self._executor = executor

    def send(self, spec: RequestSpec, listener):
        if self._executor:
            self._executor.submit(self._send, spec, listener).add_done_callback(
                _log_background_error)
        else:
            self._send(spec, listener)

    def _send(self, spec, listener):
        logger.debug("Sending %s", spec)
        try:
            resp = self._session.request(
                spec.method,
                spec.url,
                params=spec.parameters if spec.uses_query_string else None,
                data=None if spec.uses_query_string else spec.parameters,
                headers=spec.headers,
                timeout=spec.timeout,
                allow_redirects=False,  # The redirect itself carries the result
                )
        except requests.exceptions.RequestException as e:
            logger.exception("Request to %s failed", spec.url)
            listener.on_failure(None, e, {
                "error": type(e).__name__,
                "error_description": str(e),
                })
            return
        response = Response.from_requests(resp)
        if response.is_successful or response.is_redirect:
            listener.on_success(response)
        else:
            listener.on_failure(response, None, None)


def _log_background_error(future):
    # Nobody else waits for this future, so its error would be lost otherwise
    error = None if future.cancelled() else future.exception()
    if error is not None:
        logger.error(
            "Background request or its listener failed",
            exc_info=(type(error), error, error.__traceback__))
