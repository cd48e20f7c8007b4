"""Settings of the authorization server which a manager talks to."""

import os


AUTH_SERVER_NAME = "imf-authserver"


class AuthorizationConfig(object):
    def __init__(
        self,
        app_guid: str=None,
        *,
        server_host: str=None,
        default_protocol: str="https",
        region_suffix: str=".ng.bluemix.net",
        default_timeout: float=20,
    ):
        """Describe where the authorization server lives.

        An instance is usually created once per process, then handed to
        every :class:`realmauth.authorization.AuthorizationRequestManager`.

        :param str app_guid:
            The identifier of your application, as registered on the backend.
            It becomes the last segment of the authorization endpoint.

        :param str server_host:
            Optional. An explicit ``scheme://host[:port]`` of the authorization server.
            When absent, the host is derived from
            ``default_protocol`` and ``region_suffix``.

        :param str region_suffix:
            The region part of the backend's domain name, such as ``.eu-gb.bluemix.net``.

        :param float default_timeout:
            Seconds to wait for the authorization server,
            used when a request does not specify its own timeout.
        """
        self.app_guid = app_guid
        self.override_server_host = server_host
        self.default_protocol = default_protocol
        self.region_suffix = region_suffix
        self.default_timeout = default_timeout

    @classmethod
    def from_environ(cls, environ=None):
        environ = os.environ if environ is None else environ
        return cls(
            environ.get("REALMAUTH_APP_GUID"),
            server_host=environ.get("REALMAUTH_SERVER_HOST") or None,
            default_protocol=environ.get("REALMAUTH_PROTOCOL", "https"),
            region_suffix=environ.get("REALMAUTH_REGION_SUFFIX", ".ng.bluemix.net"),
            default_timeout=float(environ.get("REALMAUTH_TIMEOUT", 20)),
            )

    @property
    def server_host(self):
        if self.override_server_host:
            return self.override_server_host
        return f"{self.default_protocol}://{AUTH_SERVER_NAME}{self.region_suffix}"

    def __repr__(self):
        return "{}(app_guid={!r}, server_host={!r})".format(
            type(self).__name__, self.app_guid, self.server_host)
