class AuthorizationError(Exception):
    """Base class of the errors raised while reconciling an authorization response.

    Like an OAuth2 error response, it carries an ``error`` code
    and an optional ``error_description``.
    """
    error = "authorization_error"

    def __init__(self, error_description=None, *, error=None):
        super(AuthorizationError, self).__init__(error_description)
        self.error = error or self.error
        self.error_description = error_description


class ProtocolError(AuthorizationError):
    # The server response is missing a field which the protocol requires
    error = "protocol_error"


class ConfigurationError(AuthorizationError):
    # Typically no challenge handler was registered for a realm
    error = "configuration_error"


class ExchangeFinishedError(AuthorizationError):
    # An answer arrived after the caller had been notified of the outcome
    error = "exchange_finished"
