"""Custom exceptions for credential handling."""


class AuthError(Exception):
    """Raised when a bearer credential cannot be obtained or has expired."""

    pass


class StateMismatchError(AuthError):
    """The state returned by the authorization server does not match the one sent."""

    pass
