"""Identity errors raised by identity providers."""


class AuthenticationError(Exception):
    """Raised when presented credentials cannot be verified."""

    def __init__(self, message: str, code: str = "auth_failed"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidCredentialsError(AuthenticationError):
    """Raised when credentials are present but invalid."""

    def __init__(self, reason: str = "Credential validation failed"):
        super().__init__(reason, "invalid_credentials")
