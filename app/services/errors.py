"""Error taxonomy for credential operations. Routes map code/status_code to HTTP responses."""


class CredentialError(Exception):
    """Base class for every failure a credential operation can report."""

    code = "credential_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(CredentialError):
    """Malformed input (password mismatch, length bounds). Message is safe to show."""

    code = "validation_error"
    status_code = 400


class ConflictError(CredentialError):
    """An account with this email already exists."""

    code = "conflict"
    status_code = 409


class InvalidCredentialsError(CredentialError):
    """Wrong email or password. Always the same message, whichever part was wrong."""

    code = "invalid_credentials"
    status_code = 401

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class AccountNotFoundError(CredentialError):
    code = "not_found"
    status_code = 401

    def __init__(self, message: str = "User not found") -> None:
        super().__init__(message)


class InvalidTokenError(CredentialError):
    """Reset token unknown, already used, or expired."""

    code = "invalid_token"
    status_code = 401

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class PersistenceError(CredentialError):
    """The user store failed; message carries the underlying error text."""

    code = "persistence_error"
    status_code = 500


class MailError(CredentialError):
    """The mailer could not deliver a message."""

    code = "mail_error"
    status_code = 502
