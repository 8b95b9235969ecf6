from __future__ import annotations


class GitdanticError(Exception):
    """Base exception for gitdantic errors."""


class ConfigurationError(GitdanticError):
    """Raised when client or collection configuration is malformed."""


class UnknownFormatError(GitdanticError):
    """Raised when a requested serialization format is not supported."""


class NotFoundError(GitdanticError):
    """Raised when a collection has no backing file in the repository."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"No file found at '{path}'")


class ConflictError(GitdanticError):
    """Raised when a guarded write is rejected because the file has changed.

    ``expected_revision`` is the token the writer supplied; ``None`` means the
    writer asked to create a file that already exists.
    """

    def __init__(self, path: str, expected_revision: str | None, detail: str | None = None) -> None:
        self.path = path
        self.expected_revision = expected_revision
        if expected_revision is None:
            message = f"Cannot create '{path}': a file already exists at that path"
        else:
            message = f"File '{path}' changed since revision {expected_revision[:12]}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class DecodeError(GitdanticError):
    """Raised when stored content does not parse as a sequence of documents."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class TransportError(GitdanticError):
    """Raised for connectivity, authentication or rate-limit failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
