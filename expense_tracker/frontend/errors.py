from typing import Optional


class ClientError(Exception):
    """Base class for errors surfaced to the Streamlit client."""


class ValidationError(ClientError):
    """The form input is invalid; nothing was saved or sent."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class ApiError(ClientError):
    """The API rejected the request (4xx). Retrying the same request cannot help."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"API error {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class TransientError(ClientError):
    """No response at all, or a 5xx. Likely to succeed on retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
