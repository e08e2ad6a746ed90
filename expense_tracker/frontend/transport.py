import time
from typing import Callable, Optional

import requests

from expense_tracker.frontend.errors import ApiError, TransientError
from expense_tracker.logging_setup import get_logger

logger = get_logger("expense_tracker.frontend.transport")

DEFAULT_MAX_RETRIES = 1
DEFAULT_BASE_DELAY = 0.6


def error_detail(resp: requests.Response) -> str:
    """Best-effort human readable message from an error response body."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or ""

    detail = body.get("detail", body.get("error")) if isinstance(body, dict) else body
    if isinstance(detail, list):
        # FastAPI validation errors: [{"loc": [...], "msg": "..."}]
        return ", ".join(
            str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in detail
        )
    if detail is None:
        return resp.text
    return str(detail)


class RetryingTransport:
    """
    Runs one remote call, retrying only failures that may succeed on retry:
    no response at all, or a 5xx. A 4xx is raised straight away as ApiError.

    The delay before retry k (1-indexed) is `base_delay * k`.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    def call(
        self,
        operation: Callable[[], requests.Response],
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> requests.Response:
        retries = self.max_retries if max_retries is None else max_retries
        retries = max(0, retries)
        delay = self.base_delay if base_delay is None else base_delay

        last_error: Optional[TransientError] = None
        for attempt in range(retries + 1):
            if attempt > 0:
                wait = delay * attempt
                logger.warning(
                    "Retrying after transient failure (retry %d/%d in %.2fs): %s",
                    attempt, retries, wait, last_error,
                )
                self._sleep(wait)

            try:
                resp = operation()
            except requests.RequestException as e:
                last_error = TransientError(_describe_network_error(e))
                last_error.__cause__ = e
                continue

            if resp.status_code >= 500:
                last_error = TransientError(
                    f"Server error {resp.status_code}: {error_detail(resp)}",
                    status_code=resp.status_code,
                )
                continue
            if resp.status_code >= 400:
                raise ApiError(resp.status_code, error_detail(resp))
            return resp

        assert last_error is not None
        raise last_error


def _describe_network_error(e: requests.RequestException) -> str:
    if isinstance(e, requests.exceptions.Timeout):
        return "Request timed out."
    if isinstance(e, requests.exceptions.ConnectionError):
        return "Cannot reach API server."
    return f"Request failed: {e}"
