import os
from typing import Any, Optional

import requests

from expense_tracker.frontend.errors import ApiError
from expense_tracker.frontend.transport import RetryingTransport

DEFAULT_API_BASE = "http://localhost:8000"
DEFAULT_TIMEOUT = 10.0


class ExpenseApiClient:
    """
    Thin client for the expense API. Every call runs through the retrying
    transport and is bounded by a fixed per-attempt timeout.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[RetryingTransport] = None,
        session=None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or os.getenv("API_BASE_URL", DEFAULT_API_BASE)).rstrip("/")
        self.token = token
        self.transport = transport or RetryingTransport(
            max_retries=int(os.getenv("EXPENSE_API_MAX_RETRIES", "1")),
            base_delay=float(os.getenv("EXPENSE_API_RETRY_DELAY", "0.6")),
        )
        self.session = session or requests.Session()
        self.timeout = timeout or float(os.getenv("EXPENSE_API_TIMEOUT", str(DEFAULT_TIMEOUT)))

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    # ── Auth ──────────────────────────────────────────────────────────────────

    def register(self, name: str, email: str, password: str) -> dict[str, Any]:
        payload = {"name": name, "email": email, "password": password}
        resp = self.transport.call(
            lambda: self.session.post(self._url("/auth/register"), json=payload, timeout=self.timeout)
        )
        return resp.json()

    def login(self, email: str, password: str) -> dict[str, Any]:
        payload = {"email": email, "password": password}
        resp = self.transport.call(
            lambda: self.session.post(self._url("/auth/login"), json=payload, timeout=self.timeout)
        )
        return resp.json()

    # ── Expenses ──────────────────────────────────────────────────────────────

    def create_expense(self, body: dict[str, str]) -> dict[str, Any]:
        """POST /expenses. Returns {"outcome": "created"|"existing", "record": {...}}."""
        resp = self.transport.call(
            lambda: self.session.post(
                self._url("/expenses"), json=body, headers=self._headers(), timeout=self.timeout
            )
        )
        return resp.json()

    def list_expenses(self, category: Optional[str] = None, sort: str = "date_desc") -> dict[str, Any]:
        """GET /expenses. Returns {"expenses": [...], "total": "...", "count": n}."""
        params = {"sort": sort}
        if category:
            params["category"] = category
        resp = self.transport.call(
            lambda: self.session.get(
                self._url("/expenses"), params=params, headers=self._headers(), timeout=self.timeout
            )
        )
        return resp.json()

    def list_categories(self) -> list[str]:
        resp = self.transport.call(
            lambda: self.session.get(
                self._url("/expenses/categories"), headers=self._headers(), timeout=self.timeout
            )
        )
        return resp.json()

    def delete_expense(self, expense_id: str) -> dict[str, Any]:
        """DELETE /expenses/{id}. A missing expense is reported as outcome "not_found"."""
        try:
            resp = self.transport.call(
                lambda: self.session.delete(
                    self._url(f"/expenses/{expense_id}"), headers=self._headers(), timeout=self.timeout
                )
            )
        except ApiError as e:
            if e.status_code == 404:
                return {"outcome": "not_found", "record": None}
            raise
        return resp.json()
