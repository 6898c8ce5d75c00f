# Overview: HTTP client for the GloriaFood POS API (order pop and menu fetch).

from __future__ import annotations

from typing import Any

import requests

from .concurrency import Deadline, DeadlineExceeded


class RemoteFetchError(RuntimeError):
    """The platform was unreachable or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GloriaFoodClient:
    """
    Thin wrapper over the two pull endpoints we use:

    - POST {base}/pos/order/pop   -> {count, orders: [...]}
    - GET  {base}/pos/menu        -> {id, restaurant_id, currency, active, categories: [...]}

    Failed fetches are not retried here; the caller decides.
    """

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        *,
        api_version: str = "2",
        timeout: float = 15.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.api_version = api_version
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "GloriaFoodClient":
        return cls(
            config["GLORIAFOOD_API_URL"],
            config["GLORIAFOOD_SECRET_KEY"],
            api_version=config["GLORIAFOOD_API_VERSION"],
            timeout=config["REMOTE_TIMEOUT_SECONDS"],
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": self.secret_key,
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Glf-Api-Version": self.api_version,
        }

    def _request(self, method: str, path: str, what: str, deadline: Deadline | None) -> Any:
        deadline = deadline or Deadline.none()
        deadline.check(what)
        timeout = deadline.remaining(cap=self.timeout)
        if timeout is not None and timeout <= 0:
            # requests rejects a zero timeout
            raise DeadlineExceeded(f"Deadline exceeded {what}")
        try:
            resp = self.session.request(method, f"{self.base_url}{path}", headers=self._headers(), timeout=timeout)
        except requests.Timeout as exc:
            if deadline.expired():
                raise DeadlineExceeded(f"Deadline exceeded {what}") from exc
            raise RemoteFetchError(f"Error {what}: timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            raise RemoteFetchError(f"Error {what}: {exc}") from exc

        if not resp.ok:
            raise RemoteFetchError(f"Error {what}: {resp.status_code} {resp.reason}", status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteFetchError(f"Error {what}: response is not JSON") from exc

    def poll_orders(self, *, deadline: Deadline | None = None) -> dict:
        return self._request("POST", "/pos/order/pop", "polling orders", deadline)

    def fetch_menu(self, *, deadline: Deadline | None = None) -> dict:
        return self._request("GET", "/pos/menu", "fetching menu", deadline)
