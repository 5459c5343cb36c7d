from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .config import settings
from .logs import json_log
from .models import Product

RETRY_STATUSES = {429, 500, 502, 503, 504}


class ApiError(RuntimeError):
    def __init__(self, message: str, *, status: Optional[int] = None, path: str = ""):
        super().__init__(message)
        self.status = status
        self.path = path


@dataclass(frozen=True)
class ApiClient:
    """Thin client for the billing REST API (products, invoices, returns)."""

    api_base: str = settings.api_url
    token: str = settings.api_token
    timeout_s: int = settings.api_timeout_s
    max_retries: int = 3

    def _retry_wait(self, attempt: int, method: str, path: str, reason: str) -> bool:
        # Exponential backoff capped at 10s; False once retries are used up.
        if attempt >= self.max_retries:
            return False
        delay = min(2 ** attempt, 10)
        json_log("warn", "api.request.retry", method=method, path=path, attempt=attempt + 1, delay_s=delay, reason=reason)
        time.sleep(delay)
        return True

    def req_json(self, method: str, path: str, payload: Any | None = None) -> Any:
        url = self.api_base.rstrip("/") + path
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "settlement-engine/1.0",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        # Decimals go out as strings so no precision is lost on the wire.
        data = json.dumps(payload, default=str).encode("utf-8") if payload is not None else None
        attempt = 0
        while True:
            req = Request(url, data=data, headers=headers, method=method)
            try:
                with urlopen(req, timeout=self.timeout_s) as resp:
                    body = resp.read().decode("utf-8")
                    return json.loads(body) if body else {}
            except HTTPError as e:
                body = e.read().decode("utf-8", errors="replace")
                # Rate limits and gateway/server hiccups are worth another try; 4xx are not.
                if e.code in RETRY_STATUSES and self._retry_wait(attempt, method, path, f"HTTP {e.code}"):
                    attempt += 1
                    continue
                json_log("error", "api.request.error", method=method, path=path, status=e.code, body=body[:200])
                raise ApiError(f"HTTP {e.code} {path}: {body[:800]}", status=e.code, path=path) from None
            except URLError as e:
                if self._retry_wait(attempt, method, path, str(e.reason)):
                    attempt += 1
                    continue
                json_log("error", "api.request.error", method=method, path=path, error=str(e))
                raise ApiError(f"network error {path}: {e}", path=path) from None

    def get_product(self, item_id: str) -> Product:
        return Product.model_validate(self.req_json("GET", f"/api/products/itemId/{quote(str(item_id), safe='')}"))

    def get_invoice(self, invoice_id: str) -> dict:
        return self.req_json("GET", f"/api/billing/{quote(str(invoice_id), safe='')}")

    def create_invoice(self, payload: dict) -> dict:
        return self.req_json("POST", "/api/billing/create", payload)

    def update_invoice(self, invoice_id: str, payload: dict) -> dict:
        return self.req_json("POST", f"/api/billing/edit/{quote(str(invoice_id), safe='')}", payload)

    def create_return(self, payload: dict) -> dict:
        return self.req_json("POST", "/api/returns/create", payload)

    def get_purchase(self, purchase_id: str) -> dict:
        return self.req_json("GET", f"/api/purchases/get/{quote(str(purchase_id), safe='')}")
