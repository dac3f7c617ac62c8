# Overview: Payment gateway client used to recheck the status of order payments.

from __future__ import annotations

import logging

import httpx
from flask import current_app

from ..errors import ExternalGatewayError
"""
Gateway status contract

get_status(reference) returns one of "pending", "completed", "failed".

Numeric gateway codes: 0 = pending, 1 = processing, 2 = failed/cancelled,
3 = successful. String statuses and a boolean "paid" flag are also accepted.
Anything else is treated as still pending.

Transport errors, non-2xx responses and unreadable bodies raise
ExternalGatewayError; callers must leave local state untouched.
"""

GATEWAY_PENDING = "pending"
GATEWAY_COMPLETED = "completed"
GATEWAY_FAILED = "failed"

_CODE_MAP = {
    0: GATEWAY_PENDING,
    1: GATEWAY_PENDING,
    2: GATEWAY_FAILED,
    3: GATEWAY_COMPLETED,
}

_TEXT_MAP = {
    "pending": GATEWAY_PENDING,
    "processing": GATEWAY_PENDING,
    "new": GATEWAY_PENDING,
    "completed": GATEWAY_COMPLETED,
    "success": GATEWAY_COMPLETED,
    "successful": GATEWAY_COMPLETED,
    "approved": GATEWAY_COMPLETED,
    "paid": GATEWAY_COMPLETED,
    "failed": GATEWAY_FAILED,
    "cancelled": GATEWAY_FAILED,
    "canceled": GATEWAY_FAILED,
    "rejected": GATEWAY_FAILED,
    "expired": GATEWAY_FAILED,
}

logger = logging.getLogger(__name__)


def normalize_status(data: dict) -> str:
    """Map a gateway response body to pending / completed / failed."""
    if data.get("paid") is True:
        return GATEWAY_COMPLETED

    raw = data.get("status")
    if raw is None and isinstance(data.get("data"), dict):
        raw = data["data"].get("status")

    if isinstance(raw, bool):
        return GATEWAY_PENDING
    if isinstance(raw, int):
        return _CODE_MAP.get(raw, GATEWAY_PENDING)
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text.isdigit():
            return _CODE_MAP.get(int(text), GATEWAY_PENDING)
        return _TEXT_MAP.get(text, GATEWAY_PENDING)
    return GATEWAY_PENDING


class PaymentGateway:
    """Interface for payment status lookups."""

    def get_status(self, reference: str) -> str:
        raise NotImplementedError


class HttpPaymentGateway(PaymentGateway):
    def __init__(self, base_url: str, token: str = "", timeout: float = 20.0, client: httpx.Client | None = None):
        if not base_url:
            raise ExternalGatewayError("Payment gateway URL is not configured")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get_status(self, reference: str) -> str:
        if not reference:
            raise ExternalGatewayError("Order has no payment reference to check")

        url = f"{self.base_url}/transactions/{reference}"
        try:
            if self._client is not None:
                response = self._client.get(url, headers=self._headers(), timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("Payment gateway request for %s failed: %s", reference, exc)
            raise ExternalGatewayError(f"Payment gateway unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "Payment gateway returned %s for %s: %s",
                response.status_code,
                reference,
                response.text[:200],
            )
            raise ExternalGatewayError(f"Payment gateway returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ExternalGatewayError("Payment gateway returned an unreadable response") from exc
        if not isinstance(data, dict):
            raise ExternalGatewayError("Payment gateway returned an unexpected response")

        status = normalize_status(data)
        logger.info("Payment gateway status for %s: %s", reference, status)
        return status


def get_payment_gateway() -> PaymentGateway:
    """
    Gateway for the current app.

    Tests install a fake under app.extensions["payment_gateway"].
    """
    gateway = current_app.extensions.get("payment_gateway")
    if gateway is not None:
        return gateway
    return HttpPaymentGateway(
        current_app.config.get("PAYMENT_GATEWAY_URL", ""),
        token=current_app.config.get("PAYMENT_GATEWAY_TOKEN", ""),
        timeout=current_app.config.get("PAYMENT_GATEWAY_TIMEOUT", 20.0),
    )
