# SPDX-License-Identifier: Apache-2.0

"""
PayMongo payment gateway client.

Creates and polls payment links over the PayMongo REST API using HTTP Basic
auth with the secret key. Gateway failures raise PaymentGatewayError carrying
the upstream error payload.
"""

import os
import logging
from typing import Any, Dict, Optional

import requests
from opentelemetry import trace

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.paymongo.com/v1"


class PaymentGatewayError(Exception):
    """Raised when the payment gateway rejects a call or cannot be reached."""

    def __init__(self, message: str, payload: Any = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload
        self.status_code = status_code


class PayMongoClient:
    """Thin client for the PayMongo links API."""

    def __init__(self, secret_key: Optional[str] = None, api_url: Optional[str] = None,
                 timeout: int = 15, session: Optional[requests.Session] = None):
        self.secret_key = secret_key if secret_key is not None else os.getenv("PAYMONGO_SECRET_KEY", "")
        self.api_url = (api_url or os.getenv("PAYMONGO_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.is_configured():
            raise PaymentGatewayError("Payment gateway is not configured")

        url = f"{self.api_url}{path}"
        with tracer.start_as_current_span("paymongo.request") as span:
            span.set_attributes({
                "http.method": method,
                "http.url": url
            })

            try:
                response = self.session.request(
                    method,
                    url,
                    json=payload,
                    auth=(self.secret_key, ""),
                    headers={"Accept": "application/json"},
                    timeout=self.timeout
                )
            except requests.RequestException as e:
                logger.error(f"PayMongo request failed: {str(e)}", extra={"path": path})
                raise PaymentGatewayError("Payment gateway unreachable", payload=str(e))

            span.set_attribute("http.status_code", response.status_code)

            try:
                body = response.json()
            except ValueError:
                body = {"raw": response.text}

            if response.status_code >= 400:
                logger.error(
                    "PayMongo returned an error",
                    extra={
                        "path": path,
                        "status_code": response.status_code,
                        "errors": body.get("errors") if isinstance(body, dict) else body
                    }
                )
                raise PaymentGatewayError(
                    "Payment gateway request failed",
                    payload=body.get("errors", body) if isinstance(body, dict) else body,
                    status_code=response.status_code
                )

            return body

    def create_link(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a payment link.

        Args:
            payload: ``{"data": {"attributes": {amount, description, remarks}}}``

        Returns:
            Dictionary with ``id``, ``checkout_url``, ``reference_number`` and ``status``
        """
        body = self._request("POST", "/links", payload)
        data = body.get("data") or {}
        attributes = data.get("attributes") or {}

        logger.info("Payment link created", extra={"link_id": data.get("id")})
        return {
            "id": data.get("id"),
            "checkout_url": attributes.get("checkout_url"),
            "reference_number": attributes.get("reference_number"),
            "status": attributes.get("status"),
        }

    def retrieve_link(self, link_id: str) -> Dict[str, Any]:
        """
        Fetch a payment link.

        Returns:
            Dictionary with ``id``, ``status`` (``unpaid`` or ``paid``) and ``payments``
        """
        body = self._request("GET", f"/links/{link_id}")
        data = body.get("data") or {}
        attributes = data.get("attributes") or {}
        return {
            "id": data.get("id"),
            "status": attributes.get("status"),
            "amount": attributes.get("amount"),
            "payments": attributes.get("payments") or [],
        }
