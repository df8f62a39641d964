# healthsyntra/checkout_client.py

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from healthsyntra.errors import (
    ClientRedirectError,
    GatewayError,
    HealthsyntraError,
    OperationResult,
    ValidationError,
)
from healthsyntra.google_helpers import HTTP_TIMEOUT, get_stripe_publishable_key
from healthsyntra.schemas import CheckoutPlan

logger = logging.getLogger("healthsyntra_backend")

CHECKOUT_SESSION_PATH = "/api/stripe/checkout-session"


@dataclass
class CheckoutRedirect:
    session_id: str
    url: str


class CheckoutInitiator:
    """
    Client half of the checkout flow: ask our server for a Checkout Session,
    then hand back where the browser has to go.

    A second call while one is pending is the caller's to prevent.
    """

    def __init__(
        self,
        api_base_url: str,
        *,
        publishable_key: Optional[str] = None,
        http: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self._publishable_key = publishable_key
        self._http = http or requests.Session()
        self.timeout = timeout

    @property
    def publishable_key(self) -> Optional[str]:
        return self._publishable_key or get_stripe_publishable_key()

    def start_checkout(self, plan: CheckoutPlan, user_email: str) -> CheckoutRedirect:
        if not plan.name or plan.price is None or plan.price <= 0:
            raise ValidationError("Missing plan information.")
        if not user_email or not user_email.strip():
            raise ValidationError("Missing user email.")

        body = {
            "plan": {"id": plan.id, "name": plan.name, "price": float(plan.price)},
            "userEmail": user_email,
        }
        try:
            resp = self._http.post(
                f"{self.api_base_url}{CHECKOUT_SESSION_PATH}",
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Stripe checkout error: {e}")
            raise GatewayError() from e

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if not resp.ok:
            message = (data or {}).get("error") or "Failed to create checkout session."
            if resp.status_code == 400:
                raise ValidationError(message)
            raise GatewayError(message)

        return self.redirect_to_checkout(data.get("sessionId"), data.get("url"))

    def redirect_to_checkout(self, session_id: Optional[str], url: Optional[str]) -> CheckoutRedirect:
        if not self.publishable_key:
            logger.error("Stripe publishable key is not set. Please check your .env file.")
            raise ClientRedirectError()
        if not session_id or not url:
            raise ClientRedirectError("Stripe did not return a checkout page for this session.")
        return CheckoutRedirect(session_id=session_id, url=url)

    def start_checkout_result(self, plan: CheckoutPlan, user_email: str) -> OperationResult:
        try:
            return OperationResult.ok(self.start_checkout(plan, user_email))
        except HealthsyntraError as e:
            return OperationResult.fail(e)
