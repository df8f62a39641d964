# healthsyntra/checkout_service.py

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import stripe
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from healthsyntra.errors import GatewayError, ValidationError
from healthsyntra.google_helpers import CHECKOUT_CURRENCY, get_stripe_secret_key
from healthsyntra.pending_checkout_recorder import record_pending_checkout
from healthsyntra.schemas import CheckoutRequest

logger = logging.getLogger("healthsyntra_backend")

MISSING_FIELDS_MESSAGE = "Missing plan information or user email."


def to_minor_units(price: Any) -> int:
    """
    Decimal currency amount -> integer cents, rounded half-up (9.99 -> 999).
    Floats go through str() so their binary expansion never leaks in.
    """
    amount = price if isinstance(price, Decimal) else Decimal(str(price))
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_checkout_request(payload: Any) -> CheckoutRequest:
    if not isinstance(payload, dict):
        raise ValidationError(MISSING_FIELDS_MESSAGE)
    try:
        return CheckoutRequest.model_validate(payload)
    except PydanticValidationError as e:
        logger.warning(f"Rejected checkout request: {e.errors()}")
        raise ValidationError(MISSING_FIELDS_MESSAGE) from e


class CheckoutService:
    """
    Server half of the checkout flow: one hosted, monthly, card-only Stripe
    Checkout Session per call. It does not decide payment success or failure.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        *,
        currency: str = CHECKOUT_CURRENCY,
    ):
        self.session_factory = session_factory
        self.currency = currency

    def create_session(self, payload: Any, base_url: str) -> dict:
        api_key = get_stripe_secret_key()
        request = parse_checkout_request(payload)
        plan = request.plan
        amount_minor = to_minor_units(plan.price)
        base_url = base_url.rstrip("/")

        try:
            session = stripe.checkout.Session.create(
                api_key=api_key,
                payment_method_types=["card"],
                customer_email=request.userEmail,
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {
                                "name": f"{plan.name} Plan",
                                "description": f"Monthly subscription to the Healthsyntra {plan.name} plan.",
                            },
                            "unit_amount": amount_minor,
                            "recurring": {"interval": "month"},
                        },
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=f"{base_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/checkout/cancel",
            )
        except Exception as e:
            logger.error(f"Stripe session creation error: {e}")
            raise GatewayError(f"Stripe Error: {e}") from e

        logger.info(f"Created checkout session {session.id} for plan {plan.name} ({amount_minor} {self.currency})")

        if self.session_factory is not None:
            try:
                record_pending_checkout(
                    self.session_factory,
                    session_id=session.id,
                    user_email=request.userEmail,
                    plan_id=plan.id,
                    plan_name=plan.name,
                    amount_minor=amount_minor,
                    currency=self.currency,
                )
            except SQLAlchemyError as e:
                # The session exists at Stripe; the user can still pay.
                logger.error(f"Could not record pending checkout {session.id}: {e}")

        return {"sessionId": session.id, "url": getattr(session, "url", None)}
