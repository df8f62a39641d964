# healthsyntra/schemas.py
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SubscriptionTier(str, Enum):
    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"


PaidTier = Literal["standard", "premium"]
PAID_TIERS = (SubscriptionTier.STANDARD.value, SubscriptionTier.PREMIUM.value)


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be empty")
    return value


class SymptomRequest(BaseModel):
    symptoms: str = Field(..., description="The user's symptoms described in natural language.")

    # Embedded verbatim in the prompt: checked for blankness, never stripped.
    check_symptoms = field_validator("symptoms")(_not_blank)


class SymptomResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    normalizedSymptoms: str = Field(
        ...,
        description="The user's symptoms, normalized into a standard format.",
    )

    check_normalized = field_validator("normalizedSymptoms")(_not_blank)


class UserProfile(BaseModel):
    uid: str
    email: str
    subscriptionPlan: SubscriptionTier = SubscriptionTier.FREE

    def to_document(self) -> dict:
        return self.model_dump(mode="json")


class CheckoutPlan(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., gt=0)


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    plan: CheckoutPlan
    userEmail: str = Field(..., min_length=1)


PLANS = {
    "standard": CheckoutPlan(id="standard", name="Standard", price=Decimal("9.99")),
    "premium": CheckoutPlan(id="premium", name="Premium", price=Decimal("19.99")),
}

TIER_FEATURES = {
    "free": [
        "1 AI Symptom Analysis per month",
        "View immediate results",
        "Community support",
    ],
    "standard": [
        "15 AI Symptom Analyses per month",
        "Save and track your health history",
        "Schedule follow-up appointments",
        "Generate AI Health Summaries",
        "Email support",
    ],
    "premium": [
        "Unlimited AI Symptom Analyses",
        "All Standard plan features",
        "Priority AI processing queue",
        "Advanced health trend insights (coming soon)",
        "Priority chat & email support",
    ],
}
