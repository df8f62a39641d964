import json
import os
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as google_auth_exceptions
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from healthsyntra.checkout_service import CheckoutService
from healthsyntra.errors import ConfigurationError, HealthsyntraError, PersistenceError, ValidationError
from healthsyntra.google_helpers import create_session_factory, get_app_base_url, logger
from healthsyntra.pending_checkout_recorder import get_pending_checkout
from healthsyntra.schemas import PLANS, TIER_FEATURES
from healthsyntra.symptom_normalizer import SymptomNormalizer

app = FastAPI(title="Healthsyntra")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ALLOW_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

LEDGER_UNAVAILABLE_MESSAGE = "Checkout records are unavailable right now. Please try again later."

_session_factory = None
_checkout_service: Optional[CheckoutService] = None
_symptom_normalizer: Optional[SymptomNormalizer] = None


def get_session_factory():
    global _session_factory
    if _session_factory is None:
        try:
            _session_factory = create_session_factory()
        except (
            SQLAlchemyError,
            ConfigurationError,
            gcp_exceptions.GoogleAPIError,
            google_auth_exceptions.GoogleAuthError,
        ) as e:
            logger.error(f"[DB] Pending checkout database unavailable: {e}")
            raise PersistenceError(LEDGER_UNAVAILABLE_MESSAGE) from e
    return _session_factory


def get_checkout_service() -> CheckoutService:
    global _checkout_service
    if _checkout_service is None:
        try:
            session_factory = get_session_factory()
        except PersistenceError:
            # Checkout goes ahead unrecorded; the next request retries the database.
            return CheckoutService(None)
        _checkout_service = CheckoutService(session_factory)
    return _checkout_service


def get_symptom_normalizer() -> SymptomNormalizer:
    global _symptom_normalizer
    if _symptom_normalizer is None:
        _symptom_normalizer = SymptomNormalizer()
    return _symptom_normalizer


@app.exception_handler(HealthsyntraError)
async def healthsyntra_error_handler(request: Request, exc: HealthsyntraError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def _read_json(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Request body must be JSON.") from e


def _base_url(request: Request) -> str:
    return get_app_base_url() or str(request.base_url).rstrip("/")


@app.post("/api/stripe/checkout-session")
async def create_checkout_session(
    request: Request,
    service: CheckoutService = Depends(get_checkout_service),
):
    payload = await _read_json(request)
    return await run_in_threadpool(service.create_session, payload, _base_url(request))


@app.post("/api/symptoms/normalize")
async def normalize_symptoms(
    request: Request,
    normalizer: SymptomNormalizer = Depends(get_symptom_normalizer),
):
    payload = await _read_json(request)
    symptoms = payload.get("symptoms") if isinstance(payload, dict) else None
    if not isinstance(symptoms, str):
        raise ValidationError("Please describe your symptoms.")
    normalized = await run_in_threadpool(normalizer.normalize, symptoms)
    return {"normalizedSymptoms": normalized}


@app.get("/api/plans")
async def list_plans():
    return {
        "plans": [
            {"id": plan.id, "name": plan.name, "price": float(plan.price)}
            for plan in PLANS.values()
        ],
        "features": TIER_FEATURES,
    }


@app.get("/checkout/success")
async def checkout_success(session_id: Optional[str] = None, session_factory=Depends(get_session_factory)):
    try:
        pending = get_pending_checkout(session_factory, session_id) if session_id else None
    except SQLAlchemyError as e:
        logger.error(f"[DB] Could not look up checkout {session_id}: {e}")
        raise PersistenceError(LEDGER_UNAVAILABLE_MESSAGE) from e
    return {
        "status": "success",
        "message": "Thank you for subscribing to Healthsyntra! Your payment has been processed and your new plan is being activated.",
        "plan": pending["plan_name"] if pending else None,
        # Nothing confirms the payment server-side yet, so the tier is not upgraded here.
        "activation": "pending_confirmation",
    }


@app.get("/checkout/cancel")
async def checkout_cancel():
    return {
        "status": "cancelled",
        "message": "Your checkout was cancelled. You have not been charged.",
    }


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Healthsyntra API")
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
