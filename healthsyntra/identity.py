# healthsyntra/identity.py

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import requests
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from healthsyntra.errors import (
    AuthenticationError,
    ConfigurationError,
    NotAuthenticated,
    ReauthenticationRequired,
)
from healthsyntra.google_helpers import (
    FIREBASE_API_KEY,
    HTTP_TIMEOUT,
    PROJECT_ID,
    RECENT_LOGIN_MAX_AGE_SECONDS,
)

logger = logging.getLogger("healthsyntra_backend")

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password. Please try again."

FIREBASE_ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_PASSWORD": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_LOGIN_CREDENTIALS": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_IDP_RESPONSE": INVALID_CREDENTIALS_MESSAGE,
    "EMAIL_EXISTS": "This email address is already registered. Please login or use a different email.",
    "WEAK_PASSWORD": "The password is too weak. Please use at least 6 characters.",
    "USER_DISABLED": "This account has been disabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
}


def auth_error_message(code: Optional[str]) -> str:
    """
    Maps an Identity Toolkit error code to a user-friendly message.
    Codes may carry a suffix, e.g. "WEAK_PASSWORD : Password should be at least 6 characters".
    """
    if not code:
        return AuthenticationError.default_message
    base = code.split(":", 1)[0].strip()
    return FIREBASE_ERROR_MESSAGES.get(base, AuthenticationError.default_message)


@dataclass
class Identity:
    uid: str
    email: str
    id_token: Optional[str] = None
    auth_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class IdentityProvider:
    """
    Firebase Authentication through the Identity Toolkit REST API.

    Sign-in methods return an Identity whose auth_time is "now": a session is
    fresh right after the user proves who they are.
    """

    def __init__(
        self,
        api_key: str = FIREBASE_API_KEY,
        *,
        project_id: str = PROJECT_ID,
        http: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT,
        recent_login_max_age: int = RECENT_LOGIN_MAX_AGE_SECONDS,
    ):
        self.api_key = api_key
        self.project_id = project_id
        self.timeout = timeout
        self.recent_login_max_age = recent_login_max_age
        self._http = http or requests.Session()

    def _post(self, method: str, body: dict) -> dict:
        if not self.api_key:
            raise ConfigurationError("Server configuration error: FIREBASE_API_KEY is not set.")

        url = f"{IDENTITY_TOOLKIT_URL}/accounts:{method}"
        try:
            resp = self._http.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[AUTH] accounts:{method} request failed: {e}")
            raise AuthenticationError() from e

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if resp.status_code >= 400:
            code = ((data or {}).get("error") or {}).get("message")
            logger.warning(f"[AUTH] accounts:{method} rejected: {code}")
            if code and code.startswith("CREDENTIAL_TOO_OLD_LOGIN_AGAIN"):
                raise ReauthenticationRequired()
            if code and code.startswith(("INVALID_ID_TOKEN", "TOKEN_EXPIRED", "USER_NOT_FOUND")):
                raise NotAuthenticated("Your session has expired. Please sign in again.")
            raise AuthenticationError(auth_error_message(code), code=code)

        return data

    def _identity_from_response(self, data: dict) -> Identity:
        return Identity(
            uid=data["localId"],
            email=data.get("email", ""),
            id_token=data.get("idToken"),
        )

    def sign_up(self, email: str, password: str) -> Identity:
        data = self._post("signUp", {"email": email, "password": password, "returnSecureToken": True})
        return self._identity_from_response(data)

    def sign_in_with_password(self, email: str, password: str) -> Identity:
        data = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._identity_from_response(data)

    def sign_in_with_google(self, google_id_token: str, request_uri: str = "http://localhost") -> Identity:
        data = self._post(
            "signInWithIdp",
            {
                "postBody": f"id_token={google_id_token}&providerId=google.com",
                "requestUri": request_uri,
                "returnIdpCredential": True,
                "returnSecureToken": True,
            },
        )
        return self._identity_from_response(data)

    def verify_id_token(self, token: str) -> Identity:
        """
        Verifies a Firebase ID token issued to this project. auth_time comes
        from the token, so a long-lived session is not treated as fresh.
        """
        try:
            claims = google_id_token.verify_firebase_token(
                token, google_requests.Request(), audience=self.project_id
            )
        except ValueError as e:
            logger.warning(f"[AUTH] Invalid ID token: {e}")
            raise NotAuthenticated("Your session is invalid. Please sign in again.") from e

        if not claims:
            raise NotAuthenticated("Your session is invalid. Please sign in again.")

        auth_time = claims.get("auth_time") or claims.get("iat")
        return Identity(
            uid=claims.get("user_id") or claims["sub"],
            email=claims.get("email", ""),
            id_token=token,
            auth_time=datetime.fromtimestamp(int(auth_time), tz=timezone.utc),
        )

    def is_fresh(self, identity: Identity, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        age = (now - identity.auth_time).total_seconds()
        return age <= self.recent_login_max_age

    def delete_account(self, identity: Identity) -> None:
        if not identity.id_token:
            raise NotAuthenticated("No user logged in to delete.")
        self._post("delete", {"idToken": identity.id_token})
        logger.info(f"[AUTH] Deleted identity {identity.uid}")
