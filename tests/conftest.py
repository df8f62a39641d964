from datetime import datetime, timedelta, timezone

import pytest
from google.api_core import exceptions as gcp_exceptions
from pydantic import ValidationError as PydanticValidationError

from healthsyntra.errors import PersistenceError
from healthsyntra.identity import Identity
from healthsyntra.profile_store import ProfileSubscription
from healthsyntra.schemas import UserProfile


class FakeWatch:
    def __init__(self, uid, on_change, on_error):
        self.uid = uid
        self.on_change = on_change
        self.on_error = on_error
        self.on_close = None
        self.active = True

    def unsubscribe(self):
        self.active = False
        if self.on_close is not None:
            self.on_close()


class FakeProfileStore:
    """
    In-memory stand-in for the Firestore users collection.
    Snapshots are delivered only when a test calls push()/deliver().
    """

    def __init__(self):
        self.docs = {}
        self.watches = []
        self.writes = []
        self.fail_writes = False

    def _check_write(self):
        if self.fail_writes:
            raise gcp_exceptions.PermissionDenied("Missing or insufficient permissions.")

    def get(self, uid):
        data = self.docs.get(uid)
        if not data:
            return None
        try:
            return UserProfile.model_validate(data)
        except PydanticValidationError as e:
            raise PersistenceError("Your profile data could not be read.") from e

    def create(self, profile):
        self._check_write()
        self.writes.append(("create", profile.uid, profile.to_document()))
        self.docs[profile.uid] = profile.to_document()

    def update_fields(self, uid, fields):
        self._check_write()
        self.writes.append(("update", uid, dict(fields)))
        if uid not in self.docs:
            raise gcp_exceptions.NotFound(f"No document to update: users/{uid}")
        self.docs[uid].update(fields)

    def delete(self, uid):
        self._check_write()
        self.writes.append(("delete", uid, None))
        self.docs.pop(uid, None)

    def watch(self, uid, on_change, on_error=None):
        w = FakeWatch(uid, on_change, on_error)
        self.watches.append(w)
        return ProfileSubscription(w)

    def active_watches(self):
        return [w for w in self.watches if w.active]

    def deliver(self, w):
        data = self.docs.get(w.uid)
        w.on_change(UserProfile.model_validate(data) if data else None)

    def push(self, uid):
        for w in self.active_watches():
            if w.uid == uid:
                self.deliver(w)


class FakeIdentityProvider:
    def __init__(self, max_age=300):
        self.max_age = max_age
        self.accounts = {}
        self.deleted = []
        self.sign_in_error = None
        self.delete_error = None

    def _identity(self, email, fresh=True):
        uid = self.accounts.setdefault(email, f"uid-{len(self.accounts) + 1}")
        auth_time = datetime.now(timezone.utc)
        if not fresh:
            auth_time -= timedelta(hours=2)
        return Identity(uid=uid, email=email, id_token=f"token-{uid}", auth_time=auth_time)

    def sign_up(self, email, password):
        if self.sign_in_error:
            raise self.sign_in_error
        return self._identity(email)

    def sign_in_with_password(self, email, password):
        if self.sign_in_error:
            raise self.sign_in_error
        return self._identity(email)

    def sign_in_with_google(self, google_id_token):
        if self.sign_in_error:
            raise self.sign_in_error
        return self._identity(f"{google_id_token}@gmail.com")

    def is_fresh(self, identity, now=None):
        now = now or datetime.now(timezone.utc)
        return (now - identity.auth_time).total_seconds() <= self.max_age

    def delete_account(self, identity):
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(identity.uid)


class FakeLlm:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def invoke(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeHttp:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def profile_store():
    return FakeProfileStore()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def stale_identity():
    return Identity(
        uid="uid-stale",
        email="stale@example.com",
        id_token="token-stale",
        auth_time=datetime.now(timezone.utc) - timedelta(hours=2),
    )
