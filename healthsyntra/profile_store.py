# healthsyntra/profile_store.py

import logging
import threading
from typing import Callable, Optional

from google.cloud import firestore
from pydantic import ValidationError as PydanticValidationError

from healthsyntra.errors import PersistenceError
from healthsyntra.google_helpers import PROJECT_ID, USERS_COLLECTION, _build_creds
from healthsyntra.schemas import UserProfile

logger = logging.getLogger("healthsyntra_backend")


class ProfileSubscription:
    """
    Cancellation handle for a live profile watch. unsubscribe() is idempotent.
    """

    def __init__(self, watch) -> None:
        self._watch = watch
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._watch.unsubscribe()


class ProfileStore:
    """
    users/{uid} documents in Firestore: {uid, email, subscriptionPlan}.

    Write failures surface as google.api_core exceptions; callers convert them.
    A stored document that does not decode raises PersistenceError.
    """

    def __init__(self, client=None, collection: str = USERS_COLLECTION):
        self._client = client
        self.collection = collection

    @property
    def client(self):
        if self._client is None:
            self._client = firestore.Client(project=PROJECT_ID, credentials=_build_creds())
        return self._client

    def _doc(self, uid: str):
        return self.client.collection(self.collection).document(str(uid))

    def get(self, uid: str) -> Optional[UserProfile]:
        snap = self._doc(uid).get()
        if not snap.exists:
            return None
        try:
            return UserProfile.model_validate(snap.to_dict())
        except PydanticValidationError as e:
            logger.error(f"Error decoding user profile {uid}: {e}")
            raise PersistenceError("Your profile data could not be read.") from e

    def create(self, profile: UserProfile) -> None:
        self._doc(profile.uid).set(profile.to_document())

    def update_fields(self, uid: str, fields: dict) -> None:
        self._doc(uid).update(fields)

    def delete(self, uid: str) -> None:
        self._doc(uid).delete()

    def watch(
        self,
        uid: str,
        on_change: Callable[[Optional[UserProfile]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> ProfileSubscription:
        """
        Live view of users/{uid}. on_change receives the decoded profile, or None
        when the document does not exist. Callbacks run on the Firestore
        listener thread.
        """

        def _on_snapshot(doc_snapshots, changes, read_time):
            snap = next((s for s in doc_snapshots if s.exists), None)
            if snap is None:
                logger.warning(f"User document not found in Firestore for UID: {uid}")
                on_change(None)
                return
            try:
                profile = UserProfile.model_validate(snap.to_dict())
            except PydanticValidationError as e:
                logger.error(f"Error decoding user profile {uid}: {e}")
                if on_error is not None:
                    on_error(e)
                return
            on_change(profile)

        watch = self._doc(uid).on_snapshot(_on_snapshot)
        return ProfileSubscription(watch)
