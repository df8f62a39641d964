# healthsyntra/auth_context.py

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional

from google.api_core import exceptions as gcp_exceptions

from healthsyntra.errors import (
    HealthsyntraError,
    NotAuthenticated,
    OperationResult,
    PersistenceError,
    ReauthenticationRequired,
    ValidationError,
)
from healthsyntra.identity import Identity, IdentityProvider
from healthsyntra.profile_store import ProfileStore, ProfileSubscription
from healthsyntra.schemas import PAID_TIERS, PaidTier, SubscriptionTier, UserProfile

logger = logging.getLogger("healthsyntra_backend")


class ProfileState(str, Enum):
    SIGNED_OUT = "signed_out"
    PROFILE_LOADING = "profile_loading"
    PROFILE_READY = "profile_ready"
    PROFILE_MISSING = "profile_missing"


class AuthContext:
    """
    Signed-in identity plus a live read replica of its users/{uid} profile.

    State machine:
        SIGNED_OUT -> (identity set) -> PROFILE_LOADING
        PROFILE_LOADING -> (document seen) -> PROFILE_READY | PROFILE_MISSING
        any -> (identity cleared) -> SIGNED_OUT

    At most one profile watch is active. Each identity change bumps a
    generation counter; snapshots from an older generation are dropped, so
    a late update for user A never lands after user B's watch is active.
    current_profile is written only by the active watch callback.
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        profile_store: ProfileStore,
    ):
        self._identity_provider = identity_provider
        self._profile_store = profile_store

        self._lock = threading.RLock()
        self._identity: Optional[Identity] = None
        self._profile: Optional[UserProfile] = None
        self._state = ProfileState.SIGNED_OUT
        self._subscription: Optional[ProfileSubscription] = None
        self._generation = 0
        self._listeners: List[Callable[["AuthContext"], None]] = []

    # -----------------------
    # Read side
    # -----------------------

    @property
    def current_user(self) -> Optional[Identity]:
        return self._identity

    @property
    def current_profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def state(self) -> ProfileState:
        return self._state

    @property
    def is_loading(self) -> bool:
        return self._state == ProfileState.PROFILE_LOADING

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None and not self.is_loading

    def add_listener(self, callback: Callable[["AuthContext"], None]) -> Callable[[], None]:
        """
        Registers a state-change callback. Returns the handle that removes it.
        """
        with self._lock:
            self._listeners.append(callback)

        def _remove() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return _remove

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            try:
                cb(self)
            except Exception:
                logger.exception("AuthContext listener failed")

    # -----------------------
    # Identity lifecycle
    # -----------------------

    def _detach_subscription_unlocked(self) -> Optional[ProfileSubscription]:
        subscription, self._subscription = self._subscription, None
        return subscription

    @staticmethod
    def _cancel(subscription: Optional[ProfileSubscription]) -> None:
        # Firestore joins its listener thread here, and that thread may be
        # waiting on self._lock; never call this while holding it.
        if subscription is not None:
            subscription.unsubscribe()

    def set_identity(self, identity: Optional[Identity]) -> None:
        with self._lock:
            previous = self._detach_subscription_unlocked()
            self._generation += 1
            generation = self._generation

            self._identity = identity
            self._profile = None

            if identity is None:
                self._state = ProfileState.SIGNED_OUT
            else:
                self._state = ProfileState.PROFILE_LOADING
                # Subscribing under the lock: a snapshot delivered before watch()
                # returns is held until self._subscription is in place.
                self._subscription = self._profile_store.watch(
                    identity.uid,
                    lambda profile: self._on_profile_snapshot(generation, profile),
                    on_error=lambda e: self._on_profile_error(generation, e),
                )
        self._cancel(previous)
        self._notify()

    def _on_profile_snapshot(self, generation: int, profile: Optional[UserProfile]) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug(f"Dropping profile snapshot from stale generation {generation}")
                return
            self._profile = profile
            self._state = (
                ProfileState.PROFILE_READY if profile is not None else ProfileState.PROFILE_MISSING
            )
        self._notify()

    def _on_profile_error(self, generation: int, error: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
            logger.error(f"Error fetching user profile: {error}")
            self._profile = None
            self._state = ProfileState.PROFILE_MISSING
        self._notify()

    def close(self) -> None:
        with self._lock:
            previous = self._detach_subscription_unlocked()
            self._generation += 1
            self._identity = None
            self._profile = None
            self._state = ProfileState.SIGNED_OUT
            self._listeners.clear()
        self._cancel(previous)

    def __enter__(self) -> "AuthContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -----------------------
    # Sign-in / sign-out
    # -----------------------

    def register(self, email: str, password: str) -> OperationResult:
        try:
            identity = self._identity_provider.sign_up(email, password)
            self._profile_store.create(
                UserProfile(uid=identity.uid, email=identity.email or email)
            )
        except HealthsyntraError as e:
            logger.error(f"Registration error: {e}")
            return OperationResult.fail(e)
        except gcp_exceptions.GoogleAPIError as e:
            logger.error(f"Registration error: could not create profile: {e}")
            return OperationResult.fail(PersistenceError("Could not create your profile."))

        self.set_identity(identity)
        return OperationResult.ok()

    def login(self, email: str, password: str) -> OperationResult:
        try:
            identity = self._identity_provider.sign_in_with_password(email, password)
        except HealthsyntraError as e:
            logger.error(f"Login error: {e}")
            return OperationResult.fail(e)

        self.set_identity(identity)
        return OperationResult.ok()

    def login_with_google(self, google_id_token: str) -> OperationResult:
        try:
            identity = self._identity_provider.sign_in_with_google(google_id_token)
            if self._profile_store.get(identity.uid) is None:
                self._profile_store.create(
                    UserProfile(uid=identity.uid, email=identity.email)
                )
        except HealthsyntraError as e:
            logger.error(f"Google login error: {e}")
            return OperationResult.fail(e)
        except gcp_exceptions.GoogleAPIError as e:
            logger.error(f"Google login error: could not load profile: {e}")
            return OperationResult.fail(PersistenceError("Could not load your profile."))

        self.set_identity(identity)
        return OperationResult.ok()

    def logout(self) -> None:
        self.set_identity(None)

    # -----------------------
    # Writes
    # -----------------------

    def set_tier(self, plan: PaidTier) -> OperationResult:
        plan = getattr(plan, "value", plan)
        if plan not in PAID_TIERS:
            return OperationResult.fail(ValidationError(f"Unknown plan: {plan}"))

        identity = self._identity
        if identity is None:
            return OperationResult.fail(NotAuthenticated())

        try:
            self._profile_store.update_fields(identity.uid, {"subscriptionPlan": plan})
        except gcp_exceptions.GoogleAPIError as e:
            logger.error(f"Failed to update subscription: {e}")
            return OperationResult.fail(PersistenceError("Could not update your subscription plan."))

        logger.info(f"Subscription for {identity.uid} set to {plan}")
        return OperationResult.ok()

    def delete_account(self) -> OperationResult:
        identity = self._identity
        if identity is None:
            return OperationResult.fail(NotAuthenticated("No user logged in to delete."))

        if not self._identity_provider.is_fresh(identity):
            return OperationResult.fail(ReauthenticationRequired())

        try:
            self._identity_provider.delete_account(identity)
        except HealthsyntraError as e:
            logger.error(f"Delete account error: {e}")
            return OperationResult.fail(e)

        # The identity is gone; stop watching before the profile document goes too.
        self.set_identity(None)

        try:
            self._profile_store.delete(identity.uid)
        except gcp_exceptions.GoogleAPIError as e:
            logger.error(f"Account {identity.uid} deleted but profile removal failed: {e}")
            return OperationResult.fail(
                PersistenceError("Your account was deleted but your profile data could not be removed.")
            )

        return OperationResult.ok()


def tier_of(context: AuthContext) -> SubscriptionTier:
    """
    Effective tier for feature gating: free unless a profile says otherwise.
    """
    profile = context.current_profile
    return profile.subscriptionPlan if profile is not None else SubscriptionTier.FREE
