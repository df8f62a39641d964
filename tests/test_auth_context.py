import threading
from datetime import datetime, timezone

import pytest

from healthsyntra.auth_context import AuthContext, ProfileState, tier_of
from healthsyntra.errors import (
    AuthenticationError,
    NotAuthenticated,
    PersistenceError,
    ReauthenticationRequired,
    ValidationError,
)
from healthsyntra.identity import Identity
from healthsyntra.schemas import SubscriptionTier, UserProfile


@pytest.fixture
def context(identity_provider, profile_store):
    with AuthContext(identity_provider, profile_store) as ctx:
        yield ctx


def _identity(uid, email):
    return Identity(uid=uid, email=email, id_token=f"token-{uid}", auth_time=datetime.now(timezone.utc))


def _seed(store, uid, email, plan="free"):
    store.docs[uid] = UserProfile(uid=uid, email=email, subscriptionPlan=plan).to_document()


def test_starts_signed_out(context):
    assert context.state == ProfileState.SIGNED_OUT
    assert context.current_user is None
    assert context.current_profile is None
    assert not context.is_authenticated


def test_identity_goes_through_loading_to_ready(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com", "standard")

    context.set_identity(_identity("uid-a", "a@example.com"))
    assert context.state == ProfileState.PROFILE_LOADING
    assert context.is_loading
    assert not context.is_authenticated

    profile_store.push("uid-a")
    assert context.state == ProfileState.PROFILE_READY
    assert context.current_profile.subscriptionPlan == SubscriptionTier.STANDARD
    assert context.is_authenticated


def test_missing_document_resolves_to_absent(context, profile_store):
    context.set_identity(_identity("uid-ghost", "ghost@example.com"))
    profile_store.push("uid-ghost")

    assert context.state == ProfileState.PROFILE_MISSING
    assert context.current_profile is None
    assert context.is_authenticated


def test_remote_changes_are_pushed_into_current_profile(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com")
    context.set_identity(_identity("uid-a", "a@example.com"))
    profile_store.push("uid-a")
    assert context.current_profile.subscriptionPlan == SubscriptionTier.FREE

    profile_store.docs["uid-a"]["subscriptionPlan"] = "premium"
    profile_store.push("uid-a")

    assert context.current_profile.subscriptionPlan == SubscriptionTier.PREMIUM
    assert tier_of(context) == SubscriptionTier.PREMIUM


def test_switching_identity_never_leaks_previous_user_updates(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com", "premium")
    _seed(profile_store, "uid-b", "b@example.com", "free")

    context.set_identity(_identity("uid-a", "a@example.com"))
    watch_a = profile_store.active_watches()[0]

    context.set_identity(_identity("uid-b", "b@example.com"))
    assert not watch_a.active
    assert [w.uid for w in profile_store.active_watches()] == ["uid-b"]

    profile_store.push("uid-b")
    # A's listener thread delivers late, after B is active
    profile_store.deliver(watch_a)

    assert context.current_profile.uid == "uid-b"
    assert context.current_profile.subscriptionPlan == SubscriptionTier.FREE
    assert context.current_user.uid == "uid-b"


def test_late_snapshot_before_new_document_does_not_fill_profile(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com", "premium")
    context.set_identity(_identity("uid-a", "a@example.com"))
    watch_a = profile_store.active_watches()[0]

    context.set_identity(_identity("uid-b", "b@example.com"))
    profile_store.deliver(watch_a)

    assert context.state == ProfileState.PROFILE_LOADING
    assert context.current_profile is None


def test_logout_cancels_subscription(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com")
    context.set_identity(_identity("uid-a", "a@example.com"))
    watch = profile_store.active_watches()[0]

    context.logout()

    assert not watch.active
    assert context.state == ProfileState.SIGNED_OUT
    assert context.current_profile is None
    assert tier_of(context) == SubscriptionTier.FREE


def test_set_tier_without_identity_does_not_write(context, profile_store):
    result = context.set_tier("premium")

    assert not result.success
    assert isinstance(result.error, NotAuthenticated)
    assert profile_store.writes == []


def test_set_tier_updates_single_field(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com")
    context.set_identity(_identity("uid-a", "a@example.com"))

    result = context.set_tier("premium")

    assert result.success
    assert profile_store.writes == [("update", "uid-a", {"subscriptionPlan": "premium"})]
    profile_store.push("uid-a")
    assert context.current_profile.subscriptionPlan == SubscriptionTier.PREMIUM


def test_set_tier_accepts_enum(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com")
    context.set_identity(_identity("uid-a", "a@example.com"))

    assert context.set_tier(SubscriptionTier.STANDARD).success
    assert profile_store.docs["uid-a"]["subscriptionPlan"] == "standard"


def test_set_tier_rejects_free_and_unknown_plans(context, profile_store):
    context.set_identity(_identity("uid-a", "a@example.com"))

    for plan in ("free", "gold"):
        result = context.set_tier(plan)
        assert isinstance(result.error, ValidationError)
    assert profile_store.writes == []


def test_set_tier_rejected_write_is_persistence_error(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com")
    context.set_identity(_identity("uid-a", "a@example.com"))
    profile_store.fail_writes = True

    result = context.set_tier("standard")

    assert isinstance(result.error, PersistenceError)
    assert result.message == "Could not update your subscription plan."


def test_register_creates_free_profile_and_signs_in(context, profile_store):
    result = context.register("new@example.com", "secret123")

    assert result.success
    uid = context.current_user.uid
    assert profile_store.docs[uid] == {"uid": uid, "email": "new@example.com", "subscriptionPlan": "free"}
    profile_store.push(uid)
    assert context.state == ProfileState.PROFILE_READY


def test_register_failure_is_reported_not_raised(context, identity_provider):
    identity_provider.sign_in_error = AuthenticationError(
        "This email address is already registered. Please login or use a different email.",
        code="EMAIL_EXISTS",
    )

    result = context.register("taken@example.com", "secret123")

    assert not result.success
    assert "already registered" in result.message
    assert context.state == ProfileState.SIGNED_OUT


def test_login_sets_identity(context, profile_store):
    result = context.login("a@example.com", "pw")

    assert result.success
    assert context.current_user.email == "a@example.com"
    assert len(profile_store.active_watches()) == 1


def test_google_login_creates_profile_only_once(context, profile_store):
    assert context.login_with_google("alice").success
    uid = context.current_user.uid
    profile_store.docs[uid]["subscriptionPlan"] = "premium"

    context.logout()
    assert context.login_with_google("alice").success

    creates = [w for w in profile_store.writes if w[0] == "create"]
    assert len(creates) == 1
    assert profile_store.docs[uid]["subscriptionPlan"] == "premium"


def test_delete_account_with_stale_session_leaves_profile(context, profile_store, identity_provider, stale_identity):
    _seed(profile_store, stale_identity.uid, stale_identity.email, "standard")
    before = dict(profile_store.docs[stale_identity.uid])
    context.set_identity(stale_identity)

    result = context.delete_account()

    assert isinstance(result.error, ReauthenticationRequired)
    assert "log back in" in result.message
    assert identity_provider.deleted == []
    assert profile_store.docs[stale_identity.uid] == before
    assert profile_store.writes == []


def test_delete_account_when_provider_demands_recent_login(context, profile_store, identity_provider):
    _seed(profile_store, "uid-a", "a@example.com")
    context.set_identity(_identity("uid-a", "a@example.com"))
    identity_provider.delete_error = ReauthenticationRequired()

    result = context.delete_account()

    assert isinstance(result.error, ReauthenticationRequired)
    assert "uid-a" in profile_store.docs


def test_delete_account_removes_identity_and_profile(context, profile_store, identity_provider):
    _seed(profile_store, "uid-a", "a@example.com")
    context.set_identity(_identity("uid-a", "a@example.com"))
    watch = profile_store.active_watches()[0]

    result = context.delete_account()

    assert result.success
    assert identity_provider.deleted == ["uid-a"]
    assert "uid-a" not in profile_store.docs
    assert not watch.active
    assert context.state == ProfileState.SIGNED_OUT


def test_delete_account_requires_identity(context):
    result = context.delete_account()
    assert isinstance(result.error, NotAuthenticated)


def test_listeners_are_notified_and_removable(context, profile_store):
    seen = []
    remove = context.add_listener(lambda ctx: seen.append(ctx.state))

    context.set_identity(_identity("uid-a", "a@example.com"))
    profile_store.push("uid-a")
    remove()
    context.logout()

    assert seen == [ProfileState.PROFILE_LOADING, ProfileState.PROFILE_MISSING]


def test_close_tears_down_active_watch(identity_provider, profile_store):
    ctx = AuthContext(identity_provider, profile_store)
    ctx.set_identity(_identity("uid-a", "a@example.com"))

    ctx.close()

    assert profile_store.active_watches() == []
    assert ctx.state == ProfileState.SIGNED_OUT


def test_register_with_rejected_profile_write_stays_signed_out(context, profile_store):
    profile_store.fail_writes = True

    result = context.register("new@example.com", "secret123")

    assert not result.success
    assert isinstance(result.error, PersistenceError)
    assert result.message == "Could not create your profile."
    assert context.state == ProfileState.SIGNED_OUT
    assert profile_store.watches == []


def test_google_login_with_undecodable_profile_is_reported_not_raised(context, profile_store):
    profile_store.docs["uid-1"] = {"uid": "uid-1", "email": "alice@gmail.com", "subscriptionPlan": "Premium"}

    result = context.login_with_google("alice")

    assert not result.success
    assert isinstance(result.error, PersistenceError)
    assert context.current_user is None
    assert profile_store.writes == []


def test_watch_error_resolves_to_missing_profile(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com", "premium")
    context.set_identity(_identity("uid-a", "a@example.com"))
    profile_store.push("uid-a")
    watch = profile_store.active_watches()[0]

    watch.on_error(RuntimeError("permission denied"))

    assert context.state == ProfileState.PROFILE_MISSING
    assert context.current_profile is None
    assert tier_of(context) == SubscriptionTier.FREE


def test_watch_error_from_previous_identity_is_dropped(context, profile_store):
    _seed(profile_store, "uid-b", "b@example.com", "standard")
    context.set_identity(_identity("uid-a", "a@example.com"))
    watch_a = profile_store.active_watches()[0]
    context.set_identity(_identity("uid-b", "b@example.com"))
    profile_store.push("uid-b")

    watch_a.on_error(RuntimeError("stream closed"))

    assert context.state == ProfileState.PROFILE_READY
    assert context.current_profile.uid == "uid-b"


def test_switching_identity_does_not_block_a_pending_snapshot(context, profile_store):
    _seed(profile_store, "uid-a", "a@example.com", "premium")
    context.set_identity(_identity("uid-a", "a@example.com"))
    watch_a = profile_store.active_watches()[0]
    still_running = []

    def join_listener_thread():
        # Firestore joins the listener thread, which may still be delivering.
        worker = threading.Thread(target=profile_store.deliver, args=(watch_a,))
        worker.start()
        worker.join(timeout=1)
        still_running.append(worker.is_alive())

    watch_a.on_close = join_listener_thread

    context.set_identity(_identity("uid-b", "b@example.com"))

    assert still_running == [False]
    assert context.current_profile is None
    assert context.current_user.uid == "uid-b"
