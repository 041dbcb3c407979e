"""Property tests for access resolution.

These tests pin the timed-role rules across generated identity records:
admin always active, window reuse and re-mint, longest-duration selection,
injected versus manual 'active', and session rotation.
"""

from datetime import timedelta

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from src.lambdas.shared.auth.access import (
    evaluate_access,
    resolve_login_access,
    timed_role_duration,
)
from src.lambdas.shared.billing.plans import compute_subscription_expiry
from src.lambdas.shared.utils.timestamps import parse_timestamp
from tests.property.conftest import (
    TIMED_ROLE_VALUES,
    identity_user,
    login_times,
    stored_window,
)


class TestAdminProperties:
    @settings(max_examples=100, deadline=None)
    @given(data=st.data(), now=login_times())
    def test_admin_always_active(self, data, now):
        """Any account tagged admin resolves with 'active'."""
        user = data.draw(identity_user())
        user["app_metadata"]["roles"] = ["admin", *user["app_metadata"]["roles"]]

        decision = resolve_login_access(user, now)

        assert "active" in decision.roles
        assert decision.active is True
        assert decision.injected_active is False


class TestTimedWindowProperties:
    @settings(max_examples=100, deadline=None)
    @given(data=st.data(), role=st.sampled_from(TIMED_ROLE_VALUES), now=login_times())
    def test_live_window_reused_exactly(self, data, role, now):
        """A live window for the selected role keeps its exact timestamps."""
        window = data.draw(stored_window(role, now, live=True))
        user = data.draw(identity_user(roles=["member", role], timed_access=window))

        decision = resolve_login_access(user, now)

        stored = decision.to_app_metadata(user["app_metadata"])["timed_access"]
        assert stored["assigned_at"] == window["assigned_at"]
        assert stored["expires_at"] == window["expires_at"]
        assert decision.window_minted is False
        assert role in decision.roles

    @settings(max_examples=100, deadline=None)
    @given(data=st.data(), role=st.sampled_from(TIMED_ROLE_VALUES), now=login_times())
    def test_expired_window_reminted(self, data, role, now):
        """An expired window is replaced by now .. now + duration(role)."""
        window = data.draw(stored_window(role, now, live=False))
        user = data.draw(identity_user(roles=[role], timed_access=window))

        decision = resolve_login_access(user, now)

        assert decision.window_minted is True
        assert decision.timed_access.assigned_at == now
        assert decision.timed_access.expires_at == now + timed_role_duration(role)

    @settings(max_examples=100, deadline=None)
    @given(
        data=st.data(),
        pair=st.lists(
            st.sampled_from(TIMED_ROLE_VALUES), min_size=2, max_size=2, unique=True
        ),
        now=login_times(),
    )
    def test_longest_timed_role_selected(self, data, pair, now):
        """With two timed tags, the longer one wins and the other is dropped."""
        user = data.draw(identity_user(roles=pair))
        longer = max(pair, key=timed_role_duration)
        shorter = min(pair, key=timed_role_duration)

        decision = resolve_login_access(user, now)

        assert decision.timed_access.role == longer
        assert longer in decision.roles
        assert shorter not in decision.roles

    @settings(max_examples=100, deadline=None)
    @given(data=st.data(), role=st.sampled_from(TIMED_ROLE_VALUES), now=login_times())
    def test_injected_active_revoked_after_expiry(self, data, role, now):
        """Once the window lapses, an injected 'active' no longer grants access."""
        window = data.draw(stored_window(role, now, live=False))
        window["injected_active"] = True
        user = data.draw(
            identity_user(roles=[role, "active"], status="", timed_access=window)
        )

        assert evaluate_access(user, now).active is False

    @settings(max_examples=100, deadline=None)
    @given(
        data=st.data(),
        role=st.sampled_from(TIMED_ROLE_VALUES),
        now=login_times(),
        later=st.integers(min_value=1, max_value=800 * 86400),
    )
    def test_manual_active_survives_expiry(self, data, role, now, later):
        """A manually granted 'active' stays after the timed role ends."""
        window = data.draw(stored_window(role, now, live=True))
        window["injected_active"] = False
        user = data.draw(
            identity_user(roles=[role, "active"], status="", timed_access=window)
        )

        after_expiry = parse_timestamp(window["expires_at"]) + timedelta(seconds=later)

        assert "active" in resolve_login_access(user, after_expiry).roles
        assert evaluate_access(user, after_expiry).active is True


class TestSessionProperties:
    @settings(max_examples=100, deadline=None)
    @given(data=st.data(), now=login_times())
    def test_session_id_always_rotates(self, data, now):
        user = data.draw(identity_user())
        previous = user["app_metadata"].get("session_id")

        decision = resolve_login_access(user, now)

        assert decision.session_id
        assert decision.session_id != previous

    @settings(max_examples=100, deadline=None)
    @given(data=st.data(), now=login_times())
    def test_other_metadata_passes_through(self, data, now):
        user = data.draw(identity_user())

        merged = resolve_login_access(user, now).to_app_metadata(user["app_metadata"])

        assert merged["plan_note"] == user["app_metadata"]["plan_note"]
        assert len(merged["roles"]) == len(set(merged["roles"]))


class TestExpiryExtensionProperties:
    @settings(max_examples=100, deadline=None)
    @given(
        plan=st.sampled_from(["day", "month", "halfyear", "year"]),
        now=login_times(),
        remaining=st.integers(min_value=-400 * 86400, max_value=400 * 86400),
    )
    def test_never_shortens_and_never_starts_before_now(self, plan, now, remaining):
        assume(remaining != 0)
        current = now + timedelta(seconds=remaining)

        expiry = compute_subscription_expiry(plan, current, now)

        assert expiry > now
        assert expiry > current
