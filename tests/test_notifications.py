"""Tests for the notification queue"""
from git_worktree_manager.constants import (
    ERROR_NOTIFICATION_TTL_TICKS,
    NOTIFICATION_TTL_TICKS,
    SPINNER_FRAMES,
)
from git_worktree_manager.core.notifications import NotificationCenter, Severity


class TestNotificationCenter:
    """Test posting, expiry and the spinner."""

    def test_post_uses_default_ttl(self):
        center = NotificationCenter().post("hello")
        assert center.latest.message == "hello"
        assert center.latest.ttl == NOTIFICATION_TTL_TICKS

    def test_errors_stay_longer(self):
        center = NotificationCenter().post("boom", Severity.ERROR)
        assert center.latest.ttl == ERROR_NOTIFICATION_TTL_TICKS

    def test_expires_on_the_crossing_tick(self):
        center = NotificationCenter().post("short", ttl=3)
        center = center.advance().advance()
        assert [e.message for e in center.entries] == ["short"]
        center = center.advance()
        assert center.entries == ()
        assert center.latest is None

    def test_created_tick_follows_clock(self):
        center = NotificationCenter().advance(5).post("late", ttl=2)
        assert center.latest.created_tick == 5
        assert center.latest.expires_at == 7
        assert center.advance(2).entries == ()

    def test_posting_does_not_drop_expired(self):
        """Expiry only happens when the clock moves."""
        center = NotificationCenter().post("zero", ttl=0).post("next")
        assert len(center.entries) == 2
        assert [e.message for e in center.advance().entries] == ["next"]

    def test_order_is_preserved(self):
        center = NotificationCenter().post("a").post("b", Severity.WARNING).post("c")
        assert [e.message for e in center.entries] == ["a", "b", "c"]
        assert center.latest.message == "c"

    def test_immutable(self):
        center = NotificationCenter()
        center.post("ignored")
        assert center.entries == ()

    def test_spinner_cycles(self):
        center = NotificationCenter()
        frames = []
        for _ in range(len(SPINNER_FRAMES) + 1):
            frames.append(center.spinner_frame())
            center = center.advance()
        assert frames[0] == SPINNER_FRAMES[0]
        assert frames[-1] == SPINNER_FRAMES[0]
        assert frames[1] == SPINNER_FRAMES[1]
