"""Connected / demo indicator."""

from __future__ import annotations

from enum import Enum

from ..models import Session


class ViewMode(str, Enum):
    CONNECTED = "connected"
    DEMO = "demo"


class RemoteOutcome(str, Enum):
    """Result of the most recent remote call, as seen by the synchronizer."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NO_SESSION = "no_session"


def select_view_mode(session: Session | None, last_outcome: RemoteOutcome | None) -> ViewMode:
    """Return ``DEMO`` without a session or after a failed remote call.

    A session whose remote calls have not been attempted yet counts as
    connected. The result only drives a passive indicator.
    """

    if session is None or not session.is_logged_in:
        return ViewMode.DEMO
    if last_outcome is RemoteOutcome.FAILED:
        return ViewMode.DEMO
    return ViewMode.CONNECTED


__all__ = ["RemoteOutcome", "ViewMode", "select_view_mode"]
