"""Controller-side session management.

Public API:
    SessionManager -- Self-healing WebSocket session to the relay
    ReconnectBackoff -- Bounded exponential reconnect pacing
"""

from rokurelay.client.backoff import ReconnectBackoff

__all__ = ["ReconnectBackoff", "SessionManager"]


def __getattr__(name: str) -> type:
    """Lazy import for the session, which requires the websockets package."""
    if name == "SessionManager":
        from rokurelay.client.session import SessionManager
        return SessionManager
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
