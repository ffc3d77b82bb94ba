from .sessions import SessionStore, session_store

__all__ = ["SessionStore", "session_store"]
