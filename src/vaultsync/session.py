"""Unlocked session: the one place the master password is held."""

from __future__ import annotations

from typing import Optional

from .errors import SessionLocked


class Session:
    """Holds the working password between :meth:`Store.fetch` and :meth:`Store.save`.

    Use as a context manager to bound how long the secret stays in memory::

        with Session(password) as session:
            await store.fetch(collection, session)
            ...
    """

    def __init__(self, password: str) -> None:
        self._password: Optional[str] = password

    @property
    def active(self) -> bool:
        return self._password is not None

    @property
    def password(self) -> str:
        if self._password is None:
            raise SessionLocked("Session has been released; unlock again.")
        return self._password

    @password.setter
    def password(self, value: str) -> None:
        if self._password is None:
            raise SessionLocked("Session has been released; unlock again.")
        self._password = value

    def release(self) -> None:
        """Forget the password. Safe to call more than once."""
        self._password = None

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "active" if self.active else "released"
        return f"Session({state})"
