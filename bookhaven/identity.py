"""
Identity provider for a single viewer session.

Sign-in itself happens elsewhere; this class only remembers who the
current viewer is and tells interested parties when that changes.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .models import Identity


logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[Identity]], None]


class SessionIdentityProvider:
    """Holds the current identity (or ``None``) and notifies listeners."""

    def __init__(self, identity: Optional[Identity] = None):
        self._identity = identity
        self._listeners: List[IdentityListener] = []

    def current_identity(self) -> Optional[Identity]:
        return self._identity

    def on_identity_change(self, callback: IdentityListener) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def sign_in(self, identity: Identity) -> None:
        self._set(identity)

    def sign_out(self) -> None:
        self._set(None)

    def _set(self, identity: Optional[Identity]) -> None:
        if identity == self._identity:
            return
        self._identity = identity
        logger.info("Identity changed to %s", identity.id if identity else "anonymous")
        for listener in list(self._listeners):
            listener(identity)
