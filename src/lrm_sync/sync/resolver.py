"""Conflict resolution policies for the sync engine.

Resolvers turn conflicts into ``ConflictResolution`` objects without any
I/O.  Prompting lives above the engine: the ``prompt`` policy defers every
conflict so the caller can present them and pull again with its own
resolutions.

- ``LocalWinsResolver``: Always keeps the local side.
- ``RemoteWinsResolver``: Always takes the remote side.
- ``AbortResolver``: Answers ``Skip``, which aborts the operation.
- ``DeferredResolver``: Resolves nothing; accumulates ``pending``.

The ``create_resolver()`` factory maps config strategy strings to resolver
instances.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol, Union

from lrm_sync.sync.models import (
    ConfigConflict,
    ConflictResolution,
    EntryConflict,
    ResolutionChoice,
    ResolutionTarget,
)

logger = logging.getLogger(__name__)

AnyConflict = Union[EntryConflict, ConfigConflict]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    def resolve(self, conflict: AnyConflict) -> ConflictResolution | None:
        """Decide one conflict.

        Args:
            conflict: An entry or config conflict.

        Returns:
            The resolution, or ``None`` to leave the conflict to the
            caller.
        """
        ...  # pragma: no cover


def _resolution_for(
    conflict: AnyConflict, choice: ResolutionChoice
) -> ConflictResolution:
    if isinstance(conflict, ConfigConflict):
        return ConflictResolution(
            key=conflict.path,
            target=ResolutionTarget.CONFIG,
            resolution=choice,
        )
    return ConflictResolution(
        key=conflict.key,
        lang=conflict.lang,
        target=ResolutionTarget.ENTRY,
        resolution=choice,
    )


# ---------------------------------------------------------------------------
# Simple resolvers
# ---------------------------------------------------------------------------


class LocalWinsResolver:
    """Always resolve conflicts in favour of the local side."""

    def resolve(self, conflict: AnyConflict) -> ConflictResolution:
        return _resolution_for(conflict, ResolutionChoice.LOCAL)


class RemoteWinsResolver:
    """Always resolve conflicts in favour of the remote side."""

    def resolve(self, conflict: AnyConflict) -> ConflictResolution:
        return _resolution_for(conflict, ResolutionChoice.REMOTE)


class AbortResolver:
    """Abort the whole operation on the first conflict."""

    def resolve(self, conflict: AnyConflict) -> ConflictResolution:
        return _resolution_for(conflict, ResolutionChoice.SKIP)


class DeferredResolver:
    """Leave every conflict to the caller.

    Conflicts are accumulated in ``pending`` so the caller can present
    them (the engine reports them as ``CONFLICTS``).  ``pending`` holds
    the conflicts of the latest batch only.
    """

    def __init__(self) -> None:
        self.pending: list[AnyConflict] = []

    def reset(self) -> None:
        self.pending = []

    def resolve(self, conflict: AnyConflict) -> None:
        self.pending.append(conflict)
        return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def collect_resolutions(
    resolver: ConflictResolver,
    conflicts: Iterable[AnyConflict],
) -> list[ConflictResolution]:
    """Run *resolver* over *conflicts* and keep the decisions it made.

    Each call is one batch: a resolver with a ``reset()`` method is reset
    before it sees the first conflict.
    """
    reset = getattr(resolver, "reset", None)
    if reset is not None:
        reset()
    resolutions: list[ConflictResolution] = []
    for conflict in conflicts:
        resolution = resolver.resolve(conflict)
        if resolution is not None:
            resolutions.append(resolution)
    if resolutions:
        logger.info(
            "%s resolved %d conflicts",
            type(resolver).__name__,
            len(resolutions),
        )
    return resolutions


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "prompt": DeferredResolver,
    "local": LocalWinsResolver,
    "remote": RemoteWinsResolver,
    "abort": AbortResolver,
}


def create_resolver(strategy: str) -> ConflictResolver:
    """Create a conflict resolver for the given strategy string.

    Args:
        strategy: One of ``"prompt"``, ``"local"``, ``"remote"``,
            ``"abort"``.

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
