"""How a mutation's server response is folded into the local event cache."""

from enum import Enum
from typing import Optional, Protocol

from ..models.event import MutationScope


class ReconcileAction(str, Enum):
    """Local follow-up to a confirmed mutation."""

    REPLACE = "replace"  # swap the one cached entry for the server response
    REMOVE = "remove"  # drop the cached entries of that event id
    RELOAD = "reload"  # response cannot describe the change; refetch the range


class ReconcileStrategy(Protocol):
    """Protocol for reconciliation strategies."""

    def after_update(self, scope: Optional[MutationScope]) -> ReconcileAction:
        ...

    def after_delete(self, scope: Optional[MutationScope]) -> ReconcileAction:
        ...


class ScopeAwareStrategy:
    """Point updates only for whole-event mutations.

    A scoped mutation may split a series, truncate it or spawn exception
    records, none of which a single response can represent.
    """

    def after_update(self, scope: Optional[MutationScope]) -> ReconcileAction:
        if scope is None or scope is MutationScope.ALL:
            return ReconcileAction.REPLACE
        return ReconcileAction.RELOAD

    def after_delete(self, scope: Optional[MutationScope]) -> ReconcileAction:
        if scope is None or scope is MutationScope.ALL:
            return ReconcileAction.REMOVE
        return ReconcileAction.RELOAD
