"""
Transfer permission registry and reconciliation
"""

from typing import Iterable, Optional

import structlog
from pydantic import BaseModel, Field

from .constants import DEFAULT_TRANSFER_ACTIONS
from .errors import ValidationError

log = structlog.get_logger()


class PermissionRegistry:
    """
    Closed set of action names a transfer token may be granted.

    Actions come from the comma-separated TRANSFER_ACTIONS setting when no
    explicit list is given.
    """

    def __init__(self, actions: Optional[Iterable[str]] = None):
        self._actions: dict[str, None] = {}
        if actions is None:
            actions = DEFAULT_TRANSFER_ACTIONS
        for action in actions:
            self.register(action)

    @classmethod
    def from_setting(cls, value: str) -> "PermissionRegistry":
        """
        Build a registry from a comma-separated list of actions.

        Args:
            value: e.g. "push,pull"
        """
        registry = cls(actions=[])
        for action in value.split(","):
            action = action.strip()
            if action:
                registry.register(action)

        log.info("transfer_actions.loaded", count=len(registry))
        return registry

    def register(self, action: str) -> None:
        """Register an action name; registering twice is a no-op"""
        self._actions[action] = None

    def keys(self) -> list[str]:
        return list(self._actions)

    def __contains__(self, action: object) -> bool:
        return action in self._actions

    def __len__(self) -> int:
        return len(self._actions)


class PermissionDiff(BaseModel):
    """Actions to insert and delete to reach a desired permission set"""
    to_add: set[str] = Field(default_factory=set)
    to_remove: set[str] = Field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def unique(actions: Iterable[str]) -> list[str]:
    """De-duplicate actions, keeping first-seen order"""
    return list(dict.fromkeys(actions))


def diff(current: Iterable[str], desired: Iterable[str]) -> PermissionDiff:
    """
    Compute the minimal change between two permission sets.

    Args:
        current: Actions currently granted
        desired: Actions that should be granted

    Returns:
        PermissionDiff with to_add = desired - current and
        to_remove = current - desired
    """
    current_set = set(current)
    desired_set = set(desired)
    return PermissionDiff(
        to_add=desired_set - current_set,
        to_remove=current_set - desired_set
    )


class PermissionReconciler:
    """
    Validates requested actions against the registry and diffs them
    against the persisted ones.
    """

    def __init__(self, registry: PermissionRegistry):
        self._registry = registry

    @property
    def registry(self) -> PermissionRegistry:
        return self._registry

    def assert_valid(self, actions: Optional[Iterable[str]]) -> None:
        """
        Reject unknown actions.

        Args:
            actions: Requested actions; None means permissions were omitted

        Raises:
            ValidationError: Listing every unknown action
        """
        if actions is None:
            return

        invalid = [action for action in unique(actions) if action not in self._registry]
        if invalid:
            raise ValidationError(f"Unknown permissions provided: {', '.join(invalid)}")

    def reconcile(self, current: Iterable[str], desired: Iterable[str]) -> PermissionDiff:
        """Validate the desired actions, then diff them against the current ones"""
        desired = unique(desired)
        self.assert_valid(desired)
        return diff(current, desired)
