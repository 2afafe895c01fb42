"""
Fractional position allocation and rebalancing for ordered scopes.

Items in a scope (a user's lists, or a list's tasks) are ordered by a float
``position``. New items are placed after an anchor by taking the midpoint
between the anchor and its successor, or ``last + gap`` at the end, so the
common insert touches no other row. When repeated midpoints exhaust the
available precision the scope is rebalanced to evenly spaced values.

Everything here is pure computation; persistence lives in ``scope_store``.
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field, model_validator

from taskdeck.logging_config import get_logger
from taskdeck.services.errors import InvalidAnchorError, PrecisionExhaustedError

logger = get_logger(__name__)

# Spacing between neighbours after an append or a rebalance
POSITION_GAP = 1024.0

# Position of the first item in an empty scope; leaves headroom on both sides
BASELINE_POSITION = 65536.0

# Smallest distance a midpoint may keep from its neighbours
MIN_POSITION_DELTA = 1e-6


class Positioned(Protocol):
    """Anything with an ``id`` and a ``position`` (ORM rows, pydantic models)."""

    id: Any
    position: float


class PositionPolicy(BaseModel):
    """Tunable constants for allocation and rebalancing.

    Attributes:
        gap: Spacing used for appends and rebalanced scopes.
        baseline: First position of an empty or rebalanced scope.
        min_delta: Minimum distance between a midpoint and its neighbours.
    """

    gap: float = Field(default=POSITION_GAP, gt=0)
    baseline: float = Field(default=BASELINE_POSITION)
    min_delta: float = Field(default=MIN_POSITION_DELTA, gt=0)

    @model_validator(mode="after")
    def validate_headroom(self) -> "PositionPolicy":
        """
        Ensure a freshly rebalanced gap can always be split at least once.

        Raises:
            ValueError: If half the gap is smaller than ``min_delta``
        """
        if self.gap / 2 < self.min_delta:
            raise ValueError(
                f"Position gap {self.gap} leaves no room above min_delta {self.min_delta}"
            )
        return self

    @classmethod
    def from_config(cls, config) -> "PositionPolicy":
        """
        Build a policy from ``Config.get_position_config()``.

        Args:
            config: taskdeck.config.Config instance

        Returns:
            PositionPolicy with configured constants
        """
        return cls(**config.get_position_config())


DEFAULT_POLICY = PositionPolicy()


def _same_id(left: Any, right: Any) -> bool:
    # ORM rows keep string ids while callers usually hold UUIDs
    return str(left) == str(right)


def find_index(siblings: Sequence[Positioned], item_id: Any) -> Optional[int]:
    """Return the index of ``item_id`` in ``siblings`` or None."""
    for index, sibling in enumerate(siblings):
        if _same_id(sibling.id, item_id):
            return index
    return None


def _position_after(last: float, policy: PositionPolicy) -> float:
    position = last + policy.gap
    if position <= last:
        raise PrecisionExhaustedError(f"Cannot append after position {last}")
    return position


def allocate(
    siblings: Sequence[Positioned],
    anchor_id: Optional[Any] = None,
    policy: PositionPolicy = DEFAULT_POLICY,
) -> float:
    """
    Compute a position for an item placed after ``anchor_id`` (or at the end).

    Args:
        siblings: Current scope members sorted ascending by position,
                  excluding the item being placed
        anchor_id: ID of the item to place after; None appends to the end
        policy: Allocation constants

    Returns:
        A position strictly between the anchor and its successor, or after
        the last item

    Raises:
        InvalidAnchorError: If ``anchor_id`` is not in ``siblings``
        PrecisionExhaustedError: If no usable value fits between the anchor
                                 and its successor, or after the last item
    """
    if anchor_id is None:
        if not siblings:
            return policy.baseline
        return _position_after(siblings[-1].position, policy)

    index = find_index(siblings, anchor_id)
    if index is None:
        raise InvalidAnchorError(f"Anchor {anchor_id} is not a member of this scope")

    after = siblings[index].position
    if index == len(siblings) - 1:
        return _position_after(after, policy)

    following = siblings[index + 1].position
    midpoint = (after + following) / 2
    if not (after < midpoint < following) or (midpoint - after) < policy.min_delta:
        raise PrecisionExhaustedError(
            f"No room between positions {after} and {following}"
        )
    return midpoint


def spaced_positions(count: int, policy: PositionPolicy = DEFAULT_POLICY) -> List[float]:
    """Evenly spaced positions ``baseline, baseline + gap, ...`` of length ``count``."""
    return [policy.baseline + index * policy.gap for index in range(count)]


def rebalance(
    siblings: Sequence[Positioned],
    policy: PositionPolicy = DEFAULT_POLICY,
) -> Dict[Any, float]:
    """
    Reassign evenly spaced positions, preserving the given order exactly.

    Args:
        siblings: Scope members in their current order
        policy: Allocation constants

    Returns:
        Mapping of item ID to its new position
    """
    positions = spaced_positions(len(siblings), policy)
    mapping = {sibling.id: position for sibling, position in zip(siblings, positions)}
    logger.debug(f"Rebalanced {len(mapping)} positions starting at {policy.baseline}")
    return mapping


def is_strictly_increasing(positions: Iterable[float]) -> bool:
    """Check that every position is greater than the one before it."""
    previous = None
    for position in positions:
        if previous is not None and position <= previous:
            return False
        previous = position
    return True
