"""
Locations and transitions of a hybrid automaton.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from setreach.config.options import ReachOptions
from setreach.errors import ConfigurationError
from setreach.hybrid.pancake import MAX_EXPANSIONS, intersect_guard
from setreach.sets.halfspace import ConstrainedHyperplane

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    """
    Discrete transition guarded by a constrained hyperplane.

    Attributes
    ----------
    guard : ConstrainedHyperplane
        Guard set
    target : str
        Name of the target location
    """

    guard: Any
    target: str


@dataclass(frozen=True, eq=False)
class Location:
    """
    Location of a hybrid automaton.

    Attributes
    ----------
    name : str
        Location name
    invariant : Halfspace or None
        Invariant set; sets outside it have no active guards
    transitions : list of Transition
        Outgoing transitions; the guard id is the index in this list
    dynamics : LinearSystem or NonlinearSystem
        Continuous dynamics
    inputs : Zonotope, Interval or None
        Input set of the location
    """

    name: str
    invariant: Any
    transitions: List[Transition] = field(default_factory=list)
    dynamics: Any = None
    inputs: Any = None

    def _transition(self, guard_id: int) -> Transition:
        if not 0 <= guard_id < len(self.transitions):
            raise ConfigurationError(
                f"Location {self.name!r} has no transition {guard_id}", guard_id=guard_id
            )
        return self.transitions[guard_id]

    def active_guards(self, set_) -> List[int]:
        """
        Ids of hyperplane guards the set may reach.

        A set that misses the invariant has no active guard; otherwise a guard
        is active when its plane passes through the set and none of its
        constraints excludes the set.
        """
        if self.invariant is not None and not self.invariant.intersects(set_):
            return []
        return [
            guard_id
            for guard_id, transition in enumerate(self.transitions)
            if isinstance(transition.guard, ConstrainedHyperplane) and transition.guard.may_intersect(set_)
        ]

    def guard_intersect(self, R0, guard_id: int, options: ReachOptions, scaled: Optional[ReachOptions] = None,
                        max_expansions: int = MAX_EXPANSIONS):
        """
        Enclosure of the crossing of transition ``guard_id`` starting from
        ``R0`` (see :func:`~setreach.hybrid.pancake.intersect_guard`).
        """
        if self.dynamics is None:
            raise ConfigurationError(f"Location {self.name!r} has no dynamics")
        transition = self._transition(guard_id)
        logger.debug("Location %s: intersecting guard %d (target %s)", self.name, guard_id, transition.target)
        return intersect_guard(
            self.dynamics,
            R0,
            transition.guard,
            guard_id,
            options,
            input_set=self.inputs,
            scaled=scaled,
            max_expansions=max_expansions,
        )
