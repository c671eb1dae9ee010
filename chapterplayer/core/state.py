"""Player state management for a chapter attempt.

StateManager holds the in-memory copy of PlayerProgress and is the single
source of truth for variables, the node cursor and customization data.
Every mutation notifies subscribers synchronously before returning.
"""
from __future__ import annotations
import copy
import logging
from numbers import Number
from typing import Any, Callable, Dict, List, Optional, Set

from config import DEFAULT_COST_TYPE, get_default_variables
from chapterplayer.chapter.dsl import check_all
from chapterplayer.chapter.model import BranchEffect, Condition, PlayerProgress

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class StateManager:
    """Owns the mutable PlayerProgress record."""

    def __init__(self, initial_progress: Optional[PlayerProgress] = None):
        self._progress = copy.deepcopy(initial_progress) if initial_progress else PlayerProgress()
        self._listeners: Set[Listener] = set()
        self._ensure_default_variables()

    def _ensure_default_variables(self) -> None:
        """Fill in missing default stats and balances, never overwriting."""
        if self._progress.variables is None:
            self._progress.variables = {}
        for key, value in get_default_variables().items():
            if key not in self._progress.variables:
                self._progress.variables[key] = value

    # --- Subscriptions ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("State listener failed")

    # --- Progress ---

    def get_progress(self) -> PlayerProgress:
        """Return a detached copy of the whole progress record."""
        return copy.deepcopy(self._progress)

    def update_progress(self, new_progress: PlayerProgress) -> None:
        """Replace the progress record (used when a chapter is initialized)."""
        logger.info(
            "Updating progress from node %s to %s",
            self._progress.resume_node_id, new_progress.resume_node_id,
        )
        self._progress = copy.deepcopy(new_progress)
        self._ensure_default_variables()
        self._notify()

    # --- Variables ---

    def get_variable(self, name: str) -> Any:
        return self._progress.variables.get(name)

    def get_variables(self) -> Dict[str, Any]:
        return dict(self._progress.variables)

    def set_variable(self, name: str, value: Any) -> None:
        self._progress.variables[name] = value
        self._notify()

    def _numeric(self, name: str) -> Number:
        current = self.get_variable(name)
        if current is None:
            return 0
        if isinstance(current, bool) or not isinstance(current, Number):
            raise TypeError(f"Variable '{name}' is not numeric: {current!r}")
        return current

    def increment_variable(self, name: str, amount: Number = 1) -> None:
        """Add amount to a numeric variable (missing variables start at 0)."""
        self.set_variable(name, self._numeric(name) + amount)

    def decrement_variable(self, name: str, amount: Number = 1) -> None:
        """Subtract amount from a numeric variable, flooring at 0."""
        self.set_variable(name, max(0, self._numeric(name) - amount))

    # --- Node cursor ---

    def set_current_node(self, node_id: str) -> None:
        logger.info("Setting current node from %s to %s", self._progress.resume_node_id, node_id)
        self._progress.resume_node_id = node_id
        self._notify()

    def get_current_node(self) -> str:
        return self._progress.resume_node_id

    # --- Customization ---

    def set_customization(self, character_key: str, data: Dict[str, str]) -> None:
        if self._progress.customization is None:
            self._progress.customization = {}
        self._progress.customization[character_key] = dict(data)
        self._notify()

    def get_customization(self, character_key: str) -> Optional[Dict[str, str]]:
        if not self._progress.customization:
            return None
        data = self._progress.customization.get(character_key)
        return dict(data) if data is not None else None

    # --- Conditions ---

    def evaluate_conditions(self, conditions: List[Condition]) -> bool:
        """True iff every condition holds against the current variables."""
        return check_all(conditions, self._progress.variables)

    def evaluate_branch(self, branch: BranchEffect) -> str:
        """Target of the first matching case, else the default, else the current node."""
        target = self.match_branch(branch)
        return target if target is not None else self.get_current_node()

    def match_branch(self, branch: BranchEffect) -> Optional[str]:
        """Like evaluate_branch, but None when no case matched and there is no default."""
        for case in branch.cases:
            if self.evaluate_conditions(case.when):
                return case.target
        return branch.default or None

    # --- Currency ---

    def can_afford(self, cost: Number, cost_type: Optional[str] = None) -> bool:
        balance = self.get_variable(cost_type or DEFAULT_COST_TYPE)
        if isinstance(balance, bool) or not isinstance(balance, Number):
            return False
        return balance >= cost

    def spend_currency(self, cost: Number, cost_type: Optional[str] = None) -> bool:
        """Debit cost if affordable.

        Returns:
            True if the balance was debited, False if state was left untouched
        """
        cost_type = cost_type or DEFAULT_COST_TYPE
        if not self.can_afford(cost, cost_type):
            return False
        self.decrement_variable(cost_type, cost)
        return True
