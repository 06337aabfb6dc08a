"""
VaultAuth State Machine Base

Table driven state machine used to track a login negotiation.

A subclass declares its transitions as a mapping from
``(state, event class)`` to ``(next state, context updater)``. Each
processed event is checked against the registered invariants before it is
committed, then recorded in the transition history, which can be exported
as JSON for auditing a negotiation after the fact.

Context updaters must be pure: they return a new context and touch
nothing else. Side effects (requests, prompts) belong to the caller.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    FrozenSet,
    Generic,
    List,
    Optional,
    Tuple,
    TypeVar,
)

import attrs
import structlog
from returns.result import Failure, Result, Success

from vaultauth.core.exceptions import InvariantViolation

logger = structlog.get_logger()

REDACTED = "<redacted>"

S = TypeVar("S", bound=Enum)  # State type
E = TypeVar("E")  # Event type
C = TypeVar("C")  # Context type

# (state, context) -> holds
InvariantFn = Callable[[S, Any], bool]

# (next_state, context_updater)
TransitionEntry = Tuple[S, Callable[[Any, Any], Any]]


@attrs.define(frozen=True, slots=True)
class Transition(Generic[S, E]):
    """One committed step of a negotiation."""

    from_state: S
    event_type: str
    to_state: S
    timestamp: datetime
    context_snapshot: Dict[str, Any] = attrs.Factory(dict)
    event_data: Dict[str, Any] = attrs.Factory(dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_state": self.from_state.name,
            "event_type": self.event_type,
            "to_state": self.to_state.name,
            "timestamp": self.timestamp.isoformat(),
            "context_snapshot": self.context_snapshot,
            "event_data": self.event_data,
        }


@attrs.define
class StateMachineBase(ABC, Generic[S, E, C]):
    """
    Base class for negotiation state machines.

    Subclasses provide ``initial_state`` and ``transition_table``, and may
    override ``terminal_states`` and ``redacted_fields``. Fields listed in
    ``redacted_fields`` are masked in recorded context and event snapshots.

    Example:
        class DoorMachine(StateMachineBase[DoorState, Any, DoorContext]):
            def initial_state(self) -> DoorState:
                return DoorState.CLOSED

            def transition_table(self):
                return {
                    (DoorState.CLOSED, Opened): (DoorState.OPEN, self._on_open),
                }

            @staticmethod
            def _on_open(event: Opened, ctx: DoorContext) -> DoorContext:
                return attrs.evolve(ctx, opened_by=event.who)
    """

    redacted_fields: ClassVar[FrozenSet[str]] = frozenset()

    _state: S = attrs.field(alias="_state")
    _context: C = attrs.field(alias="_context")
    _history: List[Transition[S, E]] = attrs.field(factory=list, alias="_history")
    _invariants: List[Tuple[str, InvariantFn]] = attrs.field(factory=list, alias="_invariants")
    _logger: Any = attrs.field(factory=lambda: structlog.get_logger(), alias="_logger")

    @abstractmethod
    def initial_state(self) -> S:
        ...

    @abstractmethod
    def transition_table(self) -> Dict[Tuple[S, type], TransitionEntry]:
        """Map ``(state, event class)`` to ``(next state, context updater)``."""
        ...

    def terminal_states(self) -> FrozenSet[S]:
        """States that accept no further events."""
        return frozenset()

    @property
    def state(self) -> S:
        return self._state

    @property
    def context(self) -> C:
        return self._context

    @property
    def is_finished(self) -> bool:
        return self._state in self.terminal_states()

    # -------------------------------------------------------------------------
    # Event processing
    # -------------------------------------------------------------------------

    def process_event(self, event: E) -> Result[S, str]:
        """
        Apply ``event`` to the current state.

        Args:
            event: Event instance; its class selects the transition

        Returns:
            Success(new_state) once the transition is committed, or
            Failure(reason) if no transition applies or the update failed.
            Nothing is recorded on failure.

        Raises:
            InvariantViolation: If the resulting state breaks an invariant
        """
        event_name = type(event).__name__

        entry = self._resolve(event)
        if isinstance(entry, Failure):
            self._logger.warning(
                "invalid_transition",
                current_state=self._state.name,
                event_type=event_name,
            )
            return entry
        next_state, updater = entry.unwrap()

        try:
            new_context = updater(event, self._context)
        except Exception as e:
            self._logger.error(
                "context_update_failed",
                current_state=self._state.name,
                event_type=event_name,
                error=str(e),
            )
            return Failure(f"Context update failed: {e}")

        problem = self._check_invariants(next_state, new_context)
        if problem is not None:
            return Failure(problem)

        self._history.append(
            Transition(
                from_state=self._state,
                event_type=event_name,
                to_state=next_state,
                timestamp=datetime.now(timezone.utc),
                context_snapshot=self._snapshot(new_context),
                event_data=self._snapshot(event) or {"type": event_name},
            )
        )
        self._logger.info(
            "state_transition",
            from_state=self._state.name,
            to_state=next_state.name,
            event_type=event_name,
        )
        self._state = next_state
        self._context = new_context
        return Success(next_state)

    def _resolve(self, event: E) -> Result[TransitionEntry, str]:
        event_name = type(event).__name__
        if self.is_finished:
            return Failure(f"State {self._state.name} is terminal; {event_name} ignored")

        entry = self.transition_table().get((self._state, type(event)))
        if entry is None:
            return Failure(f"No transition for state {self._state.name} with event {event_name}")
        return Success(entry)

    def _check_invariants(self, next_state: S, new_context: C) -> Optional[str]:
        """Return a failure reason if a check itself errored, else None."""
        for name, invariant in self._invariants:
            try:
                holds = invariant(next_state, new_context)
            except Exception as e:
                self._logger.error("invariant_check_failed", invariant=name, error=str(e))
                return f"Invariant check '{name}' failed: {e}"

            if not holds:
                self._logger.error(
                    "invariant_violated",
                    invariant=name,
                    from_state=self._state.name,
                    to_state=next_state.name,
                )
                raise InvariantViolation(f"Invariant '{name}' violated")
        return None

    def add_invariant(self, name: str, invariant: InvariantFn) -> None:
        """Register ``invariant(state, context) -> bool``, checked on every event."""
        self._invariants.append((name, invariant))

    def reset(self) -> None:
        """Return to the initial state and forget the history."""
        self._state = self.initial_state()
        self._history = []

    # -------------------------------------------------------------------------
    # Trace export
    # -------------------------------------------------------------------------

    def get_trace(self) -> List[Transition[S, E]]:
        return list(self._history)

    def visited_states(self) -> List[str]:
        """Names of every state passed through, starting state included."""
        if not self._history:
            return [self._state.name]
        return [self._history[0].from_state.name] + [t.to_state.name for t in self._history]

    def export_summary(self) -> Dict[str, Any]:
        return {
            "states": self.visited_states(),
            "events": [t.event_type for t in self._history],
            "timestamps": [t.timestamp.isoformat() for t in self._history],
        }

    def export_trace_json(self) -> str:
        return json.dumps(
            {
                "initial_state": self.initial_state().name,
                "final_state": self._state.name,
                "transitions": [t.to_dict() for t in self._history],
                "summary": self.export_summary(),
            },
            indent=2,
        )

    def _snapshot(self, obj: Any) -> Dict[str, Any]:
        """JSON-safe copy of an attrs instance's public fields."""
        if not attrs.has(type(obj)):
            return {}
        snapshot = {}
        for attribute in attrs.fields(type(obj)):
            if attribute.name.startswith("_"):
                continue
            value = getattr(obj, attribute.name)
            if attribute.name in self.redacted_fields and value:
                snapshot[attribute.name] = REDACTED
            else:
                snapshot[attribute.name] = _json_value(value)
        return snapshot


def _json_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return f"<bytes:{len(value)}>"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, (frozenset, set, tuple)):
        return sorted(_json_value(v) for v in value)
    if attrs.has(type(value)):
        return f"<{type(value).__name__}>"
    return value


# =============================================================================
# VERIFICATION HELPERS
# =============================================================================


def transition_map(machine: StateMachineBase) -> Dict[Tuple[str, str], str]:
    """``machine``'s table as ``(state name, event name) -> next state name``."""
    return {
        (state.name, event.__name__): next_state.name
        for (state, event), (next_state, _) in machine.transition_table().items()
    }


def verify_trace_against_table(
    trace: List[Transition],
    allowed_transitions: Dict[Tuple[str, str], str],
) -> List[str]:
    """
    Check every step of ``trace`` against ``allowed_transitions``.

    Args:
        trace: Recorded transitions
        allowed_transitions: ``(from state, event) -> to state`` names,
            e.g. from ``transition_map``

    Returns:
        One message per offending step; empty if the trace conforms
    """
    errors = []
    for i, step in enumerate(trace):
        key = (step.from_state.name, step.event_type)
        expected = allowed_transitions.get(key)
        if expected is None:
            errors.append(
                f"Transition {i}: {step.from_state.name} --[{step.event_type}]--> "
                f"{step.to_state.name} is not allowed"
            )
        elif expected != step.to_state.name:
            errors.append(
                f"Transition {i}: {step.from_state.name} --[{step.event_type}]--> "
                f"{step.to_state.name}, expected {expected}"
            )
    return errors
