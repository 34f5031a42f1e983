# File: beaver_state.py
"""
Status-driven motion state for the rotator and the shutter.

Each poll tick decodes the device status word into transitions using ordered
rule tables:

* Rotator: while busy, ``ROTATOR_RULES`` are checked in order and the first
  match wins. A Parking rotator resolves to Parked unless the mechanical
  error bit is set. ``UNSAFE_RULES`` then force Error regardless of the
  current state.
* Shutter: while a shutter motion is outstanding, every matching entry of
  ``SHUTTER_RULES`` is applied in order, so the last match wins.

Commands set an intent state (``begin``) before the device confirms it; the
next tick reconciles.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from beaver_types import DomeStatus, RotatorState, ShutterState


ReportCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class Transition:
    """Resulting state and its display label."""
    state: IntEnum
    label: str
    level: int = logging.INFO


@dataclass(frozen=True)
class StatusRule:
    """Maps one status bit to a transition.

    Attributes:
        bit: Status bit examined
        when_set: True if the rule fires when the bit is set, False when clear
        transition: Transition produced when the rule fires
    """
    bit: DomeStatus
    when_set: bool
    transition: Transition

    def matches(self, status: DomeStatus) -> bool:
        return bool(status & self.bit) == self.when_set


ROTATOR_BUSY_STATES = frozenset({
    RotatorState.MOVING,
    RotatorState.HOMING,
    RotatorState.PARKING,
})

SHUTTER_MOVING_STATES = frozenset({
    ShutterState.MOVING,
    ShutterState.OPENING,
    ShutterState.CLOSING,
})

# First match wins
ROTATOR_RULES = (
    StatusRule(DomeStatus.ROTATOR_MOVING, False,
               Transition(RotatorState.IDLE, 'Idle')),
    StatusRule(DomeStatus.ROTATOR_HOME, True,
               Transition(RotatorState.AT_HOME, 'At Home/Idle')),
    StatusRule(DomeStatus.ROTATOR_PARKED, True,
               Transition(RotatorState.PARKED, 'At Park/Idle')),
    StatusRule(DomeStatus.ROTATOR_ERROR, True,
               Transition(RotatorState.ERROR, 'Rotation Mechanical Error', logging.ERROR)),
)

# Override anything decided by ROTATOR_RULES
UNSAFE_RULES = (
    StatusRule(DomeStatus.UNSAFE_CW, True,
               Transition(RotatorState.ERROR, 'CW Unsafe Error', logging.ERROR)),
    StatusRule(DomeStatus.UNSAFE_RG, True,
               Transition(RotatorState.ERROR, 'RGx Unsafe Error', logging.ERROR)),
)

PARKED_TRANSITION = Transition(RotatorState.PARKED, 'Parked')

# Last match wins; keep this order
SHUTTER_RULES = (
    StatusRule(DomeStatus.SHUTTER_MOVING, True,
               Transition(ShutterState.MOVING, 'Moving')),
    StatusRule(DomeStatus.SHUTTER_CLOSED, True,
               Transition(ShutterState.CLOSED, 'Closed')),
    StatusRule(DomeStatus.SHUTTER_OPENED, True,
               Transition(ShutterState.OPEN, 'Open')),
    StatusRule(DomeStatus.SHUTTER_OPENING, True,
               Transition(ShutterState.OPENING, 'Opening')),
    StatusRule(DomeStatus.SHUTTER_CLOSING, True,
               Transition(ShutterState.CLOSING, 'Closing')),
    StatusRule(DomeStatus.SHUTTER_ERROR, True,
               Transition(ShutterState.ERROR, 'Mechanical Error', logging.ERROR)),
    StatusRule(DomeStatus.SHUTTER_COMM, True,
               Transition(ShutterState.COMM_ERROR, 'Communications Error', logging.ERROR)),
)


def next_rotator_state(current: RotatorState, status: DomeStatus) -> Optional[Transition]:
    """
    Decide the rotator transition for one status word.

    Args:
        current: Current rotator state
        status: Freshly read status word

    Returns:
        The transition to apply, or None to keep the current state
    """
    decided = None

    if current == RotatorState.PARKING:
        # Parking completes within one poll interval unless an error is reported
        errors = [rule.transition for rule in ROTATOR_RULES
                  if rule.transition.state == RotatorState.ERROR and rule.matches(status)]
        decided = errors[0] if errors else PARKED_TRANSITION

    elif current in ROTATOR_BUSY_STATES:
        decided = next((rule.transition for rule in ROTATOR_RULES if rule.matches(status)), None)

    for rule in UNSAFE_RULES:
        if rule.matches(status):
            return rule.transition

    return decided


def next_shutter_state(current: ShutterState, status: DomeStatus) -> Optional[Transition]:
    """
    Decide the shutter transition for one status word.

    Only evaluated while a shutter motion is outstanding.

    Returns:
        The transition to apply, or None to keep the current state
    """
    if current not in SHUTTER_MOVING_STATES:
        return None

    decided = None
    for rule in SHUTTER_RULES:
        if rule.matches(status):
            decided = rule.transition

    return decided


class _AxisStateMachine:
    """Holds one axis state and reports its changes."""

    AXIS = ''

    def __init__(self, initial: IntEnum, label: str,
                 report: Optional[ReportCallback] = None):
        self._state = initial
        self._label = label
        self._report = report or self._log_report
        self._logger = logging.getLogger(__name__)

    def _log_report(self, level: int, message: str) -> None:
        self._logger.log(level, message)

    @property
    def state(self):
        return self._state

    @property
    def label(self) -> str:
        """Display text for the current state."""
        return self._label

    def begin(self, state: IntEnum, label: str) -> None:
        """Set an intent state ahead of device confirmation."""
        self._set(Transition(state, label))

    def _set(self, transition: Transition) -> None:
        changed = (transition.state, transition.label) != (self._state, self._label)
        self._state = transition.state
        self._label = transition.label

        if changed:
            self._report(transition.level, f"{self.AXIS} state set to {transition.label}")


class RotatorStateMachine(_AxisStateMachine):
    """Rotator motion state, initially Idle."""

    AXIS = 'Dome'

    def __init__(self, report: Optional[ReportCallback] = None):
        super().__init__(RotatorState.IDLE, 'Idle', report)

    @property
    def is_busy(self) -> bool:
        return self._state in ROTATOR_BUSY_STATES

    def apply_status(self, status: DomeStatus) -> Optional[Transition]:
        """Reconcile with a status word read by the poller."""
        transition = next_rotator_state(self._state, status)
        if transition is not None:
            self._set(transition)
        return transition

    def reset(self, label: str = 'Idle') -> None:
        """Return to Idle, clearing Error."""
        self._set(Transition(RotatorState.IDLE, label))


class ShutterStateMachine(_AxisStateMachine):
    """Shutter motion state, initially Unknown."""

    AXIS = 'Shutter'

    def __init__(self, report: Optional[ReportCallback] = None):
        super().__init__(ShutterState.UNKNOWN, 'Unknown', report)

    @property
    def is_moving(self) -> bool:
        return self._state in SHUTTER_MOVING_STATES

    def apply_status(self, status: DomeStatus) -> Optional[Transition]:
        """Reconcile with a status word read by the poller."""
        transition = next_shutter_state(self._state, status)
        if transition is not None:
            self._set(transition)
        return transition
