"""
Unit tests for the rotator and shutter state machines.

Exercises the ordered rule tables directly through next_rotator_state /
next_shutter_state and through the stateful machines.
"""

import logging
import pytest
from unittest.mock import Mock

# Import module under test
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from beaver_state import (
    RotatorStateMachine,
    ShutterStateMachine,
    next_rotator_state,
    next_shutter_state,
)
from beaver_types import DomeStatus, RotatorState, ShutterState


S = DomeStatus


class TestRotatorRules:
    """Test rotator transitions decided from one status word."""

    @pytest.mark.unit
    def test_moving_bit_clear_goes_idle(self):
        """Moving + rotator-moving clear -> Idle."""
        transition = next_rotator_state(RotatorState.MOVING, S.NONE)
        assert transition.state == RotatorState.IDLE
        assert transition.label == 'Idle'

    @pytest.mark.unit
    def test_still_moving_keeps_state(self):
        """Moving bit set and nothing else -> no transition."""
        assert next_rotator_state(RotatorState.MOVING, S.ROTATOR_MOVING) is None

    @pytest.mark.unit
    def test_first_match_wins(self):
        """Moving bit clear beats at-home when both apply."""
        transition = next_rotator_state(RotatorState.HOMING, S.ROTATOR_HOME)
        assert transition.state == RotatorState.IDLE

    @pytest.mark.unit
    def test_at_home_while_moving(self):
        transition = next_rotator_state(RotatorState.HOMING, S.ROTATOR_MOVING | S.ROTATOR_HOME)
        assert transition.state == RotatorState.AT_HOME
        assert transition.label == 'At Home/Idle'

    @pytest.mark.unit
    def test_parked_while_moving(self):
        transition = next_rotator_state(RotatorState.MOVING, S.ROTATOR_MOVING | S.ROTATOR_PARKED)
        assert transition.state == RotatorState.PARKED

    @pytest.mark.unit
    def test_mechanical_error(self):
        transition = next_rotator_state(RotatorState.MOVING, S.ROTATOR_MOVING | S.ROTATOR_ERROR)
        assert transition.state == RotatorState.ERROR
        assert transition.level == logging.ERROR

    @pytest.mark.unit
    def test_idle_ignores_motion_bits(self):
        """Rules only apply while busy."""
        assert next_rotator_state(RotatorState.IDLE, S.ROTATOR_HOME) is None
        assert next_rotator_state(RotatorState.PARKED, S.NONE) is None

    @pytest.mark.unit
    def test_counterweight_overrides_at_home(self):
        """Counterweight-unsafe and at-home together give Error, not AtHome."""
        status = S.ROTATOR_MOVING | S.ROTATOR_HOME | S.UNSAFE_CW
        transition = next_rotator_state(RotatorState.MOVING, status)
        assert transition.state == RotatorState.ERROR
        assert transition.label == 'CW Unsafe Error'

    @pytest.mark.unit
    def test_rotation_guard_from_idle(self):
        """Unsafe bits force Error regardless of current state."""
        transition = next_rotator_state(RotatorState.IDLE, S.UNSAFE_RG)
        assert transition.state == RotatorState.ERROR
        assert transition.label == 'RGx Unsafe Error'

    @pytest.mark.unit
    def test_error_not_self_clearing(self):
        """A quiet status word leaves Error alone."""
        assert next_rotator_state(RotatorState.ERROR, S.NONE) is None


class TestParking:
    """Test the Parking special case."""

    @pytest.mark.unit
    def test_parking_resolves_to_parked(self):
        """A tick without error bits completes parking."""
        transition = next_rotator_state(RotatorState.PARKING, S.ROTATOR_MOVING)
        assert transition.state == RotatorState.PARKED
        assert transition.label == 'Parked'

    @pytest.mark.unit
    def test_parking_with_moving_clear(self):
        """Moving bit clear while parking still means Parked, not Idle."""
        transition = next_rotator_state(RotatorState.PARKING, S.NONE)
        assert transition.state == RotatorState.PARKED

    @pytest.mark.unit
    def test_parking_with_mechanical_error(self):
        transition = next_rotator_state(RotatorState.PARKING, S.ROTATOR_ERROR)
        assert transition.state == RotatorState.ERROR

    @pytest.mark.unit
    def test_parking_with_unsafe(self):
        transition = next_rotator_state(RotatorState.PARKING, S.UNSAFE_CW)
        assert transition.state == RotatorState.ERROR


class TestShutterRules:
    """Test shutter transitions."""

    @pytest.mark.unit
    def test_moving_and_closing_shows_closing(self):
        """Last matching bit wins: moving + closing -> Closing."""
        transition = next_shutter_state(ShutterState.CLOSING, S.SHUTTER_MOVING | S.SHUTTER_CLOSING)
        assert transition.state == ShutterState.CLOSING
        assert transition.label == 'Closing'

    @pytest.mark.unit
    def test_opened(self):
        transition = next_shutter_state(ShutterState.OPENING, S.SHUTTER_OPENED)
        assert transition.state == ShutterState.OPEN
        assert transition.label == 'Open'

    @pytest.mark.unit
    def test_closed(self):
        transition = next_shutter_state(ShutterState.CLOSING, S.SHUTTER_CLOSED)
        assert transition.state == ShutterState.CLOSED

    @pytest.mark.unit
    def test_opened_beats_closed(self):
        """Open is checked after closed, so it wins."""
        transition = next_shutter_state(ShutterState.MOVING, S.SHUTTER_CLOSED | S.SHUTTER_OPENED)
        assert transition.state == ShutterState.OPEN

    @pytest.mark.unit
    def test_comm_error_wins_over_everything(self):
        status = S.SHUTTER_MOVING | S.SHUTTER_OPENING | S.SHUTTER_ERROR | S.SHUTTER_COMM
        transition = next_shutter_state(ShutterState.OPENING, status)
        assert transition.state == ShutterState.COMM_ERROR
        assert transition.label == 'Communications Error'

    @pytest.mark.unit
    def test_mechanical_error(self):
        transition = next_shutter_state(ShutterState.OPENING, S.SHUTTER_MOVING | S.SHUTTER_ERROR)
        assert transition.state == ShutterState.ERROR
        assert transition.label == 'Mechanical Error'

    @pytest.mark.unit
    def test_not_evaluated_when_not_moving(self):
        """Shutter rules only run while a shutter motion is outstanding."""
        assert next_shutter_state(ShutterState.CLOSED, S.SHUTTER_OPENED) is None
        assert next_shutter_state(ShutterState.UNKNOWN, S.SHUTTER_OPENED) is None

    @pytest.mark.unit
    def test_no_bits_no_change(self):
        assert next_shutter_state(ShutterState.OPENING, S.NONE) is None


class TestRotatorStateMachine:
    """Test the stateful rotator machine."""

    @pytest.mark.unit
    def test_initial_idle(self):
        machine = RotatorStateMachine(Mock())
        assert machine.state == RotatorState.IDLE
        assert not machine.is_busy

    @pytest.mark.unit
    def test_begin_then_reconcile(self):
        """Intent state is set at once and reconciled by the next status word."""
        report = Mock()
        machine = RotatorStateMachine(report)

        machine.begin(RotatorState.MOVING, 'Moving')
        assert machine.is_busy

        machine.apply_status(S.NONE)
        assert machine.state == RotatorState.IDLE
        report.assert_called_with(logging.INFO, 'Dome state set to Idle')

    @pytest.mark.unit
    def test_no_report_without_change(self):
        report = Mock()
        machine = RotatorStateMachine(report)

        machine.apply_status(S.NONE)
        machine.reset()

        report.assert_not_called()

    @pytest.mark.unit
    def test_reset_clears_error(self):
        machine = RotatorStateMachine(Mock())
        machine.apply_status(S.UNSAFE_CW)
        assert machine.state == RotatorState.ERROR

        machine.reset()
        assert machine.state == RotatorState.IDLE

    @pytest.mark.unit
    def test_default_report_uses_logging(self, caplog):
        """Without a callback, transitions go to the module logger."""
        machine = RotatorStateMachine()
        with caplog.at_level(logging.INFO, logger='beaver_state'):
            machine.begin(RotatorState.HOMING, 'Homing')
        assert 'Dome state set to Homing' in caplog.text


class TestShutterStateMachine:
    """Test the stateful shutter machine."""

    @pytest.mark.unit
    def test_initial_unknown(self):
        machine = ShutterStateMachine(Mock())
        assert machine.state == ShutterState.UNKNOWN
        assert machine.label == 'Unknown'

    @pytest.mark.unit
    def test_open_sequence(self):
        report = Mock()
        machine = ShutterStateMachine(report)

        machine.begin(ShutterState.OPENING, 'Opening')
        machine.apply_status(S.SHUTTER_MOVING | S.SHUTTER_OPENING)
        assert machine.is_moving

        machine.apply_status(S.SHUTTER_OPENED)
        assert machine.state == ShutterState.OPEN
        assert not machine.is_moving
        report.assert_called_with(logging.INFO, 'Shutter state set to Open')

    @pytest.mark.unit
    def test_errors_reported_at_error_level(self):
        report = Mock()
        machine = ShutterStateMachine(report)

        machine.begin(ShutterState.CLOSING, 'Closing')
        machine.apply_status(S.SHUTTER_COMM)

        report.assert_called_with(logging.ERROR, 'Shutter state set to Communications Error')
