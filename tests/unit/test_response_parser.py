"""
Unit tests for response frame parsing and command building.

Covers numeric extraction from the token after the last colon, the two
parse failure kinds, and request formatting.
"""

import pytest

# Import module under test
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from beaver_serial import (
    Command,
    CMD_GET_AZ,
    CMD_GOTO_AZ,
    MalformedValueError,
    NoMatchError,
    ResponseParseError,
    ResponseParser,
)
from beaver_types import ParseErrorKind


class TestResponseParserValues:
    """Test successful numeric extraction."""

    @pytest.mark.unit
    def test_integer_token(self):
        """'OK:123#' parses to 123.0."""
        assert ResponseParser.parse('OK:123#') == 123.0

    @pytest.mark.unit
    def test_decimal_token(self):
        """'OK:12.50#' parses to 12.5."""
        assert ResponseParser.parse('OK:12.50#') == 12.5

    @pytest.mark.unit
    def test_terminator_already_stripped(self):
        """Frames without the trailing '#' parse the same."""
        assert ResponseParser.parse('!dome getaz:270.25') == 270.25

    @pytest.mark.unit
    def test_last_colon_wins(self):
        """Only the token after the last colon is used."""
        assert ResponseParser.parse('a:1:2:42#') == 42.0

    @pytest.mark.unit
    def test_trailing_text_after_number_ignored(self):
        """Characters after the numeric run do not affect the value."""
        assert ResponseParser.parse('!dome status:17 ok#') == 17.0

    @pytest.mark.unit
    def test_zero(self):
        """Zero is a valid value, not a failure."""
        assert ResponseParser.parse('!dome atpark:0#') == 0.0

    @pytest.mark.unit
    def test_trailing_dot(self):
        """'5.' is a number."""
        assert ResponseParser.parse('x:5.#') == 5.0

    @pytest.mark.unit
    def test_surrounding_whitespace(self):
        """Whitespace around the frame and token is tolerated."""
        assert ResponseParser.parse('  x: 7.5#\r\n') == 7.5


class TestResponseParserErrors:
    """Test parse failures."""

    @pytest.mark.unit
    def test_no_colon_is_no_match(self):
        """A frame without a colon has no token."""
        with pytest.raises(NoMatchError) as exc_info:
            ResponseParser.parse('OK#')
        assert exc_info.value.kind == ParseErrorKind.NO_MATCH

    @pytest.mark.unit
    def test_empty_token_is_no_match(self):
        """Nothing after the colon is a no-match."""
        with pytest.raises(NoMatchError):
            ResponseParser.parse('!dome gohome:#')

    @pytest.mark.unit
    def test_non_numeric_token_is_no_match(self):
        """Text after the colon is a no-match."""
        with pytest.raises(NoMatchError):
            ResponseParser.parse('!dome getaz:error#')

    @pytest.mark.unit
    def test_leading_dot_is_no_match(self):
        """A token must start with a digit."""
        with pytest.raises(NoMatchError):
            ResponseParser.parse('x:.5#')

    @pytest.mark.unit
    def test_negative_sign_is_no_match(self):
        """The device never sends signed values; '-' is not numeric."""
        with pytest.raises(NoMatchError):
            ResponseParser.parse('x:-5#')

    @pytest.mark.unit
    def test_two_dots_is_malformed(self):
        """'1.2.3' matches digits-and-dots but cannot be converted."""
        with pytest.raises(MalformedValueError) as exc_info:
            ResponseParser.parse('!seletek tversion:1.2.3#')
        assert exc_info.value.kind == ParseErrorKind.MALFORMED

    @pytest.mark.unit
    def test_errors_share_base_class(self):
        """Both failure kinds are ResponseParseError and keep the frame."""
        with pytest.raises(ResponseParseError) as exc_info:
            ResponseParser.parse('garbage')
        assert exc_info.value.frame == 'garbage'


class TestCommand:
    """Test request building."""

    @pytest.mark.unit
    def test_terminator_appended(self):
        """Requests end with '#'."""
        assert Command(CMD_GET_AZ).text == '!dome getaz#'

    @pytest.mark.unit
    def test_two_decimal_parameter(self):
        """Numeric parameters use two decimals."""
        assert Command(CMD_GOTO_AZ, (10.0,)).text == '!dome gotoaz 10.00#'
        assert Command(CMD_GOTO_AZ, (359.999,)).text == '!dome gotoaz 360.00#'

    @pytest.mark.unit
    def test_encode_ascii(self):
        """encode() returns the request bytes."""
        assert Command(CMD_GOTO_AZ, (1.5,)).encode() == b'!dome gotoaz 1.50#'

    @pytest.mark.unit
    def test_missing_prefix_rejected(self):
        """Templates must start with '!'."""
        with pytest.raises(ValueError):
            Command('dome getaz')

    @pytest.mark.unit
    def test_embedded_terminator_rejected(self):
        """Templates must not carry their own terminator."""
        with pytest.raises(ValueError):
            Command('!dome getaz#')

    @pytest.mark.unit
    def test_parameter_mismatch_rejected(self):
        """A missing parameter is caught when the command is built."""
        with pytest.raises(ValueError):
            Command(CMD_GOTO_AZ)

    @pytest.mark.unit
    def test_command_is_immutable(self):
        """Commands are frozen values."""
        command = Command(CMD_GET_AZ)
        with pytest.raises(AttributeError):
            command.template = '!dome status'
