import pytest

from moisture_manager.utils.packet_parser import (
    OutputReport,
    Reading,
    parse_output_state,
    parse_telemetry,
)


def test_space_separated_reading():
    assert parse_telemetry("70:55:88:11:22:33 3.20") == Reading("70:55:88:11:22:33", 3.2)


def test_comma_separated_reading_matches_space_form():
    assert parse_telemetry("aa:bb:cc:dd:ee:ff,1.5") == parse_telemetry("aa:bb:cc:dd:ee:ff 1.5")
    assert parse_telemetry("aa:bb:cc:dd:ee:ff,1.5") == Reading("aa:bb:cc:dd:ee:ff", 1.5)


@pytest.mark.parametrize("value", ["0.0", "0", "5.0", "5", "2.75"])
def test_range_bounds_are_inclusive(value):
    reading = parse_telemetry(f"sensor {value}")
    assert reading is not None
    assert reading.value == float(value)


@pytest.mark.parametrize("payload", [
    "70:55:88:11:22:33 9.9",
    "70:55:88:11:22:33 -0.1",
    "70:55:88:11:22:33 5.01",
    "70:55:88:11:22:33 nan",
    "70:55:88:11:22:33 inf",
    "70:55:88:11:22:33 wet",
    "70:55:88:11:22:33 3.2abc",
    "70:55:88:11:22:33",
    "70:55:88:11:22:33 booted 1.0",
    "",
])
def test_invalid_payloads_are_rejected(payload):
    assert parse_telemetry(payload) is None


def test_overlong_identifier_is_rejected():
    assert parse_telemetry("x" * 32 + " 1.0") is None
    assert parse_telemetry("x" * 31 + " 1.0") is not None


def test_control_pin_state_report():
    line = "aa:bb:cc:dd:ee:ff CONTROL_PIN (D2) state: HIGH"
    assert parse_output_state(line) == OutputReport(pin=2, high=True)
    assert parse_output_state("CONTROL_PIN (D2) state: LOW") == OutputReport(pin=2, high=False)


def test_command_acknowledgements():
    assert parse_output_state("CMD: set D0 = 1") == OutputReport(pin=0, high=True)
    assert parse_output_state("CMD D0 0") == OutputReport(pin=0, high=False)


def test_unrelated_line_has_no_output_state():
    assert parse_output_state("wifi connected") is None
    assert parse_output_state("CMD D0 7") is None
