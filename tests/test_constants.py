"""Tests for vboxctl.constants module."""

from __future__ import annotations

from vboxctl.constants import (
    FORWARDING_KEY_RE,
    GUEST_PROPERTY_RE,
    PORT_RANGE_MAX,
    PORT_RANGE_MIN,
    _CONTROL_CHARS_RE,
)


def test_default_port_range():
    assert (PORT_RANGE_MIN, PORT_RANGE_MAX) == (7000, 8000)


def test_forwarding_key_pattern():
    assert FORWARDING_KEY_RE.match("Forwarding(0)").group(1) == "0"
    assert FORWARDING_KEY_RE.match("Forwarding(12)").group(1) == "12"
    assert FORWARDING_KEY_RE.match("Forwarding") is None
    assert FORWARDING_KEY_RE.match("natnet1") is None


def test_guest_property_pattern():
    match = GUEST_PROPERTY_RE.match("/VirtualBox/GuestInfo/Net/0/V4/IP = '10.0.2.15' @ 2023-02-04T21:42:09.082Z")
    assert match.group("path") == "/VirtualBox/GuestInfo/Net/0/V4/IP"
    assert match.group("value") == "10.0.2.15"


def test_control_chars_pattern():
    assert _CONTROL_CHARS_RE.search("a\tb")
    assert _CONTROL_CHARS_RE.search("a\x7fb")
    assert _CONTROL_CHARS_RE.search("plain name") is None
