"""Tests for content payload builders and type detection."""

import pytest

from qrforge.formatters import (
    Address,
    VCardConfig,
    WifiConfig,
    detect_qr_type,
    format_email,
    format_geo,
    format_phone,
    format_sms,
    format_url,
    format_vcard,
    format_wifi,
)


@pytest.mark.parametrize("content,expected", [
    ("https://example.com", "url"),
    ("HTTP://EXAMPLE.COM", "url"),
    ("example.com/path", "url"),
    ("WIFI:T:WPA;S:x;;", "wifi"),
    ("BEGIN:VCARD\nEND:VCARD", "vcard"),
    ("mailto:a@b.c", "email"),
    ("SMSTO:123", "sms"),
    ("tel:123", "phone"),
    ("geo:1,2", "geo"),
    ("BEGIN:VEVENT", "calendar"),
    ("just some words", "text"),
    ("", "text"),
])
def test_detect_qr_type(content, expected):
    assert detect_qr_type(content) == expected


class TestWifi:
    def test_wpa(self):
        assert format_wifi(WifiConfig("home", "secret")) == "WIFI:T:WPA;S:home;P:secret;;"

    def test_escaping_and_hidden(self):
        result = format_wifi(WifiConfig('my;net', 'pa:ss"', hidden=True))
        assert result == 'WIFI:T:WPA;S:my\\;net;P:pa\\:ss\\";H:true;;'

    def test_open_network_drops_password(self):
        assert format_wifi(WifiConfig("cafe", "ignored", "nopass")) == "WIFI:T:nopass;S:cafe;;"


def test_vcard():
    card = format_vcard(VCardConfig(
        first_name="Ada",
        last_name="Lovelace",
        organization="Engines Ltd",
        email="ada@example.com",
        address=Address(street="1 Main St", city="London", country="UK"),
    ))
    lines = card.split("\n")
    assert lines[:4] == ["BEGIN:VCARD", "VERSION:3.0", "N:Lovelace;Ada;;;", "FN:Ada Lovelace"]
    assert "ORG:Engines Ltd" in lines
    assert "ADR:;;1 Main St;London;;;UK" in lines
    assert lines[-1] == "END:VCARD"
    assert detect_qr_type(card) == "vcard"


def test_email():
    assert format_email("a@b.c") == "mailto:a@b.c"
    assert format_email("a@b.c", "Hi there", "x&y") == "mailto:a@b.c?subject=Hi%20there&body=x%26y"


def test_sms_phone_geo():
    assert format_sms("+1555", "on my way") == "sms:+1555?body=on%20my%20way"
    assert format_phone("+1 555 0100") == "tel:+15550100"
    assert format_geo(51.5, -0.12) == "geo:51.5,-0.12"


def test_url():
    assert format_url("example.com") == "https://example.com"
    assert format_url("http://example.com") == "http://example.com"
    assert format_url("") == ""
