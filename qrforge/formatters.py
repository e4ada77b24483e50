"""Payload builders for the structured content types, plus content-type detection."""

import re
from dataclasses import dataclass
from urllib.parse import quote

QR_TYPES = ("url", "text", "wifi", "vcard", "email", "sms", "phone", "geo", "calendar")

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_BARE_DOMAIN = re.compile(r"^[a-z0-9.-]+\.[a-z]{2,}", re.IGNORECASE)

_PREFIXES = (
    ("wifi:", "wifi"),
    ("begin:vcard", "vcard"),
    ("mailto:", "email"),
    ("sms:", "sms"),
    ("smsto:", "sms"),
    ("tel:", "phone"),
    ("geo:", "geo"),
    ("begin:vevent", "calendar"),
)


def detect_qr_type(content: str) -> str:
    """Guess the content type from its prefix; falls back to "text"."""
    if not content:
        return "text"
    lower = content.lower()
    for prefix, qr_type in _PREFIXES:
        if lower.startswith(prefix):
            return qr_type
    if _SCHEME.match(content) or _BARE_DOMAIN.match(content):
        return "url"
    return "text"


def _escape_wifi(value: str) -> str:
    for ch in ("\\", ";", ":", '"'):
        value = value.replace(ch, "\\" + ch)
    return value


@dataclass
class WifiConfig:
    ssid: str
    password: str = ""
    encryption: str = "WPA"  # WPA | WEP | nopass
    hidden: bool = False


def format_wifi(cfg: WifiConfig) -> str:
    """WIFI:T:<enc>;S:<ssid>;P:<password>;H:<hidden>;;"""
    result = f"WIFI:T:{cfg.encryption};S:{_escape_wifi(cfg.ssid)};"
    if cfg.encryption != "nopass" and cfg.password:
        result += f"P:{_escape_wifi(cfg.password)};"
    if cfg.hidden:
        result += "H:true;"
    return result + ";"


@dataclass
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""


@dataclass
class VCardConfig:
    first_name: str = ""
    last_name: str = ""
    organization: str | None = None
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    url: str | None = None
    address: Address | None = None


def format_vcard(cfg: VCardConfig) -> str:
    """vCard 3.0, newline separated."""
    lines = [
        "BEGIN:VCARD",
        "VERSION:3.0",
        f"N:{cfg.last_name};{cfg.first_name};;;",
        "FN:" + " ".join(part for part in (cfg.first_name, cfg.last_name) if part),
    ]
    if cfg.organization:
        lines.append(f"ORG:{cfg.organization}")
    if cfg.title:
        lines.append(f"TITLE:{cfg.title}")
    if cfg.phone:
        lines.append(f"TEL:{cfg.phone}")
    if cfg.email:
        lines.append(f"EMAIL:{cfg.email}")
    if cfg.url:
        lines.append(f"URL:{cfg.url}")
    if cfg.address:
        a = cfg.address
        lines.append(f"ADR:;;{a.street};{a.city};{a.state};{a.zip};{a.country}")
    lines.append("END:VCARD")
    return "\n".join(lines)


def format_email(to: str, subject: str | None = None, body: str | None = None) -> str:
    params = []
    if subject:
        params.append(f"subject={quote(subject, safe='')}")
    if body:
        params.append(f"body={quote(body, safe='')}")
    result = f"mailto:{to}"
    if params:
        result += "?" + "&".join(params)
    return result


def format_sms(phone: str, message: str | None = None) -> str:
    result = f"sms:{phone}"
    if message:
        result += f"?body={quote(message, safe='')}"
    return result


def format_phone(phone: str) -> str:
    return "tel:" + re.sub(r"\s", "", phone)


def format_geo(latitude, longitude) -> str:
    return f"geo:{latitude},{longitude}"


def format_url(url: str) -> str:
    """Prefix https:// when no http(s) scheme is present."""
    if not url:
        return ""
    if not _SCHEME.match(url):
        return f"https://{url}"
    return url
