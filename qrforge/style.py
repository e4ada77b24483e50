"""Style resolution: turn loose user configuration into a renderer-ready descriptor.

``resolve`` never raises. Anything it cannot understand is clamped or replaced
by a default, and feeding a resolved descriptor back in returns an equal one.
"""

import base64
import binascii
import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum

from PIL import ImageColor

from qrforge import config
from qrforge.logging import get_logger
from qrforge.matrix import ECC_NAMES, EyeCorner

log = get_logger("style")


class ModuleShape(Enum):
    SQUARE = "square"
    ROUNDED = "rounded"
    DOTS = "dots"
    DIAMOND = "diamond"


class EyeShape(Enum):
    SQUARE = "square"
    ROUNDED = "rounded"
    CIRCLE = "circle"
    LEAF = "leaf"


class LogoShape(Enum):
    SQUARE = "square"
    CIRCLE = "circle"


class LogoPosition(Enum):
    CENTER = "center"
    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"
    ALL_CORNERS = "all_corners"

    @property
    def corners(self) -> tuple[EyeCorner, ...]:
        """Finder eyes covered by this placement (empty for CENTER)."""
        if self is LogoPosition.ALL_CORNERS:
            return (EyeCorner.TOP_LEFT, EyeCorner.TOP_RIGHT, EyeCorner.BOTTOM_LEFT)
        if self is LogoPosition.CENTER:
            return ()
        return (EyeCorner(self.value),)

    @property
    def is_corner(self) -> bool:
        return self is not LogoPosition.CENTER


@dataclass(frozen=True)
class Gradient:
    from_color: str
    to_color: str


@dataclass(frozen=True)
class LogoSpec:
    shape: LogoShape = LogoShape.SQUARE
    size_percent: float = float(config.LOGO_SIZE_DEFAULT)
    position: LogoPosition = LogoPosition.CENTER
    image: bytes | None = None  # encoded PNG/JPEG; None draws a placeholder mark


@dataclass(frozen=True)
class StyleDescriptor:
    module_shape: ModuleShape = ModuleShape.SQUARE
    eye_shape: EyeShape = EyeShape.SQUARE
    foreground: str = config.DEFAULT_FOREGROUND
    background: str = config.DEFAULT_BACKGROUND
    gradient: Gradient | None = None
    transparent_background: bool = False
    logo: LogoSpec | None = None
    ec_level: str = "M"

    def with_changes(self, **changes) -> "StyleDescriptor":
        """Return a new resolved descriptor with *changes* applied."""
        return resolve(replace(self, **changes))


# Aliases seen in saved templates and older style payloads.
_MODULE_ALIASES = {"circle": "dots", "dot": "dots", "extrarounded": "rounded"}
_EYE_ALIASES = {"round": "rounded", "dot": "circle", "dots": "circle", "extrarounded": "rounded"}
_POSITION_ALIASES = {"corners": "allcorners", "all": "allcorners", "middle": "center"}

_KEYS = {
    "module_shape": ("moduleshape", "dotstyle", "shape"),
    "eye_shape": ("eyeshape", "eyestyle", "cornersquarestyle", "finderstyle"),
    "foreground": ("foregroundcolor", "foreground", "fgcolor", "fg", "color"),
    "background": ("backgroundcolor", "background", "bgcolor", "bg"),
    "gradient": ("gradient",),
    "transparent_background": ("transparentbackground", "transparentbg", "transparent"),
    "logo": ("logo",),
    "ec_level": ("errorcorrectionlevel", "errorcorrection", "eclevel", "ecc", "ec"),
}


def _norm(value) -> str:
    return "".join(ch for ch in str(value).lower() if ch.isalnum())


def _normalized_keys(raw: Mapping) -> dict:
    return {_norm(k): v for k, v in raw.items()}


def _pick(raw: dict, field: str, default=None):
    for key in _KEYS[field]:
        if key in raw:
            return raw[key]
    return default


def _parse_enum(enum_cls, value, default, aliases: dict | None = None):
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return default
    key = _norm(value)
    if aliases:
        key = aliases.get(key, key)
    for member in enum_cls:
        if _norm(member.value) == key:
            return member
    return default


def parse_color(value, default: str | None = None) -> str | None:
    """Normalize a color (hex, CSS name, or RGB sequence) to ``#rrggbb``."""
    rgb = None
    if isinstance(value, (tuple, list)) and len(value) >= 3:
        try:
            rgb = tuple(int(v) for v in value[:3])
        except (TypeError, ValueError, OverflowError):
            rgb = None
        if rgb is not None and not all(0 <= v <= 255 for v in rgb):
            rgb = None
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if not text.startswith("#") and len(text) in (3, 6) and all(
            ch in "0123456789abcdefABCDEF" for ch in text
        ):
            text = "#" + text
        try:
            rgb = tuple(max(0, min(255, int(v))) for v in ImageColor.getrgb(text)[:3])
        except ValueError:
            rgb = None
    if rgb is None:
        return default
    return "#{:02x}{:02x}{:02x}".format(*rgb)


def hex_to_rgb(color: str) -> tuple[int, int, int]:
    color = color.lstrip("#")
    return tuple(int(color[i : i + 2], 16) for i in (0, 2, 4))


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _parse_gradient(value) -> Gradient | None:
    if isinstance(value, Gradient):
        start, end = value.from_color, value.to_color
    elif isinstance(value, Mapping):
        raw = _normalized_keys(value)
        stops = raw.get("colorstops")
        if isinstance(stops, (list, tuple)) and len(stops) >= 2:
            first, last = stops[0], stops[-1]
            start = first.get("color") if isinstance(first, Mapping) else first
            end = last.get("color") if isinstance(last, Mapping) else last
        else:
            start = raw.get("fromcolor", raw.get("from"))
            end = raw.get("tocolor", raw.get("to"))
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        start, end = value
    else:
        return None
    start, end = parse_color(start), parse_color(end)
    if start is None or end is None:
        return None
    return Gradient(from_color=start, to_color=end)


def _parse_image(value) -> bytes | None:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value) or None
    if isinstance(value, str) and value:
        payload = value.split(",", 1)[1] if value.startswith("data:") else value
        try:
            return base64.b64decode(payload, validate=True) or None
        except (binascii.Error, ValueError):
            return None
    return None


def _clamp_size(value) -> float:
    try:
        size = float(value)
    except (TypeError, ValueError, OverflowError):
        return float(config.LOGO_SIZE_DEFAULT)
    if not math.isfinite(size):
        return float(config.LOGO_SIZE_DEFAULT)
    return max(float(config.LOGO_SIZE_MIN), min(float(config.LOGO_SIZE_MAX), size))


def _parse_logo(value) -> LogoSpec | None:
    if value is None or value is False:
        return None
    if value is True:
        return LogoSpec()
    if isinstance(value, LogoSpec):
        return LogoSpec(
            shape=_parse_enum(LogoShape, value.shape, LogoShape.SQUARE),
            size_percent=_clamp_size(value.size_percent),
            position=_parse_enum(LogoPosition, value.position, LogoPosition.CENTER),
            image=_parse_image(value.image),
        )
    if not isinstance(value, Mapping):
        return None
    raw = _normalized_keys(value)
    if "enabled" in raw and not _parse_bool(raw["enabled"]):
        return None
    return LogoSpec(
        shape=_parse_enum(LogoShape, raw.get("shape"), LogoShape.SQUARE),
        size_percent=_clamp_size(raw.get("sizepercent", raw.get("size", config.LOGO_SIZE_DEFAULT))),
        position=_parse_enum(LogoPosition, raw.get("position"), LogoPosition.CENTER, _POSITION_ALIASES),
        image=_parse_image(raw.get("image", raw.get("src"))),
    )


def resolve(raw_config=None) -> StyleDescriptor:
    """Normalize *raw_config* into a StyleDescriptor. Never raises."""
    if isinstance(raw_config, StyleDescriptor):
        raw = {
            "moduleshape": raw_config.module_shape,
            "eyeshape": raw_config.eye_shape,
            "foregroundcolor": raw_config.foreground,
            "backgroundcolor": raw_config.background,
            "gradient": raw_config.gradient,
            "transparentbackground": raw_config.transparent_background,
            "logo": raw_config.logo,
            "errorcorrectionlevel": raw_config.ec_level,
        }
    elif isinstance(raw_config, Mapping):
        raw = _normalized_keys(raw_config)
    else:
        if raw_config is not None:
            log.warning("Ignoring style config of type %s", type(raw_config).__name__)
        raw = {}

    default_ec = config.DEFAULT_EC_LEVEL.strip().upper()
    if default_ec not in ECC_NAMES:
        default_ec = "M"
    ec = str(_pick(raw, "ec_level", default_ec)).strip().upper()
    if ec not in ECC_NAMES:
        ec = default_ec

    return StyleDescriptor(
        module_shape=_parse_enum(ModuleShape, _pick(raw, "module_shape"), ModuleShape.SQUARE, _MODULE_ALIASES),
        eye_shape=_parse_enum(EyeShape, _pick(raw, "eye_shape"), EyeShape.SQUARE, _EYE_ALIASES),
        foreground=parse_color(_pick(raw, "foreground"), config.DEFAULT_FOREGROUND),
        background=parse_color(_pick(raw, "background"), config.DEFAULT_BACKGROUND),
        gradient=_parse_gradient(_pick(raw, "gradient")),
        transparent_background=_parse_bool(_pick(raw, "transparent_background", False)),
        logo=_parse_logo(_pick(raw, "logo")),
        ec_level=ec,
    )


# ---------------------------------------------------------------------------
# Serialization (template storage)
# ---------------------------------------------------------------------------

def style_to_dict(style: StyleDescriptor) -> dict:
    """JSON-ready camelCase mapping that ``resolve`` reads back unchanged."""
    logo = None
    if style.logo is not None:
        logo = {
            "shape": style.logo.shape.value,
            "sizePercent": style.logo.size_percent,
            "position": style.logo.position.value,
            "image": base64.b64encode(style.logo.image).decode("ascii") if style.logo.image else None,
        }
    gradient = None
    if style.gradient is not None:
        gradient = {"fromColor": style.gradient.from_color, "toColor": style.gradient.to_color}
    return {
        "moduleShape": style.module_shape.value,
        "eyeShape": style.eye_shape.value,
        "foregroundColor": style.foreground,
        "backgroundColor": style.background,
        "gradient": gradient,
        "transparentBackground": style.transparent_background,
        "logo": logo,
        "errorCorrectionLevel": style.ec_level,
    }


def style_from_dict(data: Mapping) -> StyleDescriptor:
    return resolve(data)


def style_to_json(style: StyleDescriptor) -> str:
    return json.dumps(style_to_dict(style), sort_keys=True)


def style_from_json(text: str) -> StyleDescriptor:
    """Parse a stored style. Malformed JSON resolves to the default style."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        log.warning("Stored style is not valid JSON; using defaults")
        data = None
    return resolve(data)
