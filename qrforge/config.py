"""Central settings for QR Forge.

Typed constants with ``QRFORGE_*`` environment overrides. Defaults are safe,
so the library works without any environment configuration; CLI flags and
keyword arguments override these per call.
"""

from __future__ import annotations

import os

# --- Rendering ---
DEFAULT_CANVAS_SIZE: int = int(os.getenv("QRFORGE_CANVAS_SIZE", "512"))
PREVIEW_CHECKER_SIZE: int = 8
PREVIEW_CHECKER_COLORS: tuple[str, str] = ("#f0f0f0", "#ffffff")
LOGO_BACKDROP_PADDING_PX: int = 5
LOGO_BACKDROP_RADIUS_PX: int = 5
MIN_MATRIX_SIZE: int = 21

# --- Style defaults ---
DEFAULT_FOREGROUND: str = "#000000"
DEFAULT_BACKGROUND: str = "#ffffff"
DEFAULT_EC_LEVEL: str = os.getenv("QRFORGE_EC_LEVEL", "M")
LOGO_SIZE_MIN: int = 10
LOGO_SIZE_MAX: int = 40
LOGO_SIZE_DEFAULT: int = 25

# --- Validation ---
DECODER_MARGIN_PX: int = int(os.getenv("QRFORGE_DECODER_MARGIN", "32"))
LARGE_CENTER_LOGO_PERCENT: int = 30

# --- Batch ---
GENERATION_TIMEOUT_SECONDS: float = float(os.getenv("QRFORGE_GENERATION_TIMEOUT", "30"))
VALIDATION_TIMEOUT_SECONDS: float = float(os.getenv("QRFORGE_VALIDATION_TIMEOUT", "30"))
EXPORT_NAME_MAX_LEN: int = 50
ZIP_COMPRESSION_LEVEL: int = 6

# --- Logging ---
LOG_LEVEL: str = os.getenv("QRFORGE_LOG_LEVEL", "INFO")
