"""QR Forge: styled QR code rendering, scan validation and batch export."""

__version__ = "0.1.0"
