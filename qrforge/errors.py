"""Error taxonomy shared by the encoder, renderer, estimator and batch layers."""


class QrForgeError(Exception):
    """Base class for all QR Forge failures."""


class EncodeError(QrForgeError):
    """Content cannot be encoded at the requested error-correction level."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MatrixTooSmall(QrForgeError):
    """The matrix side is even or below the smallest symbol size."""

    def __init__(self, size: int):
        super().__init__(f"matrix side must be odd and >= 21, got {size}")
        self.size = size


class RenderError(QrForgeError):
    """Canvas drawing or serialization failed."""


class DecodeError(QrForgeError):
    """The artifact could not be read back."""


class ContentMismatch(QrForgeError):
    """The artifact decoded, but to something other than the expected content."""

    def __init__(self, expected: str, decoded: str):
        super().__init__(f"decoded {decoded[:80]!r}, expected {expected[:80]!r}")
        self.expected = expected
        self.decoded = decoded


class GenerationTimeout(QrForgeError):
    """An encoder or decoder call did not finish within the configured bound."""
