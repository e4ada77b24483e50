"""Decoder adapters: read QR codes back from rendered artifacts and image files with ZBar (pyzbar) and OpenCV."""

import base64
import binascii
import io
import time
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image, ImageOps
from pyzbar.pyzbar import decode as pyzbar_decode

from qrforge import config
from qrforge.errors import DecodeError
from qrforge.formatters import detect_qr_type
from qrforge.integrity import Decoder
from qrforge.logging import audit, get_logger, trace
from qrforge.renderer import ArtifactFormat, RenderedArtifact

log = get_logger("decode")


@dataclass
class ScanResult:
    """Result of a single scan attempt."""
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    decoder: str = ""
    error: str | None = None


def prepare_image(image: Image.Image, margin: int = config.DECODER_MARGIN_PX) -> Image.Image:
    """Flatten alpha onto white and widen the quiet zone before scanning."""
    if image.mode in ("RGBA", "LA") or "transparency" in image.info:
        rgba = image.convert("RGBA")
        flat = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        flat.alpha_composite(rgba)
        image = flat
    image = image.convert("RGB")
    if margin > 0:
        image = ImageOps.expand(image, border=margin, fill=(255, 255, 255))
    return image


@trace
def scan_pyzbar(image: Image.Image) -> ScanResult:
    """Scan with pyzbar (wraps ZBar)."""
    start = time.perf_counter()
    try:
        results = pyzbar_decode(image)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.error", logger=log, decoder="pyzbar/zbar", error=str(e), time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="pyzbar/zbar", error=str(e))

    elapsed = (time.perf_counter() - start) * 1000
    if results:
        data = results[0].data.decode("utf-8", errors="replace")
        audit("scan.verified", logger=log, decoder="pyzbar/zbar", success=True,
              time_ms=round(elapsed, 1), data=data[:80])
        return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder="pyzbar/zbar")
    audit("scan.verified", logger=log, decoder="pyzbar/zbar", success=False,
          time_ms=round(elapsed, 1), error="No QR code detected")
    return ScanResult(success=False, decode_time_ms=elapsed, decoder="pyzbar/zbar",
                      error="No QR code detected")


@trace
def scan_opencv(image: Image.Image) -> ScanResult:
    """Scan with OpenCV's built-in QR detector."""
    start = time.perf_counter()
    try:
        gray = cv2.cvtColor(np.array(image.convert("RGB")), cv2.COLOR_RGB2GRAY)
        data, _points, _ = cv2.QRCodeDetector().detectAndDecode(gray)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.error", logger=log, decoder="opencv", error=str(e), time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="opencv", error=str(e))

    elapsed = (time.perf_counter() - start) * 1000
    if data:
        audit("scan.verified", logger=log, decoder="opencv", success=True,
              time_ms=round(elapsed, 1), data=data[:80])
        return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder="opencv")
    audit("scan.verified", logger=log, decoder="opencv", success=False,
          time_ms=round(elapsed, 1), error="No QR code detected")
    return ScanResult(success=False, decode_time_ms=elapsed, decoder="opencv",
                      error="No QR code detected")


SCANNERS = {"pyzbar": scan_pyzbar, "opencv": scan_opencv}


@trace
def scan_image(image: Image.Image, scanners: tuple[str, ...] = ("pyzbar", "opencv")) -> list[ScanResult]:
    """Run scanners in order until one succeeds; return every attempt."""
    prepared = prepare_image(image)
    results = []
    for name in scanners:
        result = SCANNERS[name](prepared)
        results.append(result)
        if result.success:
            break
    return results


class ZbarDecoder(Decoder):
    """Decoder collaborator: pyzbar first, OpenCV as fallback. Raster artifacts only."""

    def __init__(self, scanners: tuple[str, ...] = ("pyzbar", "opencv")):
        unknown = [s for s in scanners if s not in SCANNERS]
        if unknown:
            raise ValueError(f"unknown scanners: {', '.join(unknown)}")
        self.scanners = scanners

    def decode_image(self, image: Image.Image) -> str:
        return _scan(image, self.scanners).content

    async def decode(self, artifact: RenderedArtifact) -> str:
        if artifact.format is not ArtifactFormat.RASTER:
            raise DecodeError("vector artifacts must be rasterized before decoding")
        try:
            image = artifact.to_image()
        except (OSError, ValueError) as e:
            raise DecodeError(f"artifact is not a readable image: {e}") from e
        return self.decode_image(image)


@dataclass(frozen=True)
class ScannedCode:
    """Content read from an arbitrary image, with its detected content type."""
    content: str
    qr_type: str
    decoder: str


def _scan(image: Image.Image, scanners: tuple[str, ...]) -> ScannedCode:
    results = scan_image(image, scanners)
    for result in results:
        if result.success:
            scanned = ScannedCode(result.decoded_data, detect_qr_type(result.decoded_data), result.decoder)
            audit("scan.completed", logger=log, decoder=scanned.decoder, qr_type=scanned.qr_type)
            return scanned
    raise DecodeError("; ".join(f"{r.decoder}: {r.error}" for r in results) or "no scanner ran")


@trace
def scan_file(path, scanners: tuple[str, ...] = ("pyzbar", "opencv")) -> ScannedCode:
    """Decode the QR code in an image file; no expected content needed."""
    try:
        with Image.open(path) as img:
            img.load()
            return _scan(img, scanners)
    except (OSError, SyntaxError) as e:
        raise DecodeError(f"failed to open image: {e}") from e


@trace
def scan_data(payload, scanners: tuple[str, ...] = ("pyzbar", "opencv")) -> ScannedCode:
    """Decode the QR code in encoded image bytes, base64 text, or a ``data:`` URL."""
    if isinstance(payload, str):
        text = payload.split(",", 1)[1] if "," in payload else payload
        try:
            payload = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"failed to decode base64: {e}") from e
    try:
        with Image.open(io.BytesIO(payload)) as img:
            img.load()
            return _scan(img, scanners)
    except (OSError, SyntaxError) as e:
        raise DecodeError(f"failed to read image: {e}") from e
