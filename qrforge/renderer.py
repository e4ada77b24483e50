"""Grid renderer: paint a module matrix with a resolved style into a PNG or SVG artifact.

Drawing order:
    1. Background (solid, preview checkerboard, or true alpha)
    2. Data modules (module shape, flat or diagonal-gradient fill)
    3. Finder-eye modules (eye shape, same fill rules)
    4. Logo backdrops and logo content at each anchor, always last

Raster and vector output share the same geometry through a small painter
interface, so a PNG and an SVG of the same inputs describe the same picture.
"""

import base64
import io
from dataclasses import dataclass
from enum import Enum

from PIL import Image, ImageDraw

from qrforge import config
from qrforge.errors import MatrixTooSmall, RenderError
from qrforge.logging import audit, get_logger, trace
from qrforge.matrix import FINDER_SIZE, EyeCorner, Matrix, RegionKind, eye_origin
from qrforge.style import (
    EyeShape,
    LogoPosition,
    LogoShape,
    ModuleShape,
    StyleDescriptor,
    hex_to_rgb,
)

log = get_logger("renderer")

PAD_RATIO = 0.08
ROUNDED_MODULE_RADIUS = 0.35
DOT_RADIUS = 0.45
ROUNDED_EYE_RADIUS = 0.3
LEAF_EYE_RADIUS = 0.45
CORNER_LOGO_CELLS = 5
PLACEHOLDER_RATIO = 0.42

WHITE = (255, 255, 255)
LEAF_CORNERS = (True, False, True, False)  # top-left, top-right, bottom-right, bottom-left


class ArtifactFormat(Enum):
    RASTER = "png"
    VECTOR = "svg"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def media_type(self) -> str:
        return "image/png" if self is ArtifactFormat.RASTER else "image/svg+xml"

    @classmethod
    def parse(cls, value) -> "ArtifactFormat":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().lstrip(".")
        for member in cls:
            if key in (member.value, member.name.lower()):
                return member
        raise ValueError(f"unknown artifact format {value!r}")


@dataclass(frozen=True)
class RenderedArtifact:
    """Immutable render output. Re-rendering produces a new artifact."""

    data: bytes
    width_px: int
    height_px: int
    format: ArtifactFormat

    @property
    def media_type(self) -> str:
        return self.format.media_type

    @property
    def extension(self) -> str:
        return self.format.extension

    def to_image(self) -> Image.Image:
        """Load a raster artifact as a PIL image."""
        if self.format is not ArtifactFormat.RASTER:
            raise RenderError("only raster artifacts can be loaded as images")
        img = Image.open(io.BytesIO(self.data))
        img.load()
        return img


# ---------------------------------------------------------------------------
# Geometry and colour helpers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Geometry:
    """Pixel layout for an N-module grid with a one-cell quiet zone."""

    modules: int
    canvas: int

    @property
    def cell(self) -> float:
        return self.canvas / (self.modules + 2)

    @property
    def margin(self) -> float:
        return self.cell

    def cell_origin(self, row: int, col: int) -> tuple[float, float]:
        return self.margin + col * self.cell, self.margin + row * self.cell

    def eye_center(self, corner: EyeCorner) -> tuple[float, float]:
        """Pixel centre of a finder eye's 7x7 block."""
        row, col = eye_origin(corner, self.modules)
        half = FINDER_SIZE // 2
        x, y = self.cell_origin(row + half, col + half)
        return x + self.cell / 2, y + self.cell / 2


def lerp_color(start: tuple[int, int, int], end: tuple[int, int, int], t: float) -> tuple[int, int, int]:
    return tuple(round(a + (b - a) * t) for a, b in zip(start, end))


def module_fill(style: StyleDescriptor, row: int, col: int, modules: int) -> tuple[int, int, int]:
    """Fill colour for one dark module: flat foreground or diagonal gradient ramp."""
    if style.gradient is None:
        return hex_to_rgb(style.foreground)
    t = (col + row) / (2 * modules)
    return lerp_color(hex_to_rgb(style.gradient.from_color), hex_to_rgb(style.gradient.to_color), t)


def mark_fill(style: StyleDescriptor) -> tuple[int, int, int]:
    """Colour of the placeholder logo mark: gradient midpoint or foreground."""
    if style.gradient is None:
        return hex_to_rgb(style.foreground)
    return lerp_color(hex_to_rgb(style.gradient.from_color), hex_to_rgb(style.gradient.to_color), 0.5)


def _scale_preserving_aspect(original_size: tuple[int, int], target: int) -> tuple[int, int]:
    """Scale (w, h) so the larger dimension equals *target*."""
    w, h = original_size
    aspect = w / h
    if aspect >= 1:
        return target, max(1, int(target / aspect))
    return max(1, int(target * aspect)), target


def _load_logo(image_bytes: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (OSError, ValueError) as e:
        raise RenderError(f"logo image could not be read: {e}") from e
    return img.convert("RGBA")


# ---------------------------------------------------------------------------
# Painters
# ---------------------------------------------------------------------------

class RasterPainter:
    """Pillow-backed painter."""

    def __init__(self, canvas: int, transparent: bool):
        self.mode = "RGBA" if transparent else "RGB"
        background = (0, 0, 0, 0) if transparent else WHITE
        self.image = Image.new(self.mode, (canvas, canvas), background)
        self.draw = ImageDraw.Draw(self.image)

    def _ink(self, rgb):
        return (*rgb, 255) if self.mode == "RGBA" else tuple(rgb)

    def fill(self, rgb):
        self.draw.rectangle([0, 0, self.image.width, self.image.height], fill=self._ink(rgb))

    def checkerboard(self, square: int, colors):
        inks = [self._ink(hex_to_rgb(c)) for c in colors]
        w, h = self.image.size
        for iy in range(0, h, square):
            for ix in range(0, w, square):
                ink = inks[0] if (ix // square + iy // square) % 2 == 0 else inks[1]
                self.draw.rectangle([ix, iy, ix + square - 1, iy + square - 1], fill=ink)

    def rect(self, x0, y0, x1, y1, rgb):
        self.draw.rectangle([x0, y0, x1, y1], fill=self._ink(rgb))

    def rounded_rect(self, x0, y0, x1, y1, radius, rgb, corners=None):
        radius = min(radius, (x1 - x0) / 2, (y1 - y0) / 2)
        self.draw.rounded_rectangle([x0, y0, x1, y1], radius=radius, fill=self._ink(rgb), corners=corners)

    def circle(self, cx, cy, r, rgb):
        self.draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=self._ink(rgb))

    def polygon(self, points, rgb):
        self.draw.polygon(points, fill=self._ink(rgb))

    def logo_image(self, image_bytes: bytes, cx, cy, edge: int, circular: bool):
        logo = _load_logo(image_bytes)
        w, h = _scale_preserving_aspect(logo.size, edge)
        logo = logo.resize((w, h), Image.LANCZOS)
        if circular:
            clip = Image.new("L", (w, h), 0)
            ImageDraw.Draw(clip).ellipse([0, 0, w - 1, h - 1], fill=255)
            alpha = Image.composite(logo.getchannel("A"), clip, clip)
            logo.putalpha(alpha)
        x, y = round(cx - w / 2), round(cy - h / 2)
        if self.mode == "RGBA":
            self.image.alpha_composite(logo, (x, y))
        else:
            self.image.paste(logo, (x, y), logo)

    def serialize(self) -> bytes:
        buf = io.BytesIO()
        self.image.save(buf, format="PNG")
        return buf.getvalue()


def _num(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def _hex(rgb) -> str:
    return "#{:02x}{:02x}{:02x}".format(*rgb)


class VectorPainter:
    """SVG painter producing one element per primitive."""

    def __init__(self, canvas: int, transparent: bool):
        self.canvas = canvas
        self.defs: list[str] = []
        self.elements: list[str] = []

    def fill(self, rgb):
        self.elements.append(f'<rect x="0" y="0" width="{self.canvas}" height="{self.canvas}" fill="{_hex(rgb)}"/>')

    def checkerboard(self, square: int, colors):
        a, b = colors
        self.defs.append(
            f'<pattern id="checker" width="{square * 2}" height="{square * 2}" patternUnits="userSpaceOnUse">'
            f'<rect width="{square * 2}" height="{square * 2}" fill="{b}"/>'
            f'<rect width="{square}" height="{square}" fill="{a}"/>'
            f'<rect x="{square}" y="{square}" width="{square}" height="{square}" fill="{a}"/>'
            "</pattern>"
        )
        self.elements.append(f'<rect x="0" y="0" width="{self.canvas}" height="{self.canvas}" fill="url(#checker)"/>')

    def rect(self, x0, y0, x1, y1, rgb):
        self.elements.append(
            f'<rect x="{_num(x0)}" y="{_num(y0)}" width="{_num(x1 - x0)}" height="{_num(y1 - y0)}" fill="{_hex(rgb)}"/>'
        )

    def rounded_rect(self, x0, y0, x1, y1, radius, rgb, corners=None):
        radius = min(radius, (x1 - x0) / 2, (y1 - y0) / 2)
        if corners is None or all(corners):
            self.elements.append(
                f'<rect x="{_num(x0)}" y="{_num(y0)}" width="{_num(x1 - x0)}" height="{_num(y1 - y0)}" '
                f'rx="{_num(radius)}" fill="{_hex(rgb)}"/>'
            )
            return
        tl, tr, br, bl = (radius if c else 0.0 for c in corners)
        d = (
            f"M{_num(x0 + tl)},{_num(y0)} H{_num(x1 - tr)} "
            f"A{_num(tr)},{_num(tr)} 0 0 1 {_num(x1)},{_num(y0 + tr)} V{_num(y1 - br)} "
            f"A{_num(br)},{_num(br)} 0 0 1 {_num(x1 - br)},{_num(y1)} H{_num(x0 + bl)} "
            f"A{_num(bl)},{_num(bl)} 0 0 1 {_num(x0)},{_num(y1 - bl)} V{_num(y0 + tl)} "
            f"A{_num(tl)},{_num(tl)} 0 0 1 {_num(x0 + tl)},{_num(y0)} Z"
        )
        self.elements.append(f'<path d="{d}" fill="{_hex(rgb)}"/>')

    def circle(self, cx, cy, r, rgb):
        self.elements.append(f'<circle cx="{_num(cx)}" cy="{_num(cy)}" r="{_num(r)}" fill="{_hex(rgb)}"/>')

    def polygon(self, points, rgb):
        pts = " ".join(f"{_num(x)},{_num(y)}" for x, y in points)
        self.elements.append(f'<polygon points="{pts}" fill="{_hex(rgb)}"/>')

    def logo_image(self, image_bytes: bytes, cx, cy, edge: int, circular: bool):
        logo = _load_logo(image_bytes)
        w, h = _scale_preserving_aspect(logo.size, edge)
        buf = io.BytesIO()
        logo.resize((w, h), Image.LANCZOS).save(buf, format="PNG")
        href = "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
        x, y = cx - w / 2, cy - h / 2
        clip = ""
        if circular:
            clip_id = f"logo-clip-{len(self.defs)}"
            self.defs.append(
                f'<clipPath id="{clip_id}"><ellipse cx="{_num(cx)}" cy="{_num(cy)}" '
                f'rx="{_num(w / 2)}" ry="{_num(h / 2)}"/></clipPath>'
            )
            clip = f' clip-path="url(#{clip_id})"'
        self.elements.append(
            f'<image x="{_num(x)}" y="{_num(y)}" width="{w}" height="{h}" href="{href}"{clip}/>'
        )

    def serialize(self) -> bytes:
        parts = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{self.canvas}" height="{self.canvas}" '
            f'viewBox="0 0 {self.canvas} {self.canvas}">',
        ]
        if self.defs:
            parts.append("<defs>" + "".join(self.defs) + "</defs>")
        parts.extend(self.elements)
        parts.append("</svg>")
        return "\n".join(parts).encode("utf-8")


# ---------------------------------------------------------------------------
# Shape tables
# ---------------------------------------------------------------------------

def _draw_data_module(painter, px, py, cell, rgb, shape: ModuleShape):
    pad = cell * PAD_RATIO
    if shape is ModuleShape.ROUNDED:
        painter.rounded_rect(px + pad, py + pad, px + cell - pad, py + cell - pad, cell * ROUNDED_MODULE_RADIUS, rgb)
    elif shape is ModuleShape.DOTS:
        painter.circle(px + cell / 2, py + cell / 2, (cell - pad * 2) * DOT_RADIUS, rgb)
    elif shape is ModuleShape.DIAMOND:
        painter.polygon([
            (px + cell / 2, py + pad),
            (px + cell - pad, py + cell / 2),
            (px + cell / 2, py + cell - pad),
            (px + pad, py + cell / 2),
        ], rgb)
    else:
        painter.rect(px + pad, py + pad, px + cell - pad, py + cell - pad, rgb)


def _draw_eye_module(painter, px, py, cell, rgb, shape: EyeShape):
    pad = cell * PAD_RATIO
    if shape is EyeShape.ROUNDED:
        painter.rounded_rect(px + pad, py + pad, px + cell - pad, py + cell - pad, cell * ROUNDED_EYE_RADIUS, rgb)
    elif shape is EyeShape.CIRCLE:
        painter.circle(px + cell / 2, py + cell / 2, (cell - pad * 2) / 2, rgb)
    elif shape is EyeShape.LEAF:
        painter.rounded_rect(px + pad, py + pad, px + cell - pad, py + cell - pad, cell * LEAF_EYE_RADIUS, rgb,
                             corners=LEAF_CORNERS)
    else:
        painter.rect(px + pad, py + pad, px + cell - pad, py + cell - pad, rgb)


# ---------------------------------------------------------------------------
# Logo overlay
# ---------------------------------------------------------------------------

def logo_anchors(geometry: Geometry, position: LogoPosition) -> list[tuple[float, float]]:
    """Pixel anchor points for a logo placement."""
    if position is LogoPosition.CENTER:
        return [(geometry.canvas / 2, geometry.canvas / 2)]
    return [geometry.eye_center(corner) for corner in position.corners]


def logo_edge(geometry: Geometry, position: LogoPosition, size_percent: float) -> float:
    """Logo edge in pixels: share of the canvas at centre, five cells on an eye."""
    if position is LogoPosition.CENTER:
        return geometry.canvas * size_percent / 100
    return geometry.cell * CORNER_LOGO_CELLS


def _draw_logo(painter, style: StyleDescriptor, cx: float, cy: float, edge: float):
    logo = style.logo
    pad = config.LOGO_BACKDROP_PADDING_PX
    backdrop = WHITE if style.transparent_background else hex_to_rgb(style.background)
    half = edge / 2 + pad
    if logo.shape is LogoShape.CIRCLE:
        painter.circle(cx, cy, half, backdrop)
    else:
        painter.rounded_rect(cx - half, cy - half, cx + half, cy + half, config.LOGO_BACKDROP_RADIUS_PX, backdrop)

    if logo.image:
        painter.logo_image(logo.image, cx, cy, max(1, int(edge)), logo.shape is LogoShape.CIRCLE)
        return

    mark = edge * PLACEHOLDER_RATIO / 2
    if logo.shape is LogoShape.CIRCLE:
        painter.circle(cx, cy, mark, mark_fill(style))
    else:
        painter.rect(cx - mark, cy - mark, cx + mark, cy + mark, mark_fill(style))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def check_matrix(matrix: Matrix) -> int:
    """Validate the grid shape and return its side length."""
    size = matrix.size
    if size < config.MIN_MATRIX_SIZE or size % 2 == 0:
        raise MatrixTooSmall(size)
    if any(len(row) != size for row in matrix.cells):
        raise RenderError("matrix is not square")
    return size


class GridRenderer:
    """Turn a Matrix plus StyleDescriptor into a RenderedArtifact.

    Args:
        checker_size: Square size of the transparency preview checkerboard.
    """

    def __init__(self, checker_size: int = config.PREVIEW_CHECKER_SIZE):
        self.checker_size = checker_size

    @trace
    def render(
        self,
        matrix: Matrix,
        style: StyleDescriptor,
        canvas_size_px: int = config.DEFAULT_CANVAS_SIZE,
        fmt: ArtifactFormat = ArtifactFormat.RASTER,
        *,
        preview: bool = False,
    ) -> RenderedArtifact:
        """Render *matrix* with *style*.

        Args:
            matrix: Module grid; never modified.
            style: Resolved style descriptor.
            canvas_size_px: Output edge length in pixels.
            fmt: RASTER (PNG) or VECTOR (SVG).
            preview: With a transparent background, paint a checkerboard
                instead of real alpha so the preview shows transparency.

        Raises:
            MatrixTooSmall: side is even or below 21.
            RenderError: canvas too small, unreadable logo, or encoder failure.
        """
        size = check_matrix(matrix)
        fmt = ArtifactFormat.parse(fmt)
        canvas = int(canvas_size_px)
        if canvas < size + 2:
            raise RenderError(f"canvas of {canvas}px cannot hold {size + 2} cells")

        geometry = Geometry(modules=size, canvas=canvas)
        alpha = style.transparent_background and not preview
        painter = (RasterPainter if fmt is ArtifactFormat.RASTER else VectorPainter)(canvas, alpha)

        try:
            if style.transparent_background:
                if preview:
                    painter.checkerboard(self.checker_size, config.PREVIEW_CHECKER_COLORS)
            else:
                painter.fill(hex_to_rgb(style.background))

            cell = geometry.cell
            for row, col, region in matrix.dark_modules():
                px, py = geometry.cell_origin(row, col)
                rgb = module_fill(style, row, col, size)
                if region is RegionKind.FINDER_EYE:
                    _draw_eye_module(painter, px, py, cell, rgb, style.eye_shape)
                else:
                    _draw_data_module(painter, px, py, cell, rgb, style.module_shape)

            anchors = []
            if style.logo is not None:
                edge = logo_edge(geometry, style.logo.position, style.logo.size_percent)
                anchors = logo_anchors(geometry, style.logo.position)
                for cx, cy in anchors:
                    _draw_logo(painter, style, cx, cy, edge)

            data = painter.serialize()
        except RenderError:
            raise
        except (OSError, ValueError, TypeError) as e:
            raise RenderError(f"{fmt.value} rendering failed: {e}") from e

        audit("render.completed", logger=log,
              modules=f"{size}x{size}", canvas=canvas, format=fmt.value,
              module_shape=style.module_shape.value, eye_shape=style.eye_shape.value,
              gradient=style.gradient is not None, logos=len(anchors), bytes=len(data))
        return RenderedArtifact(data=data, width_px=canvas, height_px=canvas, format=fmt)
