"""Matrix source: encode content into an immutable module grid with region tags."""

from dataclasses import dataclass
from enum import Enum

import qrcode
import qrcode.constants
from qrcode.exceptions import DataOverflowError

from qrforge.errors import EncodeError
from qrforge.logging import audit, get_logger, trace

log = get_logger("matrix")

FINDER_SIZE = 7
FINDER_BOX = 8  # finder plus its one-module separator


class ECCLevel(Enum):
    L = qrcode.constants.ERROR_CORRECT_L  # 7%
    M = qrcode.constants.ERROR_CORRECT_M  # 15%
    Q = qrcode.constants.ERROR_CORRECT_Q  # 25%
    H = qrcode.constants.ERROR_CORRECT_H  # 30%


ECC_NAMES = {"L": ECCLevel.L, "M": ECCLevel.M, "Q": ECCLevel.Q, "H": ECCLevel.H}


class RegionKind(Enum):
    FINDER_EYE = "finder_eye"
    DATA = "data"


class EyeCorner(Enum):
    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"


def eye_origin(corner: EyeCorner, size: int) -> tuple[int, int]:
    """(row, col) of the top-left module of a finder eye."""
    if corner is EyeCorner.TOP_RIGHT:
        return 0, size - FINDER_SIZE
    if corner is EyeCorner.BOTTOM_LEFT:
        return size - FINDER_SIZE, 0
    return 0, 0


def _in_corner_block(row: int, col: int, size: int, block: int) -> bool:
    top = row < block
    left = col < block
    return (top and left) or (top and col >= size - block) or (left and row >= size - block)


@dataclass(frozen=True)
class Matrix:
    """Square module grid. ``cells[row][col]`` is True for a dark module."""

    cells: tuple[tuple[bool, ...], ...]
    version: int | None = None
    ec_level: str | None = None

    @property
    def size(self) -> int:
        return len(self.cells)

    def is_set(self, row: int, col: int) -> bool:
        return self.cells[row][col]

    def region(self, row: int, col: int) -> RegionKind:
        if _in_corner_block(row, col, self.size, FINDER_SIZE):
            return RegionKind.FINDER_EYE
        return RegionKind.DATA

    def in_finder_box(self, row: int, col: int) -> bool:
        """True inside the 8x8 box formed by an eye and its separator."""
        return _in_corner_block(row, col, self.size, FINDER_BOX)

    def dark_modules(self):
        """Yield (row, col, region) for every dark module in row-major order."""
        for r, line in enumerate(self.cells):
            for c, value in enumerate(line):
                if value:
                    yield r, c, self.region(r, c)

    @classmethod
    def from_rows(cls, rows, version: int | None = None, ec_level: str | None = None) -> "Matrix":
        """Build a matrix from any nested iterable of truthy values."""
        return cls(
            cells=tuple(tuple(bool(v) for v in line) for line in rows),
            version=version,
            ec_level=ec_level,
        )


@trace
def encode_matrix(content: str, ec_level: str = "M") -> Matrix:
    """Encode *content* with the smallest symbol version that fits.

    Raises:
        EncodeError: content is empty, the level is unknown, or the content
            does not fit the largest symbol at this level.
    """
    level = ECC_NAMES.get(str(ec_level).upper())
    if level is None:
        raise EncodeError(f"unknown error correction level {ec_level!r}")
    if not content:
        raise EncodeError("content is empty")

    qr = qrcode.QRCode(
        version=None,
        error_correction=level.value,
        box_size=1,
        border=0,
    )
    qr.add_data(content)
    try:
        qr.make(fit=True)
    except (DataOverflowError, ValueError) as e:
        audit("matrix.encode_failed", logger=log, data=content[:80], ecc=level.name, error=str(e))
        raise EncodeError(f"content too long for error correction level {level.name}") from e

    matrix = Matrix.from_rows(qr.modules, version=qr.version, ec_level=level.name)
    audit("matrix.encoded", logger=log,
          data=content[:80], version=qr.version,
          size=f"{matrix.size}x{matrix.size}", ecc=level.name)
    return matrix


class QrcodeEncoder:
    """Encoder collaborator backed by the ``qrcode`` library.

    ``encode`` is a coroutine so callers can treat it as a suspension point;
    the work itself is synchronous and deterministic.
    """

    async def encode(self, content: str, ec_level: str) -> Matrix:
        return encode_matrix(content, ec_level)
