"""Tests for the matrix source (qrcode-backed encoder)."""

import asyncio

import pytest

from qrforge.errors import EncodeError
from qrforge.matrix import EyeCorner, Matrix, QrcodeEncoder, RegionKind, encode_matrix, eye_origin


class TestEncodeMatrix:
    def test_smallest_version_for_short_url(self):
        matrix = encode_matrix("https://example.com", "M")
        assert matrix.size == 25
        assert matrix.version == 2
        assert matrix.ec_level == "M"

    def test_encoding_is_deterministic(self):
        assert encode_matrix("hello", "Q") == encode_matrix("hello", "Q")

    def test_higher_level_never_shrinks_symbol(self):
        low = encode_matrix("https://example.com/some/longer/path?q=1", "L")
        high = encode_matrix("https://example.com/some/longer/path?q=1", "H")
        assert high.size >= low.size

    def test_level_is_case_insensitive(self):
        assert encode_matrix("abc", "h").ec_level == "H"

    def test_too_long_content_raises(self):
        with pytest.raises(EncodeError) as exc:
            encode_matrix("x" * 3000, "M")
        assert "M" in exc.value.reason

    def test_empty_content_raises(self):
        with pytest.raises(EncodeError):
            encode_matrix("", "M")

    def test_unknown_level_raises(self):
        with pytest.raises(EncodeError):
            encode_matrix("abc", "Z")

    def test_async_adapter(self):
        matrix = asyncio.run(QrcodeEncoder().encode("abc", "L"))
        assert matrix == encode_matrix("abc", "L")


class TestRegions:
    def test_finder_corners_are_eyes(self, url_matrix):
        n = url_matrix.size
        assert url_matrix.region(0, 0) is RegionKind.FINDER_EYE
        assert url_matrix.region(6, n - 1) is RegionKind.FINDER_EYE
        assert url_matrix.region(n - 1, 6) is RegionKind.FINDER_EYE
        assert url_matrix.region(n - 1, n - 1) is RegionKind.DATA
        assert url_matrix.region(7, 7) is RegionKind.DATA

    def test_finder_eye_pattern(self, url_matrix):
        # outer ring dark, ring inside it light, 3x3 core dark
        assert url_matrix.is_set(0, 0)
        assert not url_matrix.is_set(1, 1)
        assert url_matrix.is_set(3, 3)

    def test_finder_box_includes_separator(self, url_matrix):
        assert url_matrix.in_finder_box(7, 7)
        assert url_matrix.region(7, 7) is RegionKind.DATA
        assert not url_matrix.in_finder_box(8, 8)

    def test_eye_origin(self):
        assert eye_origin(EyeCorner.TOP_LEFT, 21) == (0, 0)
        assert eye_origin(EyeCorner.TOP_RIGHT, 21) == (0, 14)
        assert eye_origin(EyeCorner.BOTTOM_LEFT, 21) == (14, 0)

    def test_dark_modules_row_major(self, url_matrix):
        modules = list(url_matrix.dark_modules())
        assert modules[0][:2] == (0, 0)
        assert modules == sorted(modules, key=lambda m: (m[0], m[1]))
        assert len(modules) == sum(sum(row) for row in url_matrix.cells)

    def test_from_rows_is_immutable(self):
        rows = [[1, 0], [0, 1]]
        matrix = Matrix.from_rows(rows)
        rows[0][0] = 0
        assert matrix.cells == ((True, False), (False, True))
