"""Tests for CSV batch input parsing."""

import pytest

from qrforge.csvsource import CsvFormatError, CsvRow, iter_rows, parse_csv, parse_csv_file


class TestParseCsv:
    def test_rows_types_and_labels(self, csv_text):
        rows = parse_csv(csv_text)
        assert rows == [
            CsvRow(0, "https://example.com", "url", "Example"),
            CsvRow(1, "hello world", "text", "Greeting"),
            CsvRow(2, "tel:+15550100", "phone", None),
        ]

    def test_headers_are_case_insensitive_and_any_order(self):
        rows = parse_csv("Label, Content\nhome,https://example.com\n")
        assert rows == [CsvRow(0, "https://example.com", "url", "home")]

    def test_quoted_fields(self):
        rows = parse_csv('content\n"WIFI:T:WPA;S:home;P:a,b;;"\n')
        assert rows[0].content == "WIFI:T:WPA;S:home;P:a,b;;"
        assert rows[0].qr_type == "wifi"

    def test_byte_order_mark(self):
        assert parse_csv("\ufeffcontent\nabc\n")[0].content == "abc"

    def test_short_records(self):
        rows = parse_csv("content,type,label\nabc\n")
        assert rows == [CsvRow(0, "abc", "text", None)]

    def test_is_lazy(self):
        rows = iter_rows("content\na\nb\n")
        assert next(rows).content == "a"

    def test_missing_content_column(self):
        with pytest.raises(CsvFormatError):
            parse_csv("url,label\nhttps://example.com,x\n")

    def test_empty_input(self):
        with pytest.raises(CsvFormatError):
            parse_csv("")

    def test_header_only(self):
        assert parse_csv("content,type,label\n") == []


class TestParseCsvFile:
    def test_reads_file(self, tmp_path, csv_text):
        path = tmp_path / "rows.csv"
        path.write_text(csv_text, encoding="utf-8")
        assert len(parse_csv_file(path)) == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(CsvFormatError):
            parse_csv_file(tmp_path / "missing.csv")
