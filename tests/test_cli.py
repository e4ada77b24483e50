"""Tests for the command-line interface (decoder-free paths)."""

import io
import logging
import zipfile

import pytest
from PIL import Image

from qrforge import config
from qrforge.cli import _style_from_args, build_parser, main
from qrforge.history import HistoryStore
from qrforge.templates import TemplateStore


class TestGenerate:
    def test_png(self, tmp_path, capsys):
        out = tmp_path / "qr.png"
        main(["generate", "https://example.com", "-o", str(out), "-s", "270", "--module-shape", "dots"])
        assert Image.open(out).size == (270, 270)
        assert "Generated" in capsys.readouterr().out

    def test_svg_from_suffix(self, tmp_path):
        out = tmp_path / "qr.svg"
        main(["generate", "hello", "-o", str(out), "--eye-shape", "leaf", "--gradient", "#ff0000", "#0000ff"])
        assert out.read_text(encoding="utf-8").startswith("<?xml")

    def test_logo_file(self, tmp_path, logo_png):
        logo = tmp_path / "logo.png"
        logo.write_bytes(logo_png)
        out = tmp_path / "qr.png"
        main(["generate", "hello", "-o", str(out), "-e", "H", "--logo", str(logo), "--logo-size", "20"])
        assert out.exists()

    def test_unencodable_content_exits_nonzero(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["generate", "x" * 3000, "-o", str(tmp_path / "qr.png")])
        assert exc.value.code == 1
        assert "Error" in capsys.readouterr().err


class TestBatch:
    def test_batch_zip(self, tmp_path, csv_text):
        src = tmp_path / "rows.csv"
        src.write_text(csv_text, encoding="utf-8")
        out = tmp_path / "codes.zip"
        with pytest.raises(SystemExit) as exc:
            main(["batch", str(src), "-o", str(out), "--no-validate", "-f", "svg", "-s", "200"])
        assert exc.value.code == 0
        with zipfile.ZipFile(io.BytesIO(out.read_bytes())) as zf:
            assert sorted(zf.namelist()) == ["Example.svg", "Greeting.svg", "qr-code-2.svg"]

    def test_bad_csv(self, tmp_path):
        src = tmp_path / "rows.csv"
        src.write_text("url\nhttps://example.com\n", encoding="utf-8")
        with pytest.raises(SystemExit) as exc:
            main(["batch", str(src), "-o", str(tmp_path / "x.zip"), "--no-validate"])
        assert exc.value.code == 1


class TestTemplates:
    def test_save_then_generate_from_template(self, tmp_path, capsys):
        db = str(tmp_path / "templates.json")
        main(["template", "save", "--name", "Brand", "--module-shape", "diamond", "-e", "Q",
              "--templates-db", db])
        template = TemplateStore(db).get(1)
        assert template.style.ec_level == "Q"

        main(["template", "list", "--templates-db", db])
        assert "Brand" in capsys.readouterr().out

        out = tmp_path / "qr.png"
        main(["generate", "hello", "-o", str(out), "--template", "1", "--templates-db", db])
        assert out.exists()

    def test_unknown_template(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["generate", "hello", "-o", str(tmp_path / "qr.png"), "--template", "5",
                  "--templates-db", str(tmp_path / "t.json")])


def test_no_command_prints_help():
    with pytest.raises(SystemExit):
        main([])


def test_parser_choices():
    args = build_parser().parse_args(["batch", "rows.csv"])
    assert args.format == "png"
    assert not args.no_validate


class TestHistory:
    def test_generate_saves_then_list_and_clear(self, tmp_path, capsys):
        db = str(tmp_path / "history.json")
        main(["generate", "https://example.com", "-o", str(tmp_path / "a.png"),
              "--save-history", "--label", "Home", "--history-db", db])
        main(["generate", "hello", "-o", str(tmp_path / "b.png"), "--save-history", "--history-db", db])
        assert HistoryStore(db).count() == 2
        capsys.readouterr()

        main(["history", "list", "--search", "home", "--history-db", db])
        out = capsys.readouterr().out
        assert "Home" in out
        assert "of 1" in out

        main(["history", "clear", "--history-db", db])
        assert "Cleared 2" in capsys.readouterr().out

    def test_generate_without_flag_records_nothing(self, tmp_path):
        db = tmp_path / "history.json"
        main(["generate", "hello", "-o", str(tmp_path / "a.png"), "--history-db", str(db)])
        assert not db.exists()

    def test_delete_unknown_entry(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main(["history", "delete", "--id", "9", "--history-db", str(tmp_path / "h.json")])
        assert exc.value.code == 1


def test_logo_shape_alone_enables_logo():
    args = build_parser().parse_args(["generate", "hello", "--logo-shape", "circle"])
    assert _style_from_args(args)["logo"] == {"shape": "circle"}


def test_log_level_comes_from_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "LOG_LEVEL", "WARNING")
    main(["template", "list", "--templates-db", str(tmp_path / "t.json")])
    assert logging.getLogger("qrforge").level == logging.WARNING
    main(["-V", "template", "list", "--templates-db", str(tmp_path / "t.json")])
    assert logging.getLogger("qrforge").level == logging.DEBUG
