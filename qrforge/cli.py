"""QR Forge CLI: generate, validate, scan and batch-export styled QR codes."""

import argparse
import asyncio
import sys
from pathlib import Path

from qrforge import config
from qrforge.errors import QrForgeError
from qrforge.logging import audit, get_logger, setup_logging

log = get_logger("cli")

DEFAULT_TEMPLATES_DB = "qrforge_templates.json"
DEFAULT_HISTORY_DB = "qrforge_history.json"


def _style_from_args(args):
    """Raw style mapping from the shared style flags, layered over an optional template."""
    from qrforge.style import style_to_dict
    from qrforge.templates import TemplateStore

    raw = {}
    if args.template is not None:
        template = TemplateStore(args.templates_db).get(args.template)
        if template is None:
            raise QrForgeError(f"no template with id {args.template}")
        raw = style_to_dict(template.style)

    flags = {
        "moduleShape": args.module_shape,
        "eyeShape": args.eye_shape,
        "foregroundColor": args.fg,
        "backgroundColor": args.bg,
        "errorCorrectionLevel": args.ecc,
    }
    raw.update({k: v for k, v in flags.items() if v is not None})
    if args.gradient:
        raw["gradient"] = {"fromColor": args.gradient[0], "toColor": args.gradient[1]}
    if args.transparent:
        raw["transparentBackground"] = True
    if args.logo or args.logo_shape or args.logo_position or args.logo_size is not None:
        logo = dict(raw.get("logo") or {})
        if args.logo:
            logo["image"] = Path(args.logo).read_bytes()
        if args.logo_shape:
            logo["shape"] = args.logo_shape
        if args.logo_size is not None:
            logo["sizePercent"] = args.logo_size
        if args.logo_position:
            logo["position"] = args.logo_position
        raw["logo"] = logo
    return raw


def _format_for(output: Path, requested: str | None) -> str:
    if requested:
        return requested
    return "svg" if output.suffix.lower() == ".svg" else "png"


def _print_verdict(verdict):
    print(f"  [{verdict.state.value.upper():4s}] {verdict.message}")
    if verdict.decoded_content is not None:
        print(f"  decoded: {verdict.decoded_content[:120]}")
    for suggestion in verdict.suggestions:
        print(f"  - {suggestion}")


def cmd_generate(args):
    """Render one QR code to a file."""
    from qrforge.renderer import ArtifactFormat
    from qrforge.session import GeneratorSession
    from qrforge.style import resolve

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    fmt = ArtifactFormat.parse(_format_for(output, args.format))

    session = GeneratorSession(args.content, resolve(_style_from_args(args)), canvas_size=args.size)
    artifact = asyncio.run(session.export(fmt))
    output.write_bytes(artifact.data)
    print(f"Generated: {output} ({artifact.width_px}x{artifact.height_px}, {session.qr_type})")
    if args.save_history:
        from qrforge.history import HistoryStore

        item_id = HistoryStore(args.history_db).save(args.content, session.style, session.qr_type, args.label)
        print(f"Saved to history as {item_id}")

    if args.validate:
        verdict = asyncio.run(session.validate())
        _print_verdict(verdict)
        sys.exit(0 if verdict.scannable else 1)


def cmd_validate(args):
    """Decode an image file and grade it against the expected content."""
    from PIL import Image

    from qrforge.integrity import ScanIntegrityEstimator
    from qrforge.renderer import ArtifactFormat, RenderedArtifact
    from qrforge.style import resolve

    data = Path(args.image).read_bytes()
    with Image.open(args.image) as img:
        width, height = img.size
    artifact = RenderedArtifact(data=data, width_px=width, height_px=height, format=ArtifactFormat.RASTER)
    style = resolve(_style_from_args(args))

    verdict = asyncio.run(ScanIntegrityEstimator().estimate(artifact, args.expected, style))
    _print_verdict(verdict)
    sys.exit(0 if verdict.scannable else 1)


def cmd_batch(args):
    """Generate every row of a CSV file and write the results as a ZIP archive."""
    from qrforge.batch import BatchCoordinator, RowStatus
    from qrforge.csvsource import parse_csv_file
    from qrforge.style import resolve

    rows = parse_csv_file(args.csv)
    if not rows:
        print("No rows with content found.")
        sys.exit(1)

    coordinator = BatchCoordinator(resolve(_style_from_args(args)),
                                   export_format=args.format, canvas_size=args.size)
    coordinator.load(rows)
    asyncio.run(coordinator.generate_all(validate=not args.no_validate))

    for row in coordinator.rows:
        name = row.label or row.content[:40]
        detail = row.error if row.status is RowStatus.ERROR else ""
        print(f"  [{row.row_index:4d}] {row.status.value.upper():9s} | {name} {detail}".rstrip())

    if coordinator.generated_count == 0:
        print("Nothing to export.")
        sys.exit(1)

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(coordinator.export())
    print(f"Exported {coordinator.generated_count}/{coordinator.total} codes to {output}")
    sys.exit(0 if coordinator.export_ready else 1)


def cmd_template(args):
    """Save, list, remove or mark templates in the JSON template store."""
    from qrforge.style import resolve
    from qrforge.templates import TemplateStore

    store = TemplateStore(args.templates_db)
    if args.action == "list":
        for t in store.list():
            marker = "*" if t.is_default else " "
            print(f" {marker} {t.id:4d}  {t.name}  ({t.style.module_shape.value}/{t.style.eye_shape.value}, "
                  f"EC {t.style.ec_level})")
    elif args.action == "save":
        if not args.name:
            raise QrForgeError("template save needs --name")
        template_id = store.save(args.name, resolve(_style_from_args(args)), is_default=args.default)
        print(f"Saved template {template_id}: {args.name}")
    elif args.action == "delete":
        if not store.delete(args.id):
            raise QrForgeError(f"no template with id {args.id}")
        print(f"Deleted template {args.id}")
    elif args.action == "default":
        if not store.set_default(args.id):
            raise QrForgeError(f"no template with id {args.id}")
        print(f"Template {args.id} is now the default")


def cmd_scan(args):
    """Decode any QR code image and print its content and detected type."""
    from qrforge.decode import scan_file

    scanned = scan_file(args.image)
    print(f"Type: {scanned.qr_type}")
    print(f"Decoder: {scanned.decoder}")
    print(scanned.content)


def cmd_history(args):
    """List, search, delete or clear generated codes in the JSON history store."""
    from qrforge.history import HistoryStore

    store = HistoryStore(args.history_db)
    if args.action == "list":
        page = store.list(limit=args.limit, offset=args.offset, search=args.search)
        for item in page.items:
            name = item.label or item.content[:60]
            print(f"  {item.id:4d}  {item.qr_type:8s} {name}  ({item.created_at[:19]})")
        shown = f"{args.offset + 1}-{args.offset + len(page.items)}" if page.items else "0"
        print(f"Showing {shown} of {page.total}" + (" (more available)" if page.has_more else ""))
    elif args.action == "delete":
        if not store.delete(args.id):
            raise QrForgeError(f"no history entry with id {args.id}")
        print(f"Deleted history entry {args.id}")
    elif args.action == "clear":
        print(f"Cleared {store.clear()} history entries")


def _add_style_flags(p):
    g = p.add_argument_group("style")
    g.add_argument("--module-shape", default=None, choices=["square", "rounded", "dots", "diamond"])
    g.add_argument("--eye-shape", default=None, choices=["square", "rounded", "circle", "leaf"])
    g.add_argument("--fg", default=None, help="Foreground colour (hex e.g. '#000000')")
    g.add_argument("--bg", default=None, help="Background colour (hex)")
    g.add_argument("--gradient", nargs=2, metavar=("FROM", "TO"), default=None,
                   help="Gradient fill colours; overrides --fg for modules and eyes")
    g.add_argument("--transparent", action="store_true", help="Transparent background")
    g.add_argument("-e", "--ecc", default=None, choices=["L", "M", "Q", "H"], help="Error correction level")
    g.add_argument("--logo", default=None, help="Path to a PNG/JPEG logo")
    g.add_argument("--logo-shape", default=None, choices=["square", "circle"])
    g.add_argument("--logo-size", type=float, default=None, help="Logo size in percent (10-40)")
    g.add_argument("--logo-position", default=None,
                   choices=["center", "top-left", "top-right", "bottom-left", "all-corners"])
    g.add_argument("--template", type=int, default=None, help="Start from a saved template id")
    g.add_argument("--templates-db", default=DEFAULT_TEMPLATES_DB, help="Template store path")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qrforge", description="QR Forge: styled QR codes with scan validation")

    # Global logging flags
    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- generate ---
    p_gen = subparsers.add_parser("generate", help="Generate a styled QR code")
    p_gen.add_argument("content", help="Text, URL or structured payload to encode")
    p_gen.add_argument("-o", "--output", default="output/qr.png", help="Output file path (.png or .svg)")
    p_gen.add_argument("-f", "--format", default=None, choices=["png", "svg"], help="Override format from suffix")
    p_gen.add_argument("-s", "--size", type=int, default=config.DEFAULT_CANVAS_SIZE, help="Canvas size in px")
    p_gen.add_argument("--validate", action="store_true", help="Decode the result and print a verdict")
    p_gen.add_argument("--save-history", action="store_true", help="Record the code in the history store")
    p_gen.add_argument("--label", default=None, help="History label (with --save-history)")
    p_gen.add_argument("--history-db", default=DEFAULT_HISTORY_DB, help="History store path")
    _add_style_flags(p_gen)

    # --- validate ---
    p_val = subparsers.add_parser("validate", help="Check that a QR code image scans")
    p_val.add_argument("image", help="Path to QR code image")
    p_val.add_argument("--expected", required=True, help="Content the image must decode to")
    _add_style_flags(p_val)

    # --- batch ---
    p_batch = subparsers.add_parser("batch", help="Generate QR codes for every row of a CSV file")
    p_batch.add_argument("csv", help="CSV with a 'content' column and optional 'type' and 'label'")
    p_batch.add_argument("-o", "--output", default="output/qr-codes.zip", help="Output ZIP path")
    p_batch.add_argument("-f", "--format", default="png", choices=["png", "svg"], help="Export format")
    p_batch.add_argument("-s", "--size", type=int, default=config.DEFAULT_CANVAS_SIZE, help="Canvas size in px")
    p_batch.add_argument("--no-validate", action="store_true", help="Skip the decode check")
    _add_style_flags(p_batch)

    # --- template ---
    p_tpl = subparsers.add_parser("template", help="Manage saved style templates")
    p_tpl.add_argument("action", choices=["list", "save", "delete", "default"])
    p_tpl.add_argument("--name", default=None, help="Template name (save)")
    p_tpl.add_argument("--id", type=int, default=None, help="Template id (delete, default)")
    p_tpl.add_argument("--default", action="store_true", help="Mark the saved template as default")
    _add_style_flags(p_tpl)

    # --- scan ---
    p_scan = subparsers.add_parser("scan", help="Decode any QR code image")
    p_scan.add_argument("image", help="Path to image file")

    # --- history ---
    p_hist = subparsers.add_parser("history", help="Browse previously generated codes")
    p_hist.add_argument("action", choices=["list", "delete", "clear"])
    p_hist.add_argument("--search", default=None, help="Match content or label (list)")
    p_hist.add_argument("--limit", type=int, default=50, help="Page size (list)")
    p_hist.add_argument("--offset", type=int, default=0, help="Entries to skip (list)")
    p_hist.add_argument("--id", type=int, default=None, help="Entry id (delete)")
    p_hist.add_argument("--history-db", default=DEFAULT_HISTORY_DB, help="History store path")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging before any command runs
    level = "DEBUG" if args.verbose else config.LOG_LEVEL
    setup_logging(level=level, log_file=args.log_file)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    commands = {
        "generate": cmd_generate,
        "validate": cmd_validate,
        "batch": cmd_batch,
        "template": cmd_template,
        "scan": cmd_scan,
        "history": cmd_history,
    }
    try:
        commands[args.command](args)
    except (QrForgeError, OSError) as e:
        log.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    audit("cli.done", logger=log, command=args.command)


if __name__ == "__main__":
    main()
