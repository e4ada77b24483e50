"""Export assembly: name generated artifacts and hand them to a packager."""

import io
import re
import zipfile
from dataclasses import dataclass

from qrforge import config
from qrforge.logging import audit, get_logger, trace
from qrforge.renderer import ArtifactFormat

log = get_logger("export")

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class ExportFile:
    name: str
    data: bytes


def sanitize_filename(label: str) -> str:
    """Replace characters that are unsafe in file names and cap the length."""
    return _UNSAFE.sub("_", label)[: config.EXPORT_NAME_MAX_LEN]


def export_name(row_index: int, label: str | None, fmt: ArtifactFormat) -> str:
    """``<label>.<ext>``, or ``qr-code-<row>.<ext>`` when there is no usable label."""
    stem = sanitize_filename(label) if label else ""
    if not stem.strip("._"):
        stem = f"qr-code-{row_index}"
    return f"{stem}.{fmt.extension}"


@trace
def assemble(entries, fmt: ArtifactFormat) -> list[ExportFile]:
    """Build one named file per generated row.

    Args:
        entries: (row_index, label, artifact) triples, already limited to
            rows that generated successfully.
        fmt: Active export format; sets the file extension.

    Name collisions get a ``-<row_index>`` suffix before the extension, then a
    counter if that name is taken too.
    """
    files = []
    seen = set()
    for row_index, label, artifact in entries:
        name = export_name(row_index, label, fmt)
        if name in seen:
            stem, _, ext = name.rpartition(".")
            name = f"{stem}-{row_index}.{ext}"
            n = 2
            while name in seen:
                name = f"{stem}-{row_index}-{n}.{ext}"
                n += 1
        seen.add(name)
        files.append(ExportFile(name=name, data=artifact.data))
    return files


class ZipPackager:
    """Packager collaborator: a deflated ZIP archive in memory."""

    def __init__(self, compression_level: int = config.ZIP_COMPRESSION_LEVEL):
        self.compression_level = compression_level

    @trace
    def pack(self, files: list[ExportFile]) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED,
                             compresslevel=self.compression_level) as zf:
            for f in files:
                zf.writestr(f.name, f.data)
        data = buf.getvalue()
        audit("export.packed", logger=log, files=len(files), bytes=len(data))
        return data

