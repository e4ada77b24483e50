"""Batch pipeline: per-row generation state machine, validation phase and export.

Rows live in a tuple of frozen ``BatchRowItem`` values that is replaced as a
whole on every transition. Generation for one row is single-flight: a second
request while the first is running does nothing. Generation runs in ascending
row order; validation of the whole generated set is one bulk estimator call.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from enum import Enum

from qrforge import config
from qrforge.errors import EncodeError, GenerationTimeout, QrForgeError
from qrforge.export import ExportFile, ZipPackager, assemble
from qrforge.formatters import detect_qr_type
from qrforge.integrity import ScanIntegrityEstimator, ValidationVerdict
from qrforge.logging import audit, get_logger, trace
from qrforge.matrix import Matrix, QrcodeEncoder
from qrforge.renderer import ArtifactFormat, GridRenderer, RenderedArtifact
from qrforge.style import StyleDescriptor, resolve

log = get_logger("batch")


class RowStatus(Enum):
    PENDING = "pending"
    GENERATING = "generating"
    VALIDATING = "validating"
    DONE = "done"
    VALIDATED = "validated"
    ERROR = "error"


PROCESSED = (RowStatus.DONE, RowStatus.VALIDATING, RowStatus.VALIDATED, RowStatus.ERROR)
EXPORTABLE = (RowStatus.DONE, RowStatus.VALIDATED)


@dataclass(frozen=True)
class BatchRowItem:
    """One batch row.

    ``artifact`` is in the active export format. ``proof`` is the raster
    rendering the decoder reads; for raster exports it is the artifact itself.
    """
    row_index: int
    content: str
    qr_type: str = "text"
    label: str | None = None
    status: RowStatus = RowStatus.PENDING
    artifact: RenderedArtifact | None = None
    proof: RenderedArtifact | None = None
    error: str | None = None
    verdict: ValidationVerdict | None = None

    @classmethod
    def from_source(cls, row) -> "BatchRowItem":
        """Build a pending row from anything with row_index/content/qr_type/label."""
        content = row.content
        return cls(
            row_index=row.row_index,
            content=content,
            qr_type=getattr(row, "qr_type", None) or detect_qr_type(content),
            label=getattr(row, "label", None),
        )

    def reset(self) -> "BatchRowItem":
        return replace(self, status=RowStatus.PENDING, artifact=None, proof=None,
                       error=None, verdict=None)


Listener = Callable[[tuple, float], None]


def describe_failure(exc: BaseException) -> str:
    """Human-readable cause for a row in ERROR."""
    if isinstance(exc, GenerationTimeout):
        return "timeout"
    if isinstance(exc, EncodeError):
        return exc.reason
    return str(exc) or type(exc).__name__


class BatchCoordinator:
    """Owns the batch rows and drives generation, validation and export.

    Args:
        style: Raw style mapping or StyleDescriptor applied to every row.
        export_format: Initial ArtifactFormat (or "png"/"svg").
        encoder: Encoder collaborator (``async encode(content, ec_level)``).
        renderer: GridRenderer instance.
        estimator: ScanIntegrityEstimator; built lazily on first validation.
        canvas_size: Edge length in pixels of every artifact.
        timeout: Seconds allowed for one encoder call.
    """

    def __init__(
        self,
        style=None,
        *,
        export_format=ArtifactFormat.RASTER,
        encoder=None,
        renderer: GridRenderer | None = None,
        estimator: ScanIntegrityEstimator | None = None,
        canvas_size: int = config.DEFAULT_CANVAS_SIZE,
        timeout: float | None = config.GENERATION_TIMEOUT_SECONDS,
    ):
        self._style = resolve(style)
        self._format = ArtifactFormat.parse(export_format)
        self._rows: tuple[BatchRowItem, ...] = ()
        self._in_flight: dict[int, asyncio.Future] = {}
        self._epoch = 0
        self._listeners: list[Listener] = []
        self.encoder = encoder or QrcodeEncoder()
        self.renderer = renderer or GridRenderer()
        self._estimator = estimator
        self.canvas_size = canvas_size
        self.timeout = timeout

    # -- read-only state ---------------------------------------------------

    @property
    def rows(self) -> tuple[BatchRowItem, ...]:
        return self._rows

    @property
    def style(self) -> StyleDescriptor:
        return self._style

    @property
    def export_format(self) -> ArtifactFormat:
        return self._format

    @property
    def estimator(self) -> ScanIntegrityEstimator:
        if self._estimator is None:
            self._estimator = ScanIntegrityEstimator()
        return self._estimator

    @property
    def total(self) -> int:
        return len(self._rows)

    @property
    def processed_count(self) -> int:
        return sum(1 for r in self._rows if r.status in PROCESSED)

    @property
    def progress(self) -> float:
        """Percentage of rows that reached DONE or ERROR in the current pass."""
        if not self._rows:
            return 0.0
        return self.processed_count / len(self._rows) * 100

    @property
    def generated_count(self) -> int:
        return sum(1 for r in self._rows if r.status in EXPORTABLE)

    @property
    def export_ready(self) -> bool:
        """True only when every row generated successfully."""
        return bool(self._rows) and self.generated_count == len(self._rows)

    def is_in_flight(self, row_index: int) -> bool:
        return row_index in self._in_flight

    def row(self, row_index: int) -> BatchRowItem:
        return self._rows[self._position(row_index)]

    # -- change channel ----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(rows, progress)``; returns an unsubscribe callable."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self):
        rows, progress = self._rows, self.progress
        for listener in list(self._listeners):
            listener(rows, progress)

    def _position(self, row_index: int) -> int:
        for i, r in enumerate(self._rows):
            if r.row_index == row_index:
                return i
        raise KeyError(f"no row with index {row_index}")

    def _replace_row(self, row_index: int, **changes):
        i = self._position(row_index)
        rows = list(self._rows)
        rows[i] = replace(rows[i], **changes)
        self._rows = tuple(rows)
        self._notify()

    def _replace_rows(self, rows: Iterable[BatchRowItem]):
        self._rows = tuple(rows)
        self._notify()

    # -- list-level mutations ----------------------------------------------

    def load(self, rows: Iterable) -> tuple[BatchRowItem, ...]:
        """Replace the batch with fresh PENDING rows (CsvRow or BatchRowItem inputs)."""
        self._epoch += 1
        items = [BatchRowItem.from_source(r) for r in rows]
        indices = [r.row_index for r in items]
        if len(set(indices)) != len(indices):
            raise ValueError("row indices must be unique")
        self._replace_rows(items)
        audit("batch.loaded", logger=log, rows=len(items))
        return self._rows

    def clear(self):
        self._epoch += 1
        self._replace_rows(())

    def set_export_format(self, fmt) -> bool:
        """Switch the batch-wide format; discards every artifact, verdict and progress."""
        fmt = ArtifactFormat.parse(fmt)
        if fmt is self._format:
            return False
        self._format = fmt
        self._reset_all()
        audit("batch.format_changed", logger=log, format=fmt.value, rows=len(self._rows))
        return True

    def set_style(self, raw_style) -> bool:
        style = resolve(raw_style)
        if style == self._style:
            return False
        self._style = style
        self._reset_all()
        return True

    def _reset_all(self):
        self._epoch += 1
        self._replace_rows(r.reset() for r in self._rows)

    # -- generation ----------------------------------------------------------

    async def _encode(self, content: str, ec_level: str) -> Matrix:
        try:
            return await asyncio.wait_for(self.encoder.encode(content, ec_level), self.timeout)
        except asyncio.TimeoutError as e:
            raise GenerationTimeout("timeout") from e

    async def _generate_row(self, row: BatchRowItem, epoch: int) -> RenderedArtifact | None:
        row_index = row.row_index
        style, fmt = self._style, self._format
        try:
            matrix = await self._encode(row.content, style.ec_level)
            artifact = self.renderer.render(matrix, style, self.canvas_size, fmt)
            proof = artifact
            if fmt is not ArtifactFormat.RASTER:
                proof = self.renderer.render(matrix, style, self.canvas_size, ArtifactFormat.RASTER)
        except QrForgeError as e:
            failure = e
        except Exception as e:
            log.exception("Unexpected failure generating row %d", row_index)
            failure = e
        else:
            if epoch != self._epoch:
                return None
            self._replace_row(row_index, status=RowStatus.DONE, artifact=artifact, proof=proof)
            audit("batch.row_done", logger=log, row=row_index, bytes=len(artifact.data))
            return artifact

        if epoch == self._epoch:
            cause = describe_failure(failure)
            self._replace_row(row_index, status=RowStatus.ERROR, error=cause)
            audit("batch.row_failed", logger=log, row=row_index, error=cause,
                  kind=type(failure).__name__)
        return None

    async def request_generation(self, row_index: int) -> RenderedArtifact | None:
        """Generate one row.

        A request for a row that is already generating is a no-op returning
        None. A row that already holds an artifact returns it unchanged.
        Failures land in the row's ERROR state; nothing is raised.
        """
        if row_index in self._in_flight:
            audit("batch.request_ignored", logger=log, row=row_index, reason="in flight")
            return None
        row = self.row(row_index)
        if row.status in EXPORTABLE:
            return row.artifact

        self._replace_row(row_index, status=RowStatus.GENERATING, artifact=None, proof=None,
                          error=None, verdict=None)
        task = asyncio.ensure_future(self._generate_row(row, self._epoch))
        self._in_flight[row_index] = task
        task.add_done_callback(lambda _: self._in_flight.pop(row_index, None))
        # a cancelled caller must not cancel the generation itself
        return await asyncio.shield(task)

    @trace
    async def generate_all(self, validate: bool = True) -> tuple[BatchRowItem, ...]:
        """Regenerate every row in ascending order, then validate the generated set.

        Rows in ERROR are retried. A row already generating is awaited rather
        than started twice.
        """
        epoch = self._epoch
        self._replace_rows(r if r.row_index in self._in_flight else r.reset() for r in self._rows)

        for row_index in sorted(r.row_index for r in self._rows):
            if epoch != self._epoch:
                break
            task = self._in_flight.get(row_index)
            if task is not None:
                await asyncio.shield(task)
            # a task started before a format or style change resolves without touching the row
            if self.row(row_index).status not in PROCESSED:
                await self.request_generation(row_index)

        if epoch != self._epoch:
            audit("batch.pass_abandoned", logger=log, reason="batch changed during generation")
            return self._rows

        audit("batch.generated", logger=log, total=self.total,
              generated=self.generated_count,
              failed=sum(1 for r in self._rows if r.status is RowStatus.ERROR))
        if validate:
            await self.validate_generated()
        return self._rows

    @trace
    async def validate_generated(self, row_indices: Iterable[int] | None = None):
        """Validate DONE rows with one bulk estimator call.

        Scannable rows become VALIDATED; the rest become ERROR with the
        verdict message as the cause.
        """
        wanted = None if row_indices is None else set(row_indices)
        targets = [r for r in self._rows
                   if r.status is RowStatus.DONE and (wanted is None or r.row_index in wanted)]
        if not targets:
            return
        indices = {r.row_index for r in targets}
        epoch, style = self._epoch, self._style
        self._replace_rows(replace(r, status=RowStatus.VALIDATING) if r.row_index in indices else r
                           for r in self._rows)

        verdicts = await self.estimator.estimate_many([(r.proof, r.content) for r in targets], style)
        if epoch != self._epoch:
            return

        outcome = {r.row_index: v for r, v in zip(targets, verdicts)}
        rows = []
        for r in self._rows:
            verdict = outcome.get(r.row_index)
            if verdict is None or r.status is not RowStatus.VALIDATING:
                rows.append(r)
            elif verdict.scannable:
                rows.append(replace(r, status=RowStatus.VALIDATED, verdict=verdict))
            else:
                rows.append(replace(r, status=RowStatus.ERROR, verdict=verdict,
                                    error=verdict.message or "validation failed"))
                audit("batch.row_failed", logger=log, row=r.row_index,
                      error=verdict.message, kind="validation")
        self._replace_rows(rows)

    async def retry(self, row_index: int, validate: bool = True) -> BatchRowItem:
        """Re-run one row that ended in ERROR; other rows are left untouched."""
        if self.row(row_index).status is not RowStatus.ERROR:
            return self.row(row_index)
        audit("batch.retry", logger=log, row=row_index)
        self._replace_row(row_index, status=RowStatus.PENDING, artifact=None, proof=None,
                          error=None, verdict=None)
        artifact = await self.request_generation(row_index)
        if artifact is not None and validate:
            await self.validate_generated([row_index])
        return self.row(row_index)

    # -- export --------------------------------------------------------------

    def export_files(self) -> list[ExportFile]:
        """One named file per successfully generated row."""
        return assemble(
            [(r.row_index, r.label, r.artifact) for r in self._rows if r.status in EXPORTABLE],
            self._format,
        )

    def export(self, packager=None) -> bytes:
        files = self.export_files()
        if not files:
            raise QrForgeError("no generated rows to export")
        packager = packager or ZipPackager()
        data = packager.pack(files)
        audit("batch.exported", logger=log, files=len(files), total=self.total,
              format=self._format.value)
        return data
