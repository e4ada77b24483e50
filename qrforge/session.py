"""Single-item generator session: content and style state with explicit verdict invalidation.

Every content or style mutation resets the verdict to IDLE before anything
else changes, and listeners are told about each step through ``subscribe``.
A validation that finishes after a mutation is discarded instead of
overwriting the fresh IDLE verdict.
"""

import asyncio
from collections.abc import Callable

from qrforge import config
from qrforge.errors import EncodeError, GenerationTimeout, QrForgeError
from qrforge.formatters import detect_qr_type
from qrforge.integrity import ScanIntegrityEstimator, ValidationVerdict, VerdictState
from qrforge.logging import audit, get_logger, trace
from qrforge.matrix import Matrix, QrcodeEncoder
from qrforge.renderer import ArtifactFormat, GridRenderer, RenderedArtifact
from qrforge.style import StyleDescriptor, resolve

log = get_logger("session")

Listener = Callable[[str, "GeneratorSession"], None]


class GeneratorSession:
    """Content + style store for one code, with render and validate actions.

    Args:
        content: Initial payload.
        style: Raw style mapping or StyleDescriptor (resolved on entry).
        encoder: Encoder collaborator (``async encode(content, ec_level)``).
        renderer: GridRenderer instance.
        estimator: ScanIntegrityEstimator; built lazily on first validation.
        canvas_size: Edge length in pixels for previews and exports.
        timeout: Seconds allowed for one encoder call.
    """

    def __init__(
        self,
        content: str = "",
        style=None,
        *,
        encoder=None,
        renderer: GridRenderer | None = None,
        estimator: ScanIntegrityEstimator | None = None,
        canvas_size: int = config.DEFAULT_CANVAS_SIZE,
        timeout: float | None = config.GENERATION_TIMEOUT_SECONDS,
    ):
        self._content = content
        self._qr_type = detect_qr_type(content)
        self._style = resolve(style)
        self._verdict = ValidationVerdict.idle()
        self._revision = 0
        self._listeners: list[Listener] = []
        self.encoder = encoder or QrcodeEncoder()
        self.renderer = renderer or GridRenderer()
        self._estimator = estimator
        self.canvas_size = canvas_size
        self.timeout = timeout

    # -- read-only state ---------------------------------------------------

    @property
    def content(self) -> str:
        return self._content

    @property
    def qr_type(self) -> str:
        return self._qr_type

    @property
    def style(self) -> StyleDescriptor:
        return self._style

    @property
    def verdict(self) -> ValidationVerdict:
        return self._verdict

    @property
    def estimator(self) -> ScanIntegrityEstimator:
        if self._estimator is None:
            self._estimator = ScanIntegrityEstimator()
        return self._estimator

    # -- change channel ----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(event, session)``; returns an unsubscribe callable.

        Events: "verdict", "content", "style".
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self, event: str):
        for listener in list(self._listeners):
            listener(event, self)

    def _set_verdict(self, verdict: ValidationVerdict):
        self._verdict = verdict
        self._notify("verdict")

    # -- mutations ---------------------------------------------------------

    def invalidate(self):
        """Drop any verdict and orphan in-flight validations."""
        self._revision += 1
        if self._verdict.state is not VerdictState.IDLE:
            self._set_verdict(ValidationVerdict.idle())

    def set_content(self, content: str, qr_type: str | None = None):
        if content == self._content and (qr_type is None or qr_type == self._qr_type):
            return
        self.invalidate()
        self._content = content
        self._qr_type = qr_type or detect_qr_type(content)
        self._notify("content")

    def set_style(self, raw_style):
        style = resolve(raw_style)
        if style == self._style:
            return
        self.invalidate()
        self._style = style
        self._notify("style")

    def update_style(self, **changes):
        """Apply field changes, e.g. ``update_style(ec_level="H")``."""
        self.set_style(self._style.with_changes(**changes))

    # -- actions -----------------------------------------------------------

    async def _encode(self, content: str, ec_level: str) -> Matrix:
        try:
            return await asyncio.wait_for(self.encoder.encode(content, ec_level), self.timeout)
        except asyncio.TimeoutError as e:
            raise GenerationTimeout("timeout") from e

    @trace
    async def generate(self, fmt: ArtifactFormat = ArtifactFormat.RASTER, *,
                       preview: bool = True) -> RenderedArtifact:
        """Encode and render the current content. Errors propagate to the caller."""
        matrix = await self._encode(self._content, self._style.ec_level)
        return self.renderer.render(matrix, self._style, self.canvas_size, fmt, preview=preview)

    async def export(self, fmt: ArtifactFormat = ArtifactFormat.RASTER) -> RenderedArtifact:
        """Final artifact: real alpha instead of the preview checkerboard."""
        return await self.generate(fmt, preview=False)

    @trace
    async def validate(self) -> ValidationVerdict:
        """Render, decode and grade the current state.

        Returns the verdict now held by the session, which is IDLE if the
        content or style changed while the validation was running.
        """
        revision = self._revision
        content, style = self._content, self._style

        if not content:
            self._set_verdict(ValidationVerdict(
                state=VerdictState.FAIL,
                message="no content to validate",
                suggestions=("enter content before validating",),
            ))
            return self._verdict

        self._set_verdict(ValidationVerdict.validating())
        try:
            artifact = await self.generate(ArtifactFormat.RASTER, preview=False)
        except EncodeError as e:
            verdict = ValidationVerdict(
                state=VerdictState.FAIL,
                message=f"could not encode: {e.reason}",
                suggestions=("shorten the content", "lower the error correction level"),
            )
        except QrForgeError as e:
            verdict = ValidationVerdict(
                state=VerdictState.FAIL,
                message=f"could not render: {e}",
                suggestions=("try generating the QR code again",),
            )
        else:
            verdict = await self.estimator.estimate(artifact, content, style)

        if revision != self._revision:
            audit("verdict.discarded", logger=log, reason="state changed during validation")
            return self._verdict
        self._set_verdict(verdict)
        return verdict
