"""Scan-integrity estimation: decode a rendered artifact and grade how safe it is to ship.

Decode success is necessary but not sufficient for PASS. A logo over all
three finder eyes at error-correction L or M is graded FAIL even when this
particular decode happened to work.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum

from qrforge import config
from qrforge.errors import ContentMismatch, DecodeError, GenerationTimeout
from qrforge.logging import audit, get_logger, trace
from qrforge.renderer import RenderedArtifact
from qrforge.style import LogoPosition, StyleDescriptor

log = get_logger("integrity")

LOW_REDUNDANCY = ("L", "M")

SUGGEST_RAISE_EC = "increase error correction to Q or H"
SUGGEST_LESS_STYLE = "reduce customization"
SUGGEST_LOGO_EC = "use EC level Q or H when embedding a logo"
SUGGEST_CENTER_LOGO = "move the logo to the center"
SUGGEST_SMALLER_LOGO = "reduce the logo size to 30% or less"
SUGGEST_CHECK_CONTENT = "verify the QR content is correct"
SUGGEST_RETRY = "try generating the QR code again"


class VerdictState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass(frozen=True)
class ValidationVerdict:
    state: VerdictState
    decoded_content: str | None = None
    matches_expected: bool = False
    message: str = ""
    suggestions: tuple[str, ...] = ()

    @classmethod
    def idle(cls) -> "ValidationVerdict":
        return cls(state=VerdictState.IDLE)

    @classmethod
    def validating(cls) -> "ValidationVerdict":
        return cls(state=VerdictState.VALIDATING, message="validating")

    @property
    def is_terminal(self) -> bool:
        return self.state in (VerdictState.PASS, VerdictState.WARN, VerdictState.FAIL)

    @property
    def scannable(self) -> bool:
        """PASS or WARN with matching content."""
        return self.state in (VerdictState.PASS, VerdictState.WARN) and self.matches_expected


class Decoder:
    """Decoder collaborator contract.

    ``decode`` returns the decoded text or raises DecodeError. ``decode_many``
    is the bulk form used by batch validation; failures come back in place
    as DecodeError instances.
    """

    async def decode(self, artifact: RenderedArtifact) -> str:
        raise NotImplementedError

    async def decode_many(self, artifacts: list[RenderedArtifact]) -> list:
        results = []
        for artifact in artifacts:
            try:
                results.append(await self.decode(artifact))
            except DecodeError as e:
                results.append(e)
        return results


def structural_risk(style: StyleDescriptor) -> VerdictState | None:
    """Risk implied by logo placement alone: FAIL, WARN, or None."""
    logo = style.logo
    if logo is None or style.ec_level not in LOW_REDUNDANCY:
        return None
    if logo.position is LogoPosition.ALL_CORNERS:
        return VerdictState.FAIL
    if logo.position.is_corner:
        return VerdictState.WARN
    if logo.size_percent > config.LARGE_CENTER_LOGO_PERCENT:
        return VerdictState.WARN
    return None


def _match(outcome, expected: str):
    """Turn a decoded string that disagrees with *expected* into ContentMismatch."""
    if isinstance(outcome, str) and outcome.strip() != expected.strip():
        return ContentMismatch(expected, outcome)
    return outcome


def classify(outcome, expected: str, style: StyleDescriptor) -> ValidationVerdict:
    """Grade one decode outcome (text or exception) against the style's risk."""
    if not isinstance(outcome, (str, BaseException)):
        outcome = DecodeError(f"decoder returned {type(outcome).__name__}, not text")
    outcome = _match(outcome, expected)
    decoded = outcome if isinstance(outcome, str) else getattr(outcome, "decoded", None)
    matches = isinstance(outcome, str)
    risk = structural_risk(style)

    if risk is VerdictState.FAIL:
        return ValidationVerdict(
            state=VerdictState.FAIL,
            decoded_content=decoded,
            matches_expected=matches,
            message=(f"logo on all corner finder eyes conflicts with error correction "
                     f"{style.ec_level}; corner occlusion at this level is unreliable"),
            suggestions=(SUGGEST_LOGO_EC, SUGGEST_CENTER_LOGO),
        )

    if isinstance(outcome, GenerationTimeout):
        return ValidationVerdict(
            state=VerdictState.FAIL, message="timeout", suggestions=(SUGGEST_RETRY,),
        )
    if isinstance(outcome, ContentMismatch):
        return ValidationVerdict(
            state=VerdictState.FAIL,
            decoded_content=decoded,
            message="content mismatch",
            suggestions=(SUGGEST_CHECK_CONTENT, SUGGEST_LESS_STYLE),
        )
    if isinstance(outcome, DecodeError):
        return ValidationVerdict(
            state=VerdictState.FAIL,
            message="could not decode",
            suggestions=(SUGGEST_RAISE_EC, SUGGEST_LESS_STYLE),
        )
    if isinstance(outcome, BaseException):
        return ValidationVerdict(
            state=VerdictState.FAIL,
            message=f"validation error: {outcome}",
            suggestions=(SUGGEST_RETRY,),
        )

    if risk is VerdictState.WARN:
        suggestions = (SUGGEST_LOGO_EC,)
        if not style.logo.position.is_corner:
            suggestions += (SUGGEST_SMALLER_LOGO,)
        return ValidationVerdict(
            state=VerdictState.WARN,
            decoded_content=decoded,
            matches_expected=True,
            message=f"scans, but the logo placement is risky at error correction {style.ec_level}",
            suggestions=suggestions,
        )

    return ValidationVerdict(
        state=VerdictState.PASS,
        decoded_content=decoded,
        matches_expected=True,
        message="QR code scans correctly",
    )


class ScanIntegrityEstimator:
    """Decode artifacts once and classify them into PASS / WARN / FAIL.

    Args:
        decoder: Decoder collaborator; defaults to the pyzbar/OpenCV adapter.
        timeout: Seconds to wait for the decoder before grading FAIL("timeout").
    """

    def __init__(self, decoder: Decoder | None = None,
                 timeout: float | None = config.VALIDATION_TIMEOUT_SECONDS):
        if decoder is None:
            from qrforge.decode import ZbarDecoder
            decoder = ZbarDecoder()
        self.decoder = decoder
        self.timeout = timeout

    async def _bounded(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError as e:
            raise GenerationTimeout("timeout") from e

    @trace
    async def estimate(self, artifact: RenderedArtifact, expected_content: str,
                       style: StyleDescriptor) -> ValidationVerdict:
        """Single-shot estimate for one artifact. Never raises DecodeError."""
        try:
            outcome = await self._bounded(self.decoder.decode(artifact))
        except Exception as e:
            outcome = e
        verdict = classify(outcome, expected_content, style)
        audit("verdict.issued", logger=log,
              state=verdict.state.value, message=verdict.message,
              ecc=style.ec_level, expected=expected_content[:80])
        return verdict

    @trace
    async def estimate_many(self, items: list[tuple[RenderedArtifact, str]],
                            style: StyleDescriptor) -> list[ValidationVerdict]:
        """Estimate a whole set with one bulk decoder call.

        Args:
            items: (artifact, expected_content) pairs.

        Returns:
            One verdict per item, in order. If the bulk call itself fails,
            every item is graded FAIL with the failure as its message.
        """
        if not items:
            return []
        try:
            outcomes = await self._bounded(self.decoder.decode_many([a for a, _ in items]))
            if len(outcomes) != len(items):
                raise DecodeError(f"decoder returned {len(outcomes)} results for {len(items)} artifacts")
        except DecodeError as e:
            outcomes = [RuntimeError(str(e))] * len(items)
        except Exception as e:
            outcomes = [e] * len(items)

        verdicts = [classify(outcome, expected, style) for outcome, (_, expected) in zip(outcomes, items)]
        audit("verdict.batch_issued", logger=log,
              total=len(verdicts),
              passed=sum(1 for v in verdicts if v.state is VerdictState.PASS),
              warned=sum(1 for v in verdicts if v.state is VerdictState.WARN),
              failed=sum(1 for v in verdicts if v.state is VerdictState.FAIL))
        return verdicts
