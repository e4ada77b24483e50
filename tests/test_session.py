"""Tests for the single-item generator session."""

import asyncio

import pytest

from qrforge.errors import EncodeError, GenerationTimeout
from qrforge.integrity import ScanIntegrityEstimator, VerdictState
from qrforge.renderer import ArtifactFormat
from qrforge.session import GeneratorSession

from conftest import CountingEncoder, HangingEncoder, ScriptedDecoder

URL = "https://example.com"


def make_session(content=URL, style=None, outcomes=None, **kwargs):
    decoder = ScriptedDecoder(outcomes if outcomes is not None else [content])
    session = GeneratorSession(content, style, estimator=ScanIntegrityEstimator(decoder), **kwargs)
    return session, decoder


class TestValidate:
    def test_pass_scenario(self):
        session, decoder = make_session(style={"moduleShape": "square", "errorCorrectionLevel": "M"})
        verdict = asyncio.run(session.validate())
        assert verdict.state is VerdictState.PASS
        assert verdict.decoded_content == URL
        assert verdict.matches_expected
        assert session.verdict == verdict
        assert decoder.decode_calls == 1

    def test_all_corners_low_ec_fails(self):
        style = {"logo": {"position": "all_corners"}, "errorCorrectionLevel": "L"}
        session, _ = make_session(style=style)
        verdict = asyncio.run(session.validate())
        assert verdict.state is VerdictState.FAIL
        assert "error correction" in verdict.message

    def test_empty_content_fails_without_decoding(self):
        session, decoder = make_session(content="")
        verdict = asyncio.run(session.validate())
        assert verdict.state is VerdictState.FAIL
        assert verdict.message
        assert decoder.decode_calls == 0

    def test_unencodable_content_fails(self):
        session, decoder = make_session(content="x" * 3000)
        verdict = asyncio.run(session.validate())
        assert verdict.state is VerdictState.FAIL
        assert verdict.message.startswith("could not encode")
        assert decoder.decode_calls == 0

    def test_state_sequence(self):
        session, _ = make_session()
        states = []
        session.subscribe(lambda event, s: states.append(s.verdict.state) if event == "verdict" else None)
        asyncio.run(session.validate())
        assert states == [VerdictState.VALIDATING, VerdictState.PASS]

    def test_stale_result_is_discarded(self):
        gate = asyncio.Event()
        session = GeneratorSession(URL, encoder=CountingEncoder(gate),
                                   estimator=ScanIntegrityEstimator(ScriptedDecoder([URL])))

        async def scenario():
            task = asyncio.ensure_future(session.validate())
            await asyncio.sleep(0)
            assert session.verdict.state is VerdictState.VALIDATING
            session.set_content("https://changed.example")
            gate.set()
            return await task

        verdict = asyncio.run(scenario())
        assert verdict.state is VerdictState.IDLE
        assert session.verdict.state is VerdictState.IDLE


class TestInvalidation:
    def _validated(self):
        session, _ = make_session()
        asyncio.run(session.validate())
        assert session.verdict.state is VerdictState.PASS
        return session

    def test_content_change_resets_to_idle(self):
        session = self._validated()
        session.set_content("other")
        assert session.verdict.state is VerdictState.IDLE
        assert session.qr_type == "text"

    def test_style_change_resets_to_idle(self):
        session = self._validated()
        session.update_style(ec_level="H")
        assert session.verdict.state is VerdictState.IDLE
        assert session.style.ec_level == "H"

    def test_idle_happens_before_the_mutation_is_announced(self):
        session = self._validated()
        seen = []
        session.subscribe(lambda event, s: seen.append((event, s.verdict.state)))
        session.set_style({"moduleShape": "dots"})
        assert seen == [("verdict", VerdictState.IDLE), ("style", VerdictState.IDLE)]

    def test_noop_change_keeps_verdict(self):
        session = self._validated()
        session.set_content(URL)
        session.set_style(session.style)
        assert session.verdict.state is VerdictState.PASS

    def test_unsubscribe(self):
        session, _ = make_session()
        events = []
        unsubscribe = session.subscribe(lambda event, s: events.append(event))
        unsubscribe()
        session.set_content("other")
        assert events == []

    def test_qr_type_is_detected(self):
        session, _ = make_session(content="WIFI:T:WPA;S:home;P:pw;;")
        assert session.qr_type == "wifi"
        session.set_content("anything", qr_type="text")
        assert session.qr_type == "text"


class TestGenerate:
    def test_generate_preview_and_export(self):
        session, _ = make_session(style={"transparentBackground": True}, canvas_size=270)
        preview = asyncio.run(session.generate())
        exported = asyncio.run(session.export(ArtifactFormat.RASTER))
        assert preview.width_px == 270
        assert preview != exported
        assert preview.to_image().mode == "RGB"
        assert exported.to_image().mode == "RGBA"

    def test_generate_raises_encode_error(self):
        session, _ = make_session(content="x" * 3000)
        with pytest.raises(EncodeError):
            asyncio.run(session.generate())

    def test_generate_times_out(self):
        session = GeneratorSession(URL, encoder=HangingEncoder(), timeout=0.01)
        with pytest.raises(GenerationTimeout):
            asyncio.run(session.generate())
