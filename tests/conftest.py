"""
Pytest configuration for qrforge tests

Provides fake encoder/decoder collaborators and shared fixtures
"""

import asyncio

import pytest

from qrforge.errors import DecodeError
from qrforge.integrity import Decoder
from qrforge.matrix import QrcodeEncoder, encode_matrix
from qrforge.renderer import GridRenderer


class ScriptedDecoder(Decoder):
    """Returns scripted outcomes in call order; exceptions in the script are raised.

    With no script it echoes ``default``.
    """

    def __init__(self, outcomes=None, default=None):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.decode_calls = 0
        self.decode_many_calls = 0
        self.seen = []

    def _next(self):
        if self.outcomes:
            return self.outcomes.pop(0)
        if self.default is None:
            return DecodeError("nothing scripted")
        return self.default

    async def decode(self, artifact):
        self.decode_calls += 1
        self.seen.append(artifact)
        outcome = self._next()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def decode_many(self, artifacts):
        self.decode_many_calls += 1
        self.seen.extend(artifacts)
        return [self._next() for _ in artifacts]


class HangingDecoder(Decoder):
    async def decode(self, artifact):
        await asyncio.sleep(60)
        return ""

    async def decode_many(self, artifacts):
        await asyncio.sleep(60)
        return []


class CountingEncoder(QrcodeEncoder):
    """Real encoder that records each call and can be held at a gate."""

    def __init__(self, gate: asyncio.Event | None = None):
        self.gate = gate
        self.calls = []

    async def encode(self, content, ec_level):
        self.calls.append(content)
        if self.gate is not None:
            await self.gate.wait()
        return await super().encode(content, ec_level)


class HangingEncoder(QrcodeEncoder):
    async def encode(self, content, ec_level):
        await asyncio.sleep(60)
        return await super().encode(content, ec_level)


class CountingRenderer(GridRenderer):
    def __init__(self):
        super().__init__()
        self.renders = 0

    def render(self, *args, **kwargs):
        self.renders += 1
        return super().render(*args, **kwargs)


@pytest.fixture
def url_matrix():
    return encode_matrix("https://example.com", "M")


@pytest.fixture
def renderer():
    return GridRenderer()


@pytest.fixture
def logo_png():
    """Small opaque red PNG for logo tests."""
    import io

    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (40, 20), (200, 0, 0)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def csv_text():
    return (
        "content,type,label\n"
        "https://example.com,url,Example\n"
        "hello world,,Greeting\n"
        ",,empty row\n"
        "tel:+15550100,,\n"
    )
