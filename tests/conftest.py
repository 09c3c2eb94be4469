"""
Pytest configuration and shared fixtures.

Registers the integration marker/option and provides fakes for the
OpenAI client plus synthetic receipt documents (PNG and PDF).
"""

import base64
from types import SimpleNamespace

import fitz  # PyMuPDF
import pytest
from loguru import logger

# Smallest valid PNG: 1x1 transparent pixel
ONE_PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

ACME_OUTPUT = (
    '{"vendor":"Acme","receipt_date":"2024-01-05","total":12.5,'
    '"currency":"USD","category_suggested":"Meals","confidence":1.4}'
)


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against the real OpenAI API"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring a real OpenAI API key"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


class FakeResponses:
    """Stands in for ``AsyncOpenAI().responses``; records every create() call."""

    def __init__(self, output_text=ACME_OUTPUT, error=None):
        self.output_text = output_text
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        text = self.output_text(kwargs) if callable(self.output_text) else self.output_text
        if hasattr(text, "__await__"):
            text = await text
        return SimpleNamespace(output_text=text)


class FakeOpenAIClient:
    def __init__(self, output_text=ACME_OUTPUT, error=None):
        self.responses = FakeResponses(output_text=output_text, error=error)

    @property
    def calls(self):
        return self.responses.calls


@pytest.fixture
def fake_openai():
    """Factory: fake_openai(output_text=..., error=...) -> FakeOpenAIClient"""
    return FakeOpenAIClient


def make_receipt_pdf(
    width: float = 200,
    height: float = 300,
    text: str = "ACME COFFEE\n2024-01-05\nTOTAL USD 12.50",
    encrypt: bool = False,
) -> bytes:
    """Build a one-page receipt PDF comfortably above the 2 KB truncation floor."""
    doc = fitz.open()
    page = doc.new_page(width=width, height=height)
    page.insert_text((20, 40), text, fontsize=11)
    doc.set_metadata({"keywords": "receipt " * 600})
    if encrypt:
        data = doc.tobytes(encryption=fitz.PDF_ENCRYPT_AES_256, user_pw="secret", owner_pw="owner-secret")
    else:
        data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def receipt_pdf() -> bytes:
    return make_receipt_pdf()


@pytest.fixture
def png_data_url() -> str:
    return "data:image/png;base64," + base64.b64encode(ONE_PIXEL_PNG).decode("ascii")


@pytest.fixture
def log_messages():
    """Capture loguru records (message + extra) emitted during a test"""
    records = []
    handler_id = logger.add(lambda m: records.append(m.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def pdf_factory():
    """Factory: pdf_factory(width=..., height=..., text=..., encrypt=...) -> bytes"""
    return make_receipt_pdf


@pytest.fixture
def one_pixel_png() -> bytes:
    return ONE_PIXEL_PNG
