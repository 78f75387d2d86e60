from __future__ import annotations

from io import BytesIO
from typing import Callable, Iterable, List, Optional, Tuple

import fitz  # PyMuPDF
import pytest
from PIL import Image

from form_brand_extraction.agents import ModelRequest, ModelResponse
from form_brand_extraction.capture import CaptureResult


def build_pdf(page_count: int) -> bytes:
    doc = fitz.open()
    for index in range(page_count):
        # widen each page so order can be checked from the rendered size
        page = doc.new_page(width=200 + 100 * index, height=300)
        page.insert_text((20, 40), f"Page {index + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def build_png(
    size: Tuple[int, int],
    background: Tuple[int, int, int] = (255, 255, 255),
    boxes: Iterable[Tuple[Tuple[int, int, int, int], Tuple[int, int, int]]] = (),
) -> bytes:
    img = Image.new("RGB", size, background)
    for box, color in boxes:
        img.paste(color, box)
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def make_pdf() -> Callable[[int], bytes]:
    return build_pdf


@pytest.fixture
def make_png() -> Callable[..., bytes]:
    return build_png


class FakeInvoker:
    """Records every request and replays canned responses."""

    def __init__(self, *responses: ModelResponse, model_name: str = "fake-model"):
        self.model_name = model_name
        self.responses: List[ModelResponse] = list(responses)
        self.requests: List[ModelRequest] = []

    def invoke(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        return self.responses.pop(0)


class FakeCapture:
    def __init__(self, result: Optional[CaptureResult] = None, ready: bool = True):
        self.result = result or CaptureResult(status="blocked", message="empty body")
        self.ready = ready
        self.urls: List[str] = []

    def is_ready(self) -> bool:
        return self.ready

    def capture(self, url: str) -> CaptureResult:
        self.urls.append(url)
        return self.result
