from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from mimetypes import guess_type
from pathlib import Path
from typing import Any, Callable, List, Literal, Mapping, Optional, Sequence, Union

import pandas as pd

from .agents import (
    SCHEMA_TIMEOUT_SECONDS,
    VISION_TIMEOUT_SECONDS,
    DocumentBlock,
    ImageBlock,
    ModelInvoker,
    ModelRequest,
    ModelResponse,
    Provider,
    build_request,
)
from .capture import CaptureClient
from .errors import ErrorKind, Failure, HostEnvironmentError, RasterizationFailed, Result
from .palette import SUGGESTION_PALETTE, ColorPalette, PixelPalette
from .preprocess import Document, PDFRasterizer
from .prompts import SCHEMA_PROMPT, color_prompt
from .sanitize import locate_json_object, sanitize, tail_fragment, try_parse
from .schema import PLACEHOLDER_CONFIDENCE, ExtractedSchema, derive_form_id, summarize

logger = logging.getLogger(__name__)

LARGE_PAYLOAD_MB = 10.0

COLOR_KEYS = ("primaryButton", "header", "footer", "accent", "secondaryButton", "sidebar")
_HEX_BODY = re.compile(r"^[0-9A-F]{3}(?:[0-9A-F]{3})?$")

PDF_ALTERNATIVE = "Please try using the 'Analyze PDF' feature to extract colors from a PDF document instead."
CAPTURE_UNAVAILABLE_MESSAGE = (
    "Screenshot service is not available. Please try using the 'Analyze PDF' feature instead."
)
BLOCKED_MESSAGE = (
    "Unable to capture screenshot of the website. The site may be blocking automated access. "
    + PDF_ALTERNATIVE
)
INSUFFICIENT_COLORS_MESSAGE = (
    "Unable to determine all brand colors from the visual content. "
    "Please manually select colors or try a different source."
)
VISION_REASONING = "AI-analyzed brand colors from visual content"


def log_payload(request: ModelRequest) -> None:
    size_mb = request.payload_megabytes
    logger.info(
        "Estimated payload size: %.2f MB (%s attachments)", size_mb, request.attachment_count
    )
    if size_mb > LARGE_PAYLOAD_MB:
        logger.warning(
            "Large payload detected (%.2f MB) - may cause connection issues or timeouts", size_mb
        )


def _invocation_failure(response: ModelResponse, provider: str) -> Failure:
    if response.error_kind is ErrorKind.TRANSIENT_NETWORK:
        if response.connection_reset:
            message = (
                f"Connection reset by the {provider} API - the PDF may be too large or the "
                "network is unstable. Try a smaller PDF."
            )
        else:
            message = (
                f"Could not reach the {provider} API after {response.attempts} attempts: "
                f"{response.message}"
            )
        return Failure(kind=ErrorKind.TRANSIENT_NETWORK, message=message, detail=response.message)

    status = f" (HTTP {response.status_code})" if response.status_code else ""
    return Failure(
        kind=ErrorKind.UPSTREAM_REJECTED,
        message=f"The {provider} API rejected the request{status}: {response.message}",
        detail=response.message,
    )


@dataclass
class DocumentResult:
    document: Path
    status: Literal["ok", "error"]
    schema: Optional[ExtractedSchema] = None
    error: Optional[str] = None


def read_document(file_path: Path) -> Document:
    media_type = guess_type(file_path.name)[0] or "application/octet-stream"
    return Document(content=file_path.read_bytes(), media_type=media_type, name=file_path.name)


class SchemaExtractionOrchestrator:
    """
    Turns PDF forms into JSON form schemas via a vision model.
    """

    def __init__(
        self,
        rasterizer: PDFRasterizer,
        invokers: Mapping[Provider, ModelInvoker],
        max_tokens: int = 16000,
        clock: Callable[[], float] = time.time,
    ):
        self.rasterizer = rasterizer
        self.invokers = dict(invokers)
        self.max_tokens = max_tokens
        self.clock = clock

    def extract(
        self, document: Document, provider: Union[str, Provider] = Provider.CLAUDE
    ) -> Result[ExtractedSchema]:
        if document.is_empty:
            return Result.fail(ErrorKind.INPUT_INVALID, "Please select a PDF file to analyze")
        if not document.is_pdf:
            logger.error("Invalid file type: %s", document.media_type)
            return Result.fail(
                ErrorKind.INPUT_INVALID,
                f"Please upload a valid PDF file (received {document.media_type})",
            )
        try:
            selected = Provider.parse(provider)
        except ValueError as exc:
            return Result.fail(ErrorKind.INPUT_INVALID, str(exc))
        invoker = self.invokers.get(selected)
        if invoker is None:
            return Result.fail(
                ErrorKind.INPUT_INVALID, f"AI provider '{selected.value}' is not configured"
            )

        logger.info("Analyzing %s with provider %s", document.name or "document", selected.value)
        try:
            return self._extract(document, selected, invoker)
        except HostEnvironmentError:
            raise
        except Exception as exc:
            logger.exception("Schema extraction failed for %s", document.name)
            return Result.fail(
                ErrorKind.UPSTREAM_REJECTED,
                f"Failed to analyze PDF with {selected.value} AI: {exc}",
            )

    def _extract(
        self, document: Document, provider: Provider, invoker: ModelInvoker
    ) -> Result[ExtractedSchema]:
        try:
            pages = self.rasterizer.render(document.content)
        except RasterizationFailed as exc:
            return Result.fail(
                ErrorKind.INPUT_INVALID,
                f"{exc}. The file may be corrupt or use an unsupported PDF variant.",
            )

        request = build_request(
            SCHEMA_PROMPT,
            [ImageBlock(page.image) for page in pages],
            model=invoker.model_name,
            max_tokens=self.max_tokens,
            timeout_seconds=SCHEMA_TIMEOUT_SECONDS,
        )
        log_payload(request)

        response = invoker.invoke(request)
        if not response.success:
            return Result(status="error", failure=_invocation_failure(response, provider.value))

        schema_text = sanitize(response.text or "")
        data = try_parse(schema_text)
        if not isinstance(data, dict):
            logger.error("Model returned an unparsable schema")
            return Result.fail(
                ErrorKind.PARSE_FAILURE,
                "The AI response is not a valid JSON schema object",
                detail=tail_fragment(schema_text),
            )

        logger.info("Successfully received schema from %s", invoker.model_name)
        return Result.success(
            ExtractedSchema(
                schema=schema_text,
                data=data,
                form_id=derive_form_id(data, self.clock),
                confidence=PLACEHOLDER_CONFIDENCE,
                notes=(
                    f"Schema generated successfully using {provider.value} AI. "
                    "Please review and adjust as needed."
                ),
                provider=provider.value,
                page_count=len(pages),
                summary=summarize(data),
            )
        )

    def process(
        self,
        files: Sequence[Path],
        provider: Union[str, Provider] = Provider.CLAUDE,
    ) -> List[DocumentResult]:
        """
        Extract a schema for each file, strictly one after the other.
        """
        results: List[DocumentResult] = []
        for file_path in files:
            path = Path(file_path)
            logger.info("Processing %s", path)
            try:
                document = read_document(path)
            except OSError as exc:
                logger.error("Cannot read %s: %s", path, exc)
                results.append(DocumentResult(document=path, status="error", error=str(exc)))
                continue

            outcome = self.extract(document, provider)
            if outcome.ok:
                results.append(DocumentResult(document=path, status="ok", schema=outcome.value))
            else:
                error = outcome.failure.message if outcome.failure else None
                results.append(DocumentResult(document=path, status="error", error=error))
        return results

    def to_dataframe(self, results: Sequence[DocumentResult]) -> pd.DataFrame:
        """
        Convert extraction results into a flat DataFrame.

        Columns: document_name, status, error, form_id, provider, confidence,
        page_count, field_count, required_count
        """
        rows: List[dict[str, Any]] = []
        for res in results:
            row: dict[str, Any] = {
                "document_name": res.document.name,
                "status": res.status,
                "error": res.error,
            }
            if res.schema:
                row.update(
                    {
                        "form_id": res.schema.form_id,
                        "provider": res.schema.provider,
                        "confidence": res.schema.confidence,
                        "page_count": res.schema.page_count,
                    }
                )
                if res.schema.summary:
                    row["field_count"] = res.schema.summary.field_count
                    row["required_count"] = res.schema.summary.required_count
            rows.append(row)
        return pd.DataFrame(rows)

    def to_excel(self, results: Sequence[DocumentResult], output_path: Path) -> None:
        """
        Write results to an Excel file with sheet 'schemas'.
        """
        df = self.to_dataframe(results)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Writing results to %s", output_path)
        with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="schemas", index=False)


def normalize_color(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    color = value.strip()
    if not color.startswith("#"):
        color = "#" + color
    color = color.upper()
    if not _HEX_BODY.match(color[1:]):
        return None
    return color


def parse_color_reply(text: Optional[str]) -> Result[List[str]]:
    """Pull the six role colors, in fixed order, out of a vision reply."""
    located = locate_json_object(text)
    if located is None:
        logger.error("Could not find JSON object in model response")
        return Result.fail(ErrorKind.PARSE_FAILURE, "Could not parse color data from AI response")

    cleaned = sanitize(located)
    data = try_parse(cleaned)
    if not isinstance(data, dict):
        return Result.fail(
            ErrorKind.PARSE_FAILURE,
            "Failed to parse color analysis results",
            detail=tail_fragment(cleaned),
        )

    colors: List[str] = []
    for key in COLOR_KEYS:
        color = normalize_color(data.get(key))
        if color is not None:
            colors.append(color)

    logger.info("Parsed %s colors from vision response: %s", len(colors), colors)
    if len(colors) < len(COLOR_KEYS):
        logger.warning("Vision model returned insufficient colors (%s)", len(colors))
        return Result.fail(
            ErrorKind.UPSTREAM_REJECTED,
            INSUFFICIENT_COLORS_MESSAGE,
            detail=f"resolved {len(colors)} of {len(COLOR_KEYS)} colors",
        )
    return Result.success(colors)


class ColorExtractionOrchestrator:
    """
    Brand palette extraction from a website screenshot or a PDF.

    The vision layer does not fall back to the pixel histogram on its own;
    callers that want that use histogram_fallback() or suggest_from_url().
    """

    def __init__(
        self,
        capture_client: CaptureClient,
        invoker: ModelInvoker,
        pixel_palette: Optional[PixelPalette] = None,
        provider: Union[str, Provider] = Provider.CLAUDE,
        max_tokens: int = 500,
    ):
        self.capture_client = capture_client
        self.invoker = invoker
        self.pixel_palette = pixel_palette or PixelPalette()
        self.provider = Provider.parse(provider)
        self.max_tokens = max_tokens

    def from_url(self, url: str) -> Result[ColorPalette]:
        if not url or not url.strip():
            logger.warning("Color analysis called with a blank URL")
            return Result.fail(ErrorKind.INPUT_INVALID, "Please provide a website URL")
        url = url.strip()
        logger.info("Analyzing website colors for %s", url)

        try:
            if not self.capture_client.is_ready():
                logger.error("Screenshot service not ready")
                return Result.fail(ErrorKind.UPSTREAM_REJECTED, CAPTURE_UNAVAILABLE_MESSAGE)

            capture = self.capture_client.capture(url)
            if not capture.available:
                logger.warning("Failed to capture screenshot for %s (%s)", url, capture.status)
                kind = (
                    ErrorKind.TRANSIENT_NETWORK
                    if capture.status == "network_error"
                    else ErrorKind.UPSTREAM_REJECTED
                )
                return Result.fail(kind, BLOCKED_MESSAGE, blocked=True, detail=capture.message)

            return self._analyze(
                ImageBlock(capture.image), "website screenshot", preview=capture.image
            )
        except HostEnvironmentError:
            raise
        except Exception as exc:
            logger.exception("Error analyzing website colors for %s", url)
            return Result.fail(
                ErrorKind.UPSTREAM_REJECTED,
                f"An error occurred while analyzing the website: {exc}. "
                "Please try using the 'Analyze PDF' feature instead.",
            )

    def from_document(self, document: Document) -> Result[ColorPalette]:
        logger.info("Analyzing PDF colors for %s", document.name or "document")
        if document.is_empty:
            return Result.fail(ErrorKind.INPUT_INVALID, "PDF content is empty")
        if not document.is_pdf:
            return Result.fail(ErrorKind.INPUT_INVALID, "Please upload a valid PDF file")
        try:
            return self._analyze(DocumentBlock(document.content), "PDF document")
        except Exception as exc:
            logger.exception("Error analyzing PDF colors")
            return Result.fail(
                ErrorKind.UPSTREAM_REJECTED, f"An error occurred while analyzing the PDF: {exc}"
            )

    def suggest_from_url(self, url: str) -> ColorPalette:
        """Histogram palette from a screenshot, or static suggestions without one."""
        capture = self.capture_client.capture(url) if self.capture_client.is_ready() else None
        if capture is None or not capture.available:
            logger.info("Screenshot unavailable, returning default colors")
            return ColorPalette.default(SUGGESTION_PALETTE)
        return self.histogram_fallback(capture.image)

    def histogram_fallback(self, image_bytes: bytes) -> ColorPalette:
        return self.pixel_palette.palette(image_bytes)

    def _analyze(
        self, attachment: ImageBlock, source: str, preview: Optional[bytes] = None
    ) -> Result[ColorPalette]:
        logger.info("Analyzing %s with %s", source, self.invoker.model_name)
        request = build_request(
            color_prompt(source),
            [attachment],
            model=self.invoker.model_name,
            max_tokens=self.max_tokens,
            timeout_seconds=VISION_TIMEOUT_SECONDS,
        )
        log_payload(request)

        response = self.invoker.invoke(request)
        if not response.success:
            failure = _invocation_failure(response, self.provider.value)
            return Result.fail(
                failure.kind,
                f"Failed to analyze {source}: {failure.message}",
                detail=failure.detail,
            )

        logger.debug("Vision raw response: %s", response.text)
        parsed = parse_color_reply(response.text)
        if not parsed.ok or parsed.value is None:
            return Result(status="error", failure=parsed.failure)

        return Result.success(
            ColorPalette(
                colors=parsed.value,
                source="vision",
                reasoning=VISION_REASONING,
                preview=preview,
            )
        )
