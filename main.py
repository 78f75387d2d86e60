import json
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
import typer

from form_brand_extraction.agents import Provider, build_invoker, build_invokers
from form_brand_extraction.capture import CaptureClient, LogoClient
from form_brand_extraction.config import Settings
from form_brand_extraction.errors import HostEnvironmentError, Result
from form_brand_extraction.orchestrator import (
    ColorExtractionOrchestrator,
    SchemaExtractionOrchestrator,
    read_document,
)
from form_brand_extraction.palette import ColorPalette, PixelPalette
from form_brand_extraction.preprocess import PDFRasterizer
from form_brand_extraction.schema import slugify

load_dotenv()


app = typer.Typer(add_completion=False)

LOG_LEVEL_OPTION = typer.Option(
    "INFO",
    "--log-level",
    help="Logging level (DEBUG, INFO, WARNING, ERROR)",
)


def _configure_logging(log_level: str, log_path: Optional[Path] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
    )
    if log_path is not None:
        logging.getLogger(__name__).info("Logging to %s", log_path)


def _schema_path(schema_dir: Path, form_id: str, document: Path) -> Path:
    # formId comes from model output; only a slug of it may name a file.
    name = slugify(form_id) or slugify(document.stem) or "schema"
    return schema_dir / f"{name}.json"


def _color_orchestrator(settings: Settings, provider: str) -> ColorExtractionOrchestrator:
    selected = Provider.parse(provider)
    return ColorExtractionOrchestrator(
        capture_client=CaptureClient(settings.screenshot_api_key, settings.screenshot_api_url),
        invoker=build_invoker(selected, settings),
        provider=selected,
    )


def _echo_palette(palette: ColorPalette, preview: Optional[Path]) -> None:
    typer.echo(f"source: {palette.source}")
    if palette.reasoning:
        typer.echo(f"reasoning: {palette.reasoning}")
    for color in palette.colors:
        typer.echo(color)
    if preview is not None and palette.preview:
        preview.write_bytes(palette.preview)
        typer.echo(f"Wrote preview to {preview}")


def _finish_palette(outcome: Result[ColorPalette], preview: Optional[Path]) -> None:
    if outcome.ok and outcome.value is not None:
        _echo_palette(outcome.value, preview)
        return
    failure = outcome.failure
    if failure is not None:
        prefix = "blocked" if failure.blocked else failure.kind.value
        typer.echo(f"{prefix}: {failure.message}", err=True)
    raise typer.Exit(code=1)


@app.command()
def schema(
    files: List[Path],
    provider: str = typer.Option(
        Provider.CLAUDE.value, "--provider", "-p", help="AI provider (claude, google, openai)"
    ),
    output: Path = typer.Option(
        Path("schemas.xlsx"),
        "--output",
        "-o",
        help="Output Excel report path",
    ),
    schema_dir: Path = typer.Option(
        Path("schemas"),
        "--schema-dir",
        help="Directory that receives one <formId>.json file per extracted schema",
    ),
    log_level: str = LOG_LEVEL_OPTION,
):
    """
    Generate a JSON form schema for each PDF form.
    """
    _configure_logging(log_level, output.with_suffix(".log"))
    settings = Settings.from_env()

    orchestrator = SchemaExtractionOrchestrator(
        rasterizer=PDFRasterizer(dpi=settings.render_dpi),
        invokers=build_invokers(settings),
        max_tokens=settings.max_tokens,
    )
    try:
        results = orchestrator.process(files=files, provider=provider)
    except HostEnvironmentError as exc:
        typer.echo(f"host environment error: {exc}", err=True)
        raise typer.Exit(code=2)

    schema_dir.mkdir(parents=True, exist_ok=True)
    for result in results:
        if result.schema is not None:
            target = _schema_path(schema_dir, result.schema.form_id, result.document)
            target.write_text(
                json.dumps(result.schema.data, indent=2, ensure_ascii=False), encoding="utf-8"
            )
        typer.echo(f"{result.document.name}: {result.status} ({result.error or 'ok'})")
    orchestrator.to_excel(results, output)
    typer.echo(f"Wrote results to {output}")


@app.command("colors-url")
def colors_url(
    url: str,
    provider: str = typer.Option(Provider.CLAUDE.value, "--provider", "-p"),
    preview: Optional[Path] = typer.Option(None, "--preview", help="Save the screenshot here"),
    log_level: str = LOG_LEVEL_OPTION,
):
    """
    Extract a brand palette from a website screenshot with the vision model.
    """
    _configure_logging(log_level)
    orchestrator = _color_orchestrator(Settings.from_env(), provider)
    _finish_palette(orchestrator.from_url(url), preview)


@app.command("colors-pdf")
def colors_pdf(
    file: Path,
    provider: str = typer.Option(Provider.CLAUDE.value, "--provider", "-p"),
    log_level: str = LOG_LEVEL_OPTION,
):
    """
    Extract a brand palette from a PDF with the vision model.
    """
    _configure_logging(log_level)
    orchestrator = _color_orchestrator(Settings.from_env(), provider)
    _finish_palette(orchestrator.from_document(read_document(file)), None)


@app.command("suggest-colors")
def suggest_colors(
    url: str,
    preview: Optional[Path] = typer.Option(None, "--preview", help="Save the screenshot here"),
    log_level: str = LOG_LEVEL_OPTION,
):
    """
    Suggest colors from a screenshot's pixel histogram, without the AI model.
    """
    _configure_logging(log_level)
    orchestrator = _color_orchestrator(Settings.from_env(), Provider.CLAUDE.value)
    _echo_palette(orchestrator.suggest_from_url(url), preview)


@app.command()
def palette(
    image: Path,
    log_level: str = LOG_LEVEL_OPTION,
):
    """
    Print the dominant colors of a local image.
    """
    _configure_logging(log_level)
    _echo_palette(PixelPalette().palette(image.read_bytes()), None)


@app.command()
def logo(
    url: str,
    log_level: str = LOG_LEVEL_OPTION,
):
    """
    Look up a company logo for a website.
    """
    _configure_logging(log_level)
    settings = Settings.from_env()
    found = LogoClient(settings.logo_api_url, settings.logo_api_key).fetch(url)
    if found is None:
        typer.echo("Logo not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(found)


def main():
    app()


if __name__ == "__main__":
    main()
