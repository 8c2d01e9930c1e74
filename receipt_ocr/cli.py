"""CLI commands for receipt OCR."""

from __future__ import annotations

import json
from pathlib import Path

import click
from flask.cli import with_appcontext

from receipt_ocr.exceptions import OcrError
from receipt_ocr.extensions import get_ocr_context
from receipt_ocr.services.ocr_service import ImageVariant, ReceiptScanService


@click.group("ocr")
def ocr_cli():
    """Receipt OCR commands."""


def register_commands(app):
    """Register CLI commands with the application."""
    # Register the ocr command group
    app.cli.add_command(ocr_cli)

    # Add commands to the ocr group
    ocr_cli.add_command(parse_text)
    ocr_cli.add_command(scan_image)
    ocr_cli.add_command(show_stats)


@click.command("parse")
@click.argument("text_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--words",
    "words_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with a list of engine words (text, bbox, confidence)",
)
@with_appcontext
def parse_text(text_file: Path, words_file: Path | None) -> None:
    """Parse OCR text from TEXT_FILE and print the extracted receipt as JSON.

    Args:
        text_file: File holding the recognized text
        words_file: Optional JSON list of words with bounding boxes
    """
    text = text_file.read_text(encoding="utf-8")
    words = None
    if words_file is not None:
        try:
            words = json.loads(words_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--words") from e
        if not isinstance(words, list):
            raise click.BadParameter("Expected a JSON list of words", param_hint="--words")
        if not all(isinstance(word, dict) for word in words):
            raise click.BadParameter("Each word must be a JSON object", param_hint="--words")

    parsed = get_ocr_context().parser.parse(text, words)
    click.echo(json.dumps(parsed.to_dict(), indent=2, ensure_ascii=False))


@click.command("scan")
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--variant",
    "variant_paths",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Preprocessed rendition of IMAGE to try when the quick pass is not confident (repeatable)",
)
@with_appcontext
def scan_image(image: str, variant_paths: tuple[str, ...]) -> None:
    """Recognize IMAGE through the worker pool and print the result as JSON."""
    context = get_ocr_context()
    if not context.enabled:
        click.echo("Error: OCR is disabled (set OCR_ENABLED=true)")
        return

    variants = [ImageVariant(path=path, label=Path(path).stem) for path in variant_paths]
    try:
        result = ReceiptScanService(context).scan(image, variants, filename=Path(image).name)
    except OcrError as e:
        click.echo(f"Error: {e.message}")
        return
    click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))


@click.command("stats")
@with_appcontext
def show_stats() -> None:
    """Print OCR quality statistics."""
    click.echo(json.dumps(get_ocr_context().tracker.snapshot(), indent=2))
