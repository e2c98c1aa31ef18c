"""docintel CLI."""

import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from docintel.config import settings
from docintel.errors import DocIntelError
from docintel.logging_config import configure_logging
from docintel.models import ParsedDocument
from docintel.pipeline.stage_ocr import textract_block_to_record
from docintel.pipeline.stage_parse import BlockGraphParser
from docintel.services import (
    build_answer_composer,
    build_index_writer,
    build_ingestion_service,
)

app = typer.Typer(
    name="docintel",
    help="OCR block graphs to a searchable, question-answering document index",
    add_completion=False,
)
console = Console()


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, help="Log level"),
    json_logs: bool = typer.Option(settings.json_logs, help="Emit JSON log lines"),
) -> None:
    configure_logging(log_level, json_logs)


def _fail(error: DocIntelError) -> None:
    console.print(f"[bold red]Error:[/bold red] {error.user_message}")
    console.print(f"[dim]{error}[/dim]")
    raise typer.Exit(code=1)


def load_block_records(path: Path) -> list[dict[str, Any]]:
    """Load block records from a JSON dump.

    Accepts a list of parser records, ``{"blocks": [...]}``, or a raw
    Textract response with ``{"Blocks": [...]}``.
    """
    with open(path, encoding="utf-8") as f:
        payload = json.load(f)

    if isinstance(payload, dict) and "Blocks" in payload:
        return [textract_block_to_record(b) for b in payload["Blocks"]]
    if isinstance(payload, dict):
        payload = payload.get("blocks", [])
    if not isinstance(payload, list):
        raise typer.BadParameter(f"{path} does not contain a block list")
    return payload


def _print_document(document: ParsedDocument) -> None:
    console.print(
        f"[bold]Pages:[/bold] {document.page_count}  "
        f"[bold]With text:[/bold] {len(document.pages)}  "
        f"[bold]Avg confidence:[/bold] {document.average_confidence:.1f}"
    )
    for page in document.pages:
        console.print(f"\n[bold blue]Page {page.page_number}[/bold blue] ({page.confidence:.1f})")
        console.print(page.text)

    for table in document.tables:
        console.print(f"\n[bold blue]Table, page {table.page_number}[/bold blue]")
        console.print(table.markdown, markup=False)

    for form in document.forms:
        kv_table = Table(title=f"Form fields, page {form.page_number}")
        kv_table.add_column("Key")
        kv_table.add_column("Value")
        kv_table.add_column("Confidence", justify="right")
        for pair in form.key_value_pairs:
            kv_table.add_row(pair.key, pair.value, f"{pair.confidence:.1f}")
        console.print(kv_table)


@app.command("init-index")
def init_index() -> None:
    """Create the vector index if it does not exist."""
    try:
        build_index_writer().ensure_index()
    except DocIntelError as e:
        _fail(e)
    console.print(f"[green]Index ready:[/green] {settings.index_name}")


@app.command()
def parse(
    blocks_file: Path = typer.Argument(..., exists=True, help="OCR block graph JSON"),
) -> None:
    """Parse an OCR block graph and print pages, tables and forms."""
    document = BlockGraphParser().parse(load_block_records(blocks_file))
    if document.is_empty and not document.tables and not document.forms:
        console.print("[yellow]No content above the confidence threshold[/yellow]")
        return
    _print_document(document)


@app.command()
def ingest(
    blocks_file: Path = typer.Argument(..., exists=True, help="OCR block graph JSON"),
    document_id: str = typer.Option(..., help="Document id the chunks belong to"),
    source: Optional[str] = typer.Option(None, help="Source name stored with each chunk"),
) -> None:
    """Parse, chunk, embed and index an OCR block graph."""
    parsed = BlockGraphParser().parse(load_block_records(blocks_file))
    try:
        report = build_ingestion_service().index_document(
            document_id, parsed, source=source or blocks_file.name
        )
    except DocIntelError as e:
        _fail(e)

    summary = Table(title=f"Indexed {document_id}")
    summary.add_column("Metric")
    summary.add_column("Value", justify="right")
    summary.add_row("Pages", str(parsed.page_count))
    summary.add_row("Chunks", str(report.chunk_count))
    summary.add_row("Replaced", str(report.deleted))
    summary.add_row("Indexed", str(report.indexed))
    summary.add_row("Skipped", str(report.skipped))
    summary.add_row("Failed", str(report.failed))
    summary.add_row("Tokens", str(report.usage.tokens))
    console.print(summary)
    if report.failed:
        raise typer.Exit(code=1)


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to answer"),
    document_id: Optional[str] = typer.Option(None, help="Restrict to one document"),
) -> None:
    """Answer a question from the indexed documents."""
    try:
        response = build_answer_composer().answer(question, document_id=document_id)
    except DocIntelError as e:
        _fail(e)

    console.print(response.answer)
    console.print(f"\n[bold]Confidence:[/bold] {response.confidence:.2f}")

    if response.sources:
        sources = Table(title="Sources")
        sources.add_column("Id")
        sources.add_column("Similarity", justify="right")
        sources.add_column("Page", justify="right")
        sources.add_column("Preview")
        for src in response.sources:
            page = str(src.page_number) if src.page_number is not None else "-"
            sources.add_row(src.id, f"{src.similarity:.2f}", page, src.content)
        console.print(sources)


@app.command()
def delete(document_id: str = typer.Argument(..., help="Document id")) -> None:
    """Remove every chunk of a document from the index."""
    try:
        deleted = build_index_writer().delete_by_document_id(document_id)
    except DocIntelError as e:
        _fail(e)
    console.print(f"Deleted {deleted} chunks for {document_id}")


@app.command()
def start(
    bucket: str = typer.Argument(..., help="Source bucket"),
    key: str = typer.Argument(..., help="Object key of the PDF"),
) -> None:
    """Register an uploaded PDF and start its OCR job."""
    try:
        job = build_ingestion_service().start_processing(bucket, key)
    except DocIntelError as e:
        _fail(e)
    console.print(f"[green]OCR started[/green] document={job.document_id} ocr_job={job.ocr_job_id}")


@app.command()
def complete(
    message_file: Path = typer.Argument(..., exists=True, help="Notification JSON or event with Records"),
) -> None:
    """Process an OCR completion notification (or a batch of records)."""
    service = build_ingestion_service()
    body = message_file.read_text(encoding="utf-8")

    try:
        payload = json.loads(body)
    except ValueError:
        payload = None

    try:
        if isinstance(payload, dict) and isinstance(payload.get("Records"), list):
            counts = service.handle_records(payload["Records"])
            console.print(
                f"processed={counts['processed']} ignored={counts['ignored']} "
                f"failed={counts['failed']}"
            )
            if counts["failed"]:
                raise typer.Exit(code=1)
            return

        report = service.handle_completion(body)
    except DocIntelError as e:
        _fail(e)

    if report is None:
        console.print("[yellow]Notification ignored[/yellow]")
    else:
        console.print(
            f"[green]Processed[/green] {report.document_id}: "
            f"{report.chunk_count} chunks, {report.failed} failed"
        )


if __name__ == "__main__":
    app()
