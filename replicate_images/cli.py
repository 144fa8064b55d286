"""Typer CLI for generating images and managing the prompt cache."""
import logging
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv

from .batch import BatchExecutor, BatchOutcome, WorkItem, work_items
from .cache import CacheStore
from .client import ReplicateClient
from .config import DEFAULT_CONCURRENCY, DEFAULT_OUTPUT_DIR, OutputMode, RunConfig, configure_logging
from .errors import (
    EXIT_CACHE_SAVE_FAILED,
    EXIT_ENVIRONMENT,
    EXIT_INVALID_INPUT,
    EXIT_PARTIAL_FAILURE,
    EXIT_TOTAL_FAILURE,
    CacheCorrupt,
    CacheSaveFailed,
    ConfigurationError,
    GenerationError,
    ImageConversionFailed,
    InvalidInput,
    PersistFailed,
    ReplicateImagesError,
)
from .models import DEFAULT_MODEL
from .prompts import PromptEntry, load_prompt_file, validate_prompts
from .report import Reporter
from .schema import ItemResult, ValidationResult

# REPLICATE_API_TOKEN and friends may live in a local .env file
load_dotenv()

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="Generate images from text prompts using Replicate. "
    "Images are cached by prompt+model hash and saved as WEBP.",
)

MODELS_QUERY = "text to image"
MODELS_LIMIT = 10


def make_client() -> ReplicateClient:
    return ReplicateClient.from_env()


def _fail(message: str, code: int) -> None:
    # stderr in every mode so JSON consumers still see structural errors
    if message:
        typer.echo(message, err=True)
    raise typer.Exit(code=code)


def _load_store(config: RunConfig) -> CacheStore:
    try:
        return CacheStore.load(config.output_dir)
    except CacheCorrupt as e:
        _fail(str(e), EXIT_ENVIRONMENT)


def _connect():
    try:
        return make_client()
    except ConfigurationError as e:
        _fail(str(e), EXIT_ENVIRONMENT)


def _load_entries(prompts_file: str, model: str, reporter: Reporter) -> List[PromptEntry]:
    try:
        entries = load_prompt_file(prompts_file)
    except InvalidInput as e:
        _fail(str(e), EXIT_INVALID_INPUT)
    result = validate_prompts(entries, model)
    if not result.valid:
        _fail("; ".join(result.errors), EXIT_INVALID_INPUT)
    for w in result.warnings:
        reporter.warning(w)
    return entries


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging on stderr."),
):
    configure_logging(verbose)


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="Text prompt to render."),
    model: str = typer.Option(DEFAULT_MODEL, "--model", "-m", help="Replicate model to use."),
    output: str = typer.Option(DEFAULT_OUTPUT_DIR, "--output", "-o", help="Output directory."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Force regeneration, ignore cache."),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be generated without executing."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress all output except errors."),
):
    """Generate a single image from PROMPT."""
    config = RunConfig.from_flags(
        json_output=json_output, quiet=quiet,
        model=model, output_dir=Path(output), no_cache=no_cache, dry_run=dry_run,
    )
    reporter = Reporter(config.output)
    if not prompt.strip():
        _fail("empty prompt text", EXIT_INVALID_INPUT)
    item = WorkItem.create(prompt, config.model)
    store = _load_store(config)

    if config.dry_run:
        reporter.dry_run(BatchExecutor(store, None, config, reporter).dry_run([item]))
        return

    executor = BatchExecutor(store, None, config, reporter)
    plan = executor.plan([item])
    if plan.pending:
        executor.invoker = _connect()
    try:
        executor.generate_single(item, plan)
    except CacheSaveFailed as e:
        _fail(str(e), EXIT_CACHE_SAVE_FAILED)
    except (GenerationError, ImageConversionFailed, PersistFailed) as e:
        if config.output == OutputMode.JSON:
            reporter.record(ItemResult(
                status="error", prompt=item.prompt, model=item.model, hash=item.hash, error=str(e),
            ))
        _fail(str(e), EXIT_TOTAL_FAILURE)
    finally:
        if executor.invoker is not None:
            executor.invoker.close()


@app.command()
def batch(
    prompts_file: str = typer.Argument(..., help="YAML file with a top-level 'prompts' list."),
    model: str = typer.Option(DEFAULT_MODEL, "--model", "-m", help="Default model for prompts without one."),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency", "-c", min=1, help="Number of concurrent generations."),
    output: str = typer.Option(DEFAULT_OUTPUT_DIR, "--output", "-o", help="Output directory."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Force regeneration, ignore cache."),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON lines."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be generated without executing."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress all output except errors."),
):
    """Generate images for every prompt in PROMPTS_FILE.

    Prompts without a model use --model. Cached images are skipped unless
    --no-cache is set.
    """
    config = RunConfig.from_flags(
        json_output=json_output, quiet=quiet,
        model=model, output_dir=Path(output), concurrency=concurrency,
        no_cache=no_cache, dry_run=dry_run,
    )
    reporter = Reporter(config.output)
    entries = _load_entries(prompts_file, config.model, reporter)
    items = work_items(entries, config.model)
    store = _load_store(config)
    executor = BatchExecutor(store, None, config, reporter)
    # Planned once; the plan decides whether a client is needed at all
    plan = executor.plan(items)

    if config.dry_run:
        reporter.dry_run(executor.dry_run(items, plan))
        return

    if plan.pending:
        executor.invoker = _connect()
    try:
        report = executor.run(items, plan)
    except CacheSaveFailed as e:
        _fail(f"{e} (generated images were written but are not recorded)", EXIT_CACHE_SAVE_FAILED)
    except PersistFailed as e:
        _fail(str(e), EXIT_TOTAL_FAILURE)
    finally:
        if executor.invoker is not None:
            executor.invoker.close()

    errored = report.counts.errored
    if report.outcome == BatchOutcome.TOTAL_FAILURE:
        _fail(f"{errored} generation(s) failed", EXIT_TOTAL_FAILURE)
    if report.outcome == BatchOutcome.PARTIAL_FAILURE:
        _fail(f"{errored} generation(s) failed", EXIT_PARTIAL_FAILURE)
    if report.counts.pending:
        reporter.info(f"\nDone. Generated {report.counts.generated} images.")


@app.command()
def validate(
    prompts_file: str = typer.Argument(..., help="YAML file to check."),
    model: str = typer.Option(DEFAULT_MODEL, "--model", "-m", help="Default model for prompts without one."),
    json_output: bool = typer.Option(False, "--json", help="Output the result as JSON."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress all output except errors."),
):
    """Check PROMPTS_FILE for syntax errors, empty prompts and duplicates."""
    config = RunConfig.from_flags(json_output=json_output, quiet=quiet, model=model)
    reporter = Reporter(config.output)
    try:
        entries = load_prompt_file(prompts_file)
    except InvalidInput as e:
        if config.output == OutputMode.JSON:
            reporter.record(ValidationResult(valid=False, errors=[str(e)]))
            raise typer.Exit(code=EXIT_INVALID_INPUT)
        _fail(str(e), EXIT_INVALID_INPUT)
    result = validate_prompts(entries, config.model)
    reporter.validation(result)
    if not result.valid:
        raise typer.Exit(code=EXIT_INVALID_INPUT)


@app.command()
def models(
    query: Optional[str] = typer.Argument(None, help=f"Search text (default: {MODELS_QUERY!r})."),
    json_output: bool = typer.Option(False, "--json", help="Output one JSON object per model."),
):
    """Search for popular text-to-image models."""
    query = query or MODELS_QUERY
    reporter = Reporter(RunConfig.from_flags(json_output=json_output).output)
    client = _connect()
    try:
        found = client.search_models(query)
    except ReplicateImagesError as e:
        _fail(str(e), EXIT_TOTAL_FAILURE)
    finally:
        client.close()
    found.sort(key=lambda m: m.run_count, reverse=True)
    reporter.models(query, found[:MODELS_LIMIT])


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
