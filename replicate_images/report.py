"""Rendering of outcomes: human-readable lines, JSON lines, or nothing."""
from typing import List

import orjson
import typer
from jinja2 import Template
from pydantic import BaseModel

from .config import OutputMode
from .schema import DryRunResult, ItemResult, ModelInfo, ValidationResult

DRY_RUN_TEMPLATE = Template("""Dry run summary:
  To generate: {{ result.to_generate }}
  Cached:      {{ result.cached }}
{% if result.skipped %}
  Skipped:     {{ result.skipped }}
{% endif %}
  Total:       {{ result.prompts|length }}

{% for p in result.prompts %}
  [{{ p.status }}] {{ p.prompt }}
         Model: {{ p.model }}
         Hash:  {{ p.hash }}
{% if p.output_file %}
         File:  {{ p.output_file }}
{% endif %}
{% endfor %}""", trim_blocks=True, lstrip_blocks=False)

VALIDATION_TEMPLATE = Template("""{{ "✓ Valid" if result.valid else "✗ Invalid" }}

Summary:
  Total prompts:  {{ s.total_prompts }}
  Unique prompts: {{ s.unique_prompts }}
{% if s.duplicates %}
  Duplicates:     {{ s.duplicates }}
{% endif %}
{% if s.empty_prompts %}
  Empty prompts:  {{ s.empty_prompts }}
{% endif %}
{% if result.errors %}

Errors:
{% for e in result.errors %}
  • {{ e }}
{% endfor %}
{% endif %}
{% if result.warnings %}

Warnings:
{% for w in result.warnings %}
  • {{ w }}
{% endfor %}
{% endif %}""", trim_blocks=True, lstrip_blocks=True)

MODELS_TEMPLATE = Template("""Popular models for "{{ query }}":

{% for m in models %}
  {{ m.full_name }}
    Runs: {{ m.run_count }}
{% if m.description %}
    {{ m.description|truncate(80, True, "...", 0) }}
{% endif %}

{% endfor %}""", trim_blocks=True, lstrip_blocks=False)


def to_json_line(model: BaseModel) -> str:
    return orjson.dumps(model.model_dump(mode="json", exclude_none=True)).decode("utf-8")


class Reporter:
    """Writes outcomes for one command in the configured output mode.

    Not thread-safe on its own; the batch executor calls it under its lock.
    """

    def __init__(self, mode: OutputMode = OutputMode.HUMAN):
        self.mode = mode

    @property
    def human(self) -> bool:
        return self.mode == OutputMode.HUMAN

    def info(self, text: str) -> None:
        if self.human:
            typer.echo(text)

    def error(self, text: str) -> None:
        # Errors are never silent outside JSON mode, even with --quiet
        if self.mode != OutputMode.JSON:
            typer.echo(text, err=True)

    def warning(self, text: str) -> None:
        if self.human:
            typer.echo(f"Warning: {text}", err=True)

    def record(self, model: BaseModel) -> None:
        if self.mode == OutputMode.JSON:
            typer.echo(to_json_line(model))

    def item(self, result: ItemResult) -> None:
        if self.mode == OutputMode.JSON:
            self.record(result)
        elif result.status == "error":
            self.error(f"Error [{result.prompt}]: {result.error}")
        elif result.status == "cached":
            self.info(f"Cached: {result.prompt} -> {result.output_file}")
        elif result.status == "skipped":
            self.info(f"Skipped duplicate: {result.prompt}")
        else:
            self.info(f"Generated: {result.prompt} -> {result.output_file}")

    def dry_run(self, result: DryRunResult) -> None:
        if self.mode == OutputMode.JSON:
            self.record(result)
        elif self.human:
            typer.echo(DRY_RUN_TEMPLATE.render(result=result))

    def validation(self, result: ValidationResult) -> None:
        if self.mode == OutputMode.JSON:
            self.record(result)
        elif self.human:
            typer.echo(VALIDATION_TEMPLATE.render(result=result, s=result.summary))

    def models(self, query: str, models: List[ModelInfo]) -> None:
        if self.mode == OutputMode.JSON:
            for m in models:
                self.record(m)
        elif self.human:
            typer.echo(MODELS_TEMPLATE.render(query=query, models=models))
