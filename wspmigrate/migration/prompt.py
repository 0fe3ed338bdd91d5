"""Ask the operator for a tag pattern when a file matches none."""

from __future__ import annotations

from typing import Callable

import typer
from loguru import logger
from pydantic import ValidationError

from wspmigrate.config.patterns import TagPattern, TagTemplate

PromptFn = Callable[..., str]
ConfirmFn = Callable[..., bool]


def parse_tag_templates(text: str) -> list[TagTemplate]:
    """Parse ``host=#TEXT1 loc=#TEXT2`` into tag templates; malformed pairs are dropped."""

    templates: list[TagTemplate] = []
    for pair in text.split():
        tag_key, sep, tag_value = pair.partition("=")
        if not sep or not tag_key.strip() or not tag_value.strip():
            logger.warning("Ignoring malformed tag '{}', expected key=value", pair)
            continue
        templates.append(TagTemplate(tagkey=tag_key.strip(), tagvalue=tag_value.strip()))
    return templates


class InteractivePatternSource:
    """Prompts on the terminal until the operator confirms a pattern."""

    def __init__(self, prompt: PromptFn = typer.prompt, confirm: ConfirmFn = typer.confirm):
        self._prompt = prompt
        self._confirm = confirm

    def resolve_unmatched(self, file_path: str) -> TagPattern:
        typer.echo("-" * 55)
        typer.echo(f"No tag pattern found for {file_path}")
        typer.echo("-" * 55)
        while True:
            pattern = self._ask()
            if pattern is None:
                continue
            typer.echo(f"Pattern:     {pattern.pattern}")
            typer.echo(f"Measurement: {pattern.measurement}")
            typer.echo(f"Tags:        {', '.join(f'{t.tagkey}={t.tagvalue}' for t in pattern.tags) or '-'}")
            typer.echo(f"Field:       {pattern.field}")
            if self._confirm("Add this pattern?", default=True):
                logger.info("Added tag pattern '{}'", pattern.pattern)
                return pattern

    def _ask(self) -> TagPattern | None:
        text = self._prompt("Pattern (e.g. carbon.agents.#HOST.#METRIC)").strip()
        if not text:
            return None
        measurement = self._prompt("Measurement (e.g. #METRIC)").strip()
        if not measurement:
            return None
        tags = self._prompt("Tags (e.g. host=#HOST loc=#LOC)", default="", show_default=False)
        field = self._prompt("Field", default="value").strip() or "value"
        try:
            return TagPattern(
                pattern=text,
                measurement=measurement,
                tags=parse_tag_templates(tags),
                field=field,
            )
        except ValidationError as exc:
            logger.warning("Invalid pattern: {}", exc)
            return None


__all__ = ["InteractivePatternSource", "parse_tag_templates"]
