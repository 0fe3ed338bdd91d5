from __future__ import annotations

import json
from pathlib import Path

import pytest

from wspmigrate.config import PatternConfigError, TagPattern, TagTemplate, load_patterns, save_patterns


def _pattern(*tags: tuple[str, str]) -> TagPattern:
    return TagPattern(
        pattern="servers.#DC.#HOST.#METRIC",
        measurement="#METRIC",
        tags=[TagTemplate(tagkey=key, tagvalue=value) for key, value in tags],
    )


def test_prefix_and_placeholders() -> None:
    pattern = _pattern()

    assert pattern.prefix == "servers."
    assert pattern.placeholders == ["DC", "HOST", "METRIC"]
    assert pattern.field == "value"


def test_placeholder_followed_by_literal_text() -> None:
    pattern = TagPattern(pattern="carbon.#HOST.load", measurement="load")

    assert pattern.prefix == "carbon."
    assert pattern.placeholders == ["HOST"]


def test_tag_template_placeholder() -> None:
    assert TagTemplate(tagkey="host", tagvalue="#HOST").placeholder == "HOST"
    assert TagTemplate(tagkey="env", tagvalue="prod").placeholder is None


def test_pattern_equality_ignores_tag_order() -> None:
    first = _pattern(("dc", "#DC"), ("host", "#HOST"))
    second = _pattern(("host", "#HOST"), ("dc", "#DC"))
    other = _pattern(("dc", "#DC"))

    assert first == second
    assert first != other


def test_load_patterns_missing_file_is_empty(tmp_path: Path) -> None:
    assert load_patterns(tmp_path / "absent.json") == []


def test_load_patterns_empty_file_is_empty(tmp_path: Path) -> None:
    path = tmp_path / "patterns.json"
    path.write_text("  \n", encoding="utf-8")

    assert load_patterns(path) == []


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps({"pattern": "a.#B"}),
        json.dumps([{"pattern": "a.#B"}]),
        json.dumps([{"pattern": "a.#B", "measurement": "m", "extra": 1}]),
    ],
)
def test_load_patterns_invalid_content(tmp_path: Path, content: str) -> None:
    path = tmp_path / "patterns.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(PatternConfigError):
        load_patterns(path)


def test_save_then_load_keeps_order(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "patterns.json"
    patterns = [
        _pattern(("dc", "#DC"), ("host", "#HOST")),
        TagPattern(pattern="carbon.#HOST.load", measurement="load", field="avg"),
    ]

    save_patterns(path, patterns)
    loaded = load_patterns(path)

    assert loaded == patterns
    assert [t.tagkey for t in loaded[0].tags] == ["dc", "host"]
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw[1] == {"pattern": "carbon.#HOST.load", "measurement": "load", "tags": [], "field": "avg"}


def test_example_pattern_file_loads() -> None:
    path = Path(__file__).resolve().parents[2] / "config" / "patterns.json"
    patterns = load_patterns(path)

    assert [p.prefix for p in patterns] == ["carbon.agents.", "servers."]
