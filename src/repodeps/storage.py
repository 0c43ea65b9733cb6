"""Filesystem helpers for crawl and graph outputs."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .config import CrawlSettings


@dataclass(frozen=True, slots=True)
class OutputLayout:
    """Represents the files a crawl may produce."""

    artifact: Path
    partial_artifact: Path
    report: Path

    def as_iterable(self) -> Iterable[Path]:
        return (self.artifact, self.partial_artifact, self.report)


def build_output_layout(settings: CrawlSettings) -> OutputLayout:
    """Derive the output file locations from the configured artifact path."""

    artifact = settings.output_path.expanduser().resolve()
    return OutputLayout(
        artifact=artifact,
        partial_artifact=artifact.with_name(f"{artifact.stem}.partial.json"),
        report=artifact.with_name(f"{artifact.stem}.report.json"),
    )


def ensure_output_layout(layout: OutputLayout) -> None:
    """Ensure the parent directories of every output file exist."""

    for path in layout.as_iterable():
        path.parent.mkdir(parents=True, exist_ok=True)


def write_json(path: Path, payload: Any, *, indent: int = 4) -> Path:
    """Serialize ``payload`` to ``path``, creating parent directories as needed."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=indent), encoding="utf-8")
    return path


def load_dependency_cache(path: Path) -> Dict[str, List[str]]:
    """Read a dependency cache artifact written by a crawl."""

    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    entries: Dict[str, List[str]] = {}
    for key, dependencies in payload.items():
        if not isinstance(dependencies, list) or not all(isinstance(dep, str) for dep in dependencies):
            raise ValueError(f"entry {key!r} in {path} is not a list of strings")
        entries[key] = list(dependencies)
    return entries


__all__ = [
    "OutputLayout",
    "build_output_layout",
    "ensure_output_layout",
    "load_dependency_cache",
    "write_json",
]
