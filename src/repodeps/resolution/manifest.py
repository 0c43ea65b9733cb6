"""Manifest parsing helpers."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import DependencyDeclaration

_LOGGER = logging.getLogger(__name__)


class ManifestError(ValueError):
    """Raised when a manifest cannot be read as a JSON object."""


def parse_manifest(text: str, sections: Iterable[str] = ("dependencies",)) -> Optional[List[DependencyDeclaration]]:
    """Return the declarations of ``sections`` in declaration order.

    ``None`` means the manifest declares none of the sections. A name that
    appears in several sections is kept at its first occurrence.
    """

    try:
        manifest = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"manifest is not valid JSON: {exc}") from exc
    if not isinstance(manifest, dict):
        raise ManifestError("manifest root is not an object")

    found_section = False
    seen: set[str] = set()
    declarations: List[DependencyDeclaration] = []
    for section in sections:
        entries = manifest.get(section)
        if entries is None:
            continue
        if not isinstance(entries, dict):
            raise ManifestError(f"'{section}' is not an object")
        found_section = True
        for name, version in _string_entries(section, entries):
            if name in seen:
                continue
            seen.add(name)
            declarations.append(DependencyDeclaration(name=name, version_spec=version))
    return declarations if found_section else None


def _string_entries(section: str, entries: Dict[str, Any]) -> Iterable[tuple[str, str]]:
    for name, version in entries.items():
        if not isinstance(version, str):
            _LOGGER.warning("Skipping %s entry %r with non-string version %r", section, name, version)
            continue
        yield name, version


__all__ = ["ManifestError", "parse_manifest"]
