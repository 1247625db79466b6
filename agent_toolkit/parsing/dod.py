"""
Definition of Done (DoD) parser.

A DoD document is semi-structured markdown:

    ---
    project_kind: web_app
    language: typescript
    constraints:
      auth: none
      db: none
    stack: [react, vite]
    features:
      - upload
      - preview
    ---

    ## 1. Repo Deliverables
    - [ ] `package.json`
    - [ ] `dist/*.js`

    ---

    ## 5. Verification Commands
    ```bash
    npm install
    npm test
    ```

Parsing is line-oriented and deliberately forgiving: missing sections give
empty lists, and a front-matter block that cannot be read gives None from
`parse_dod_metadata`. Only `DefinitionOfDone.parse` raises, so callers decide
at the top level whether a missing DoD is fatal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

_FRONT_MATTER = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)

_DELIVERABLES_HEADING = re.compile(
    r"^#{1,6}[ \t]*(?:\d+\.[ \t]*)?(?:repo[ \t]+)?deliverables\b.*$",
    re.IGNORECASE | re.MULTILINE,
)
_SECTION_END = re.compile(r"^(?:-{3,}[ \t]*|#{1,2}[ \t].*)$", re.MULTILINE)
_DELIVERABLE_ITEM = re.compile(r"^[ \t]*[-*][ \t]+\[[ xX]\][ \t]+`([^`]+)`")

_COMMANDS_HEADING = re.compile(
    r"^#{1,6}[ \t]*(?:\d+\.[ \t]*)?verification[ \t]+commands\b.*$",
    re.IGNORECASE | re.MULTILINE,
)
_SHELL_FENCE = re.compile(r"```(?:bash|sh|shell)[^\n]*\n(.*?)```", re.DOTALL)

# Placeholder for a bare `key:` line until its children show up
_BLOCK = object()


class DodParseError(ValueError):
    """Raised when a DoD document has no readable front matter."""


def _normalize(text: str) -> str:
    return text.replace("\r\n", "\n").lstrip("﻿")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _parse_value(raw: str) -> Any:
    """Parse a scalar or an inline `[a, b, c]` array."""
    value = raw.strip()
    if value and value[0] not in ("'", '"') and " #" in value:
        value = value.split(" #", 1)[0].rstrip()
    if value.startswith("[") and value.endswith("]"):
        items = [_unquote(item.strip()) for item in value[1:-1].split(",")]
        return [item for item in items if item]
    return _unquote(value)


def _finish(value: Any) -> Any:
    if value is _BLOCK:
        return ""
    if isinstance(value, dict):
        return {k: _finish(v) for k, v in value.items()}
    return value


def parse_dod_metadata(text: str) -> Optional[Dict[str, Any]]:
    """Parse the YAML-like front matter of a DoD document.

    Supports `key: value`, two-space nested keys, inline `[a, b]` arrays and
    block arrays (`key:` followed by `- item` lines, at top level or one
    level nested).

    Returns:
        Metadata dict, or None when the front matter is missing or malformed
    """
    if not isinstance(text, str):
        return None

    match = _FRONT_MATTER.match(_normalize(text))
    if not match:
        return None

    metadata: Dict[str, Any] = {}
    current_key: Optional[str] = None
    nested_key: Optional[str] = None

    for line in match.group(1).split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        if stripped == "-" or stripped.startswith("- "):
            if current_key is None:
                return None
            item = _parse_value(stripped[1:])
            parent = metadata[current_key]
            if isinstance(parent, dict) and nested_key is not None:
                container, key = parent, nested_key
            else:
                container, key = metadata, current_key
            if container[key] is _BLOCK:
                container[key] = []
            if not isinstance(container[key], list):
                return None
            container[key].append(item)
            continue

        colon_idx = stripped.find(":")
        if colon_idx <= 0:
            continue

        key = stripped[:colon_idx].strip()
        raw_value = stripped[colon_idx + 1:]
        value = _parse_value(raw_value) if raw_value.strip() else _BLOCK

        if line.startswith("  "):
            if current_key is None:
                return None
            parent = metadata[current_key]
            if parent is _BLOCK:
                parent = metadata[current_key] = {}
            if not isinstance(parent, dict):
                return None
            parent[key] = value
            nested_key = key
        else:
            metadata[key] = value
            current_key = key
            nested_key = None

    return {k: _finish(v) for k, v in metadata.items()}


def _section(text: str, heading: re.Pattern) -> Optional[str]:
    match = heading.search(text)
    if not match:
        return None
    body = text[match.end():]
    end = _SECTION_END.search(body)
    return body[: end.start()] if end else body


def extract_deliverables(text: str) -> List[str]:
    """Return the `- [ ] \\`path\\`` entries of the deliverables section, in order."""
    section = _section(_normalize(text), _DELIVERABLES_HEADING)
    if section is None:
        return []

    deliverables = []
    for line in section.split("\n"):
        match = _DELIVERABLE_ITEM.match(line)
        if match:
            deliverables.append(match.group(1).strip())
    return deliverables


def extract_verification_commands(text: str) -> List[str]:
    """Return the commands of the first shell block after the commands heading.

    Blank lines and `#` comment lines are skipped.
    """
    normalized = _normalize(text)
    heading = _COMMANDS_HEADING.search(normalized)
    if not heading:
        return []

    fence = _SHELL_FENCE.search(normalized, heading.end())
    if not fence:
        return []

    commands = []
    for line in fence.group(1).split("\n"):
        command = line.strip()
        if command and not command.startswith("#"):
            commands.append(command)
    return commands


@dataclass
class DefinitionOfDone:
    """Parsed DoD: front matter plus the sections the verifier consumes."""

    metadata: Dict[str, Any]
    deliverables: List[str] = field(default_factory=list)
    verification_commands: List[str] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "DefinitionOfDone":
        """Parse a full DoD document.

        Raises:
            DodParseError: If the front matter is missing or malformed
        """
        metadata = parse_dod_metadata(text)
        if metadata is None:
            raise DodParseError("Could not parse DoD front matter")
        return cls(
            metadata=metadata,
            deliverables=extract_deliverables(text),
            verification_commands=extract_verification_commands(text),
        )

    @property
    def project_kind(self) -> Optional[str]:
        value = self.metadata.get("project_kind")
        return value or None

    @property
    def language(self) -> Optional[str]:
        value = self.metadata.get("language")
        return value or None

    @property
    def constraints(self) -> Dict[str, str]:
        """Constraint values, lowercased (`{"auth": "none", "db": "none"}`)."""
        raw = self.metadata.get("constraints")
        if not isinstance(raw, dict):
            return {}
        return {
            key: value.strip().lower()
            for key, value in raw.items()
            if isinstance(value, str)
        }
