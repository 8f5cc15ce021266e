"""
Config file parsing, deduplication and line editing

Pure functions over text; nothing here touches the network.

File format: one ``key=value`` per line, ``#`` comments and blank lines
ignored, the last occurrence of a duplicated key wins.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .models import Parameter, format_value

_NUMERIC_CHARS = frozenset("0123456789.-+eE")
_WHITESPACE = " \t\r"


# ============================================================
# Line Helpers
# ============================================================

def split_lines(content: str) -> List[str]:
    """Split on newlines; a trailing newline does not produce an empty last line"""
    if not content:
        return []
    lines = content.split("\n")
    if content.endswith("\n"):
        lines.pop()
    return lines


def render_lines(lines: Sequence[str]) -> str:
    """Join lines, terminating every line with a newline"""
    return "".join(f"{line}\n" for line in lines)


def is_blank(line: str) -> bool:
    return not line.strip(" \t\r\n")


def line_key(line: str) -> Optional[str]:
    """
    Key of a ``key=value`` line, or None for blank, comment and other lines.
    """
    trimmed = line.lstrip(" \t")
    if not trimmed or trimmed.startswith("#"):
        return None
    if "=" not in trimmed:
        return None
    key = trimmed.split("=", 1)[0].strip(_WHITESPACE)
    return key or None


def parse_numeric(raw: str) -> Optional[float]:
    """
    Parse a value restricted to ``[0-9.+-eE]`` that must be finite.

    Returns None for anything else (``nan``, ``inf``, ``1,5``, ``0x10``...).
    """
    raw = raw.strip(_WHITESPACE)
    if not raw or any(c not in _NUMERIC_CHARS for c in raw):
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_line(line: str) -> Optional[Tuple[str, float]]:
    """Return ``(key, value)`` for a valid assignment line, else None"""
    key = line_key(line)
    if key is None:
        return None
    value = parse_numeric(line.split("=", 1)[1])
    if value is None:
        return None
    return key, value


# ============================================================
# Parse and Dedup
# ============================================================

@dataclass
class ParseResult:
    """Outcome of parsing one file image"""
    values: Dict[str, float] = field(default_factory=dict)
    last_index: Dict[str, int] = field(default_factory=dict)
    lines: List[str] = field(default_factory=list)
    content: str = ""

    @property
    def known_values(self) -> Dict[Parameter, float]:
        """Values of recognised parameters only"""
        known = {}
        for name, value in self.values.items():
            try:
                known[Parameter(name)] = value
            except ValueError:
                continue
        return known

    @property
    def parsed_params(self) -> Set[Parameter]:
        return set(self.known_values)


def parse_config(content: str) -> ParseResult:
    """
    Parse file content and build its deduplicated form.

    Two passes: the first records the value and index of the last valid
    occurrence of every key; the second keeps only that occurrence,
    leaving comments and non-matching lines in place. Trailing blank
    lines are dropped and a non-empty result ends in exactly one newline.

    Args:
        content: Raw file content

    Returns:
        ParseResult with final values and the deduplicated content
    """
    lines = split_lines(content)
    result = ParseResult()

    for i, line in enumerate(lines):
        parsed = parse_line(line)
        if parsed is None:
            continue
        key, value = parsed
        result.values[key] = value
        result.last_index[key] = i

    deduped: List[str] = []
    for i, line in enumerate(lines):
        parsed = parse_line(line)
        if parsed is not None and result.last_index[parsed[0]] != i:
            continue
        deduped.append(line)

    while deduped and is_blank(deduped[-1]):
        deduped.pop()

    result.lines = deduped
    result.content = render_lines(deduped)
    return result


# ============================================================
# Editing
# ============================================================

@dataclass
class EditResult:
    """Lines after applying a batch of updates"""
    lines: List[str]
    written: Dict[Parameter, float] = field(default_factory=dict)
    removed: Set[Parameter] = field(default_factory=set)
    appended: Set[Parameter] = field(default_factory=set)

    @property
    def content(self) -> str:
        return render_lines(self.lines)


def apply_updates(lines: Sequence[str], updates: Sequence[Tuple[Parameter, float]]) -> EditResult:
    """
    Apply parameter writes to a file image.

    For each update the first line whose key matches is replaced, or a new
    line is appended. A NaN for an optional parameter removes every line
    for that key instead of writing ``nan``.

    Args:
        lines: Current file lines
        updates: (parameter, value) pairs, applied in order

    Returns:
        EditResult with the new lines and what changed
    """
    result = EditResult(lines=list(lines))

    for param, value in updates:
        name = param.value

        if param.optional and math.isnan(value):
            result.lines = [line for line in result.lines if line_key(line) != name]
            result.removed.add(param)
            result.written.pop(param, None)
            result.appended.discard(param)
            continue

        new_line = f"{name}={format_value(value)}"
        for i, line in enumerate(result.lines):
            if line_key(line) == name:
                result.lines[i] = new_line
                break
        else:
            result.lines.append(new_line)
            result.appended.add(param)

        result.written[param] = value
        result.removed.discard(param)

    return result


def append_missing(lines: Sequence[str], params: Sequence[Parameter], value: float) -> List[str]:
    """Append ``name=value`` for each parameter"""
    out = list(lines)
    for param in params:
        out.append(f"{param.value}={format_value(value)}")
    return out
