"""Tokenizer for extra ``docker run`` flags supplied as a single string.

The grammar is POSIX word splitting only: whitespace separates words,
single and double quotes group them, and a backslash escapes the next
character. No shell is involved, so ``$VARS``, globs and command
substitution are passed through literally.
"""

from __future__ import annotations

import shlex

from docketeer.errors import ConfigurationError


def split_docker_run_args(value: str | None, label: str) -> list[str]:
    raw = str(value or "")
    if not raw.strip():
        return []
    try:
        return shlex.split(raw, comments=False, posix=True)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {label}: {raw!r} ({exc})") from exc
