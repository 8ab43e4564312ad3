"""Render an installer template file with a fresh UUID."""

from __future__ import annotations

import re
import sys
import uuid
from typing import Optional, Sequence

_ACTION = re.compile(r"(\s*)\{\{(-?)(.*?)(-?)\}\}(\s*)", re.DOTALL)


class TemplateError(ValueError):
    """Raised when a template holds an action other than the dot."""


def render_template(text: str, value) -> str:
    """Replace every ``{{.}}`` action in ``text`` with ``str(value)``.

    Trim markers (``{{-`` and ``-}}``) remove adjacent whitespace and
    ``{{/* ... */}}`` comments are dropped.
    """

    def substitute(match: "re.Match[str]") -> str:
        before, left_trim, body, right_trim, after = match.groups()
        # A trim marker must be set off from the action by a space.
        if left_trim and body[:1] not in (" ", "\t", "\n", "\r"):
            body, left_trim = "-" + body, ""
        if right_trim and body[-1:] not in (" ", "\t", "\n", "\r"):
            body, right_trim = body + "-", ""
        action = body.strip()
        if action.startswith("/*") and action.endswith("*/"):
            replacement = ""
        elif action == ".":
            replacement = str(value)
        else:
            raise TemplateError(f"unsupported template action: {{{{{body}}}}}")
        return ("" if left_trim else before) + replacement + ("" if right_trim else after)

    return _ACTION.sub(substitute, text)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Render the template file named by the first argument to standard output."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("usage: wxsgen TEMPLATE", file=sys.stderr)
        return 1
    try:
        with open(args[0], encoding="utf-8") as handle:
            text = handle.read()
        sys.stdout.write(render_template(text, uuid.uuid4()))
    except (OSError, TemplateError) as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0