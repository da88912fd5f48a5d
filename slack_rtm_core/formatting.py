"""
Text formatting helpers - render Slack's wire markup as plain text.

Slack escapes ``<``, ``>`` and ``&`` and wraps references in angle brackets:
``<@U123>`` (user), ``<#C123>`` (channel), ``<http://x>`` (link), each with an
optional ``|label``.
"""

import re
from typing import Optional

from .directory import Directory

# A reference token never contains whitespace before the optional label,
# so literal text such as "< test >" is left alone.
REFERENCE = re.compile(r"<([@#!]?)([^\s<>|]+)(?:\|([^<>]*))?>")

SPECIAL_MENTIONS = {"here", "channel", "everyone"}


def unescape(text: str) -> str:
    """Decode the three entities Slack escapes."""
    return text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")


def _render(match: re.Match, directory: Optional[Directory]) -> str:
    sigil, target, label = match.groups()

    if sigil in ("@", "#"):
        entry = directory.get(target) if directory else None
        name = entry.get("name") if entry else None
        if name:
            return f"{sigil}{name}"
        if label:
            return label if label.startswith(sigil) else f"{sigil}{label}"
        return match.group(0)

    if sigil == "!":
        if target in SPECIAL_MENTIONS:
            return f"@{target}"
        return label or match.group(0)

    return label or target


def preformat(text: str, directory: Optional[Directory] = None) -> str:
    """
    Render wire text for display.

    User and channel references become ``@name`` / ``#name`` via the
    directory, links become their URL, and escapes are decoded. References
    that cannot be resolved are left verbatim.
    """
    if not text:
        return text
    rendered = REFERENCE.sub(lambda m: _render(m, directory), text)
    return unescape(rendered)
