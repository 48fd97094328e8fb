"""
Output name computation.

Input patterns use `*` as a wildcard. Each wildcard becomes a capture group,
and each `*` in an output pattern receives the next captured text:

    substitute_output("trace-*.json", "trace-1.json", "out-*.html") -> "out-1.html"
"""

import re

WILDCARD = "*"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def pattern_to_regex(pattern: str) -> re.Pattern:
    """Compile an input pattern into an anchored regex with one group per `*`."""
    parts = [re.escape(p) for p in pattern.split(WILDCARD)]
    return re.compile("^" + "(.*)".join(parts) + "$")


def matches(pattern: str, name: str) -> bool:
    return pattern_to_regex(pattern).match(name) is not None


def slugify(name: str) -> str:
    """Make a filesystem-safe name out of an arbitrary key (e.g. a URL)."""
    slug = _UNSAFE_CHARS.sub("_", name.split("://", 1)[-1]).strip("_")
    return slug or "output"


def substitute_output(pattern: str, key: str, target: str) -> str:
    """
    Compute the output name for `key` (a concrete input name matching `pattern`).

    Only the part of the key matched by the pattern is replaced. Keys
    produced by splitting stages carry a suffix ("trace-1.json.123") that is
    kept after the substituted name, for literal targets too, so split
    values never share an output name.

    Args:
        pattern: The input pattern, e.g. "trace-*.json"
        key: The concrete name flowing through the pipeline, e.g. "trace-1.json"
        target: The output pattern, e.g. "out-*.html"

    Returns:
        The substituted output name
    """
    # Unanchored at the end so split keys keep their suffix
    regex = re.compile(pattern_to_regex(pattern).pattern[:-1])
    match = regex.match(key)
    if match:
        groups = list(match.groups()) or [slugify(match.group(0))]
        suffix = key[match.end():]
    else:
        groups, suffix = [slugify(key)], ""

    pieces = target.split(WILDCARD)
    result = [pieces[0]]
    for i, piece in enumerate(pieces[1:]):
        result.append(groups[min(i, len(groups) - 1)])
        result.append(piece)

    return "".join(result) + suffix
