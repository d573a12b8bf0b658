"""Filters applied to file lists before they are substituted into commands."""

import re


def _glob_to_regex(pattern):
    """Translate a glob without path separators into a regular expression.

    ``*`` and ``**`` match any text, ``?`` any single character, ``[...]``
    and ``[!...]`` character classes, ``{a,b}`` alternatives, ``\\`` escapes.
    """
    parts = []
    depth = 0
    pos = 0
    end = len(pattern)
    while pos < end:
        char = pattern[pos]
        if char == "\\" and pos + 1 < end:
            parts.append(re.escape(pattern[pos + 1]))
            pos += 2
            continue
        if char == "*":
            while pos + 1 < end and pattern[pos + 1] == "*":
                pos += 1
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            close = pattern.find("]", pos + 1)
            if close == -1:
                raise ValueError(f"unclosed character class in glob: {pattern!r}")
            body = pattern[pos + 1:close]
            negate = body.startswith("!")
            if negate:
                body = body[1:]
            if not body:
                raise ValueError(f"empty character class in glob: {pattern!r}")
            escaped = "".join(c if c == "-" else re.escape(c) for c in body)
            parts.append(f"[{'^' if negate else ''}{escaped}]")
            pos = close
        elif char == "{":
            depth += 1
            parts.append("(?:")
        elif char == "}" and depth:
            depth -= 1
            parts.append(")")
        elif char == "," and depth:
            parts.append("|")
        else:
            parts.append(re.escape(char))
        pos += 1
    if depth:
        raise ValueError(f"unclosed alternative in glob: {pattern!r}")
    return "".join(parts)


def filter_glob(files, matcher):
    """Keep files matching the glob ``matcher``, ignoring case."""
    if not matcher:
        return files
    regex = re.compile(_glob_to_regex(matcher.lower()), re.DOTALL)
    return [name for name in files if regex.fullmatch(name.lower())]


def filter_exclude(files, matcher):
    """Drop files in which the regular expression ``matcher`` is found.

    An invalid expression excludes nothing.
    """
    if not matcher:
        return files
    try:
        regex = re.compile(matcher)
    except re.error:
        return list(files)
    return [name for name in files if not regex.search(name)]


def filter_relative(files, matcher):
    """Keep files under the prefix ``matcher``, rewriting it to ``./``."""
    if not matcher:
        return files
    return ["./" + name[len(matcher):] for name in files if name.startswith(matcher)]