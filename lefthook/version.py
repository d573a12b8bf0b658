"""Version information and the ``min_version`` check."""

import re

VERSION = "1.3.3"

# Set at build time to the commit hash, when known.
COMMIT = ""

_VERSION_RE = re.compile(
    r"(?P<major>\d+)(?:\.(?P<minor>\d+)(?:\.(?P<patch>\d+))?)?", re.ASCII
)


class VersionError(Exception):
    """Raised when a required version is malformed or not covered."""


def version(verbose=False):
    """Return the version string, with the commit hash when ``verbose``."""
    if verbose:
        return f"{VERSION} {COMMIT}"
    return VERSION


def _parse(text):
    match = _VERSION_RE.fullmatch(text)
    if match is None:
        raise VersionError("format of 'min_version' setting is incorrect")
    return tuple(int(match.group(part) or 0) for part in ("major", "minor", "patch"))


def check_covered(target_version):
    """Raise VersionError unless ``target_version`` is at most the current version.

    An empty target is always covered.
    """
    if not target_version:
        return
    target = _parse(target_version)
    if _parse(VERSION) < target:
        raise VersionError("required Lefthook version is higher than current")