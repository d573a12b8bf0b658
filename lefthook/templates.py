"""Contents of generated files: hook scripts, the default config, checksums."""

import sys

_CONFIG = """\
# Configuration of git hooks.
#
# Example:
#
# pre-push:
#   commands:
#     packages-audit:
#       tags: frontend security
#       run: yarn audit
#
# pre-commit:
#   parallel: true
#   commands:
#     eslint:
#       glob: "*.{js,ts,jsx,tsx}"
#       run: yarn eslint {staged_files}
#     rubocop:
#       tags: backend style
#       glob: "*.rb"
#       exclude: "application.rb|routes.rb"
#       run: bundle exec rubocop --force-exclusion {all_files}
#   scripts:
#     "hello.js":
#       runner: node
"""


def _extension():
    return ".exe" if sys.platform == "win32" else ""


def hook(hook_name, rc):
    """Return the script installed as the git hook ``hook_name``."""
    executable = f"lefthook{_extension()}"
    rc_line = f'[ -f "{rc}" ] && . "{rc}"\n\n' if rc else ""
    script = (
        "#!/bin/sh\n"
        "\n"
        'if [ "$LEFTHOOK_VERBOSE" = "1" -o "$LEFTHOOK_VERBOSE" = "true" ]; then\n'
        "  set -x\n"
        "fi\n"
        "\n"
        'if [ "$LEFTHOOK" = "0" -o "$LEFTHOOK" = "false" ]; then\n'
        "  exit 0\n"
        "fi\n"
        "\n"
        f"{rc_line}"
        f"if ! command -v {executable} >/dev/null 2>&1; then\n"
        f'  echo "Can\'t find {executable} in PATH" >&2\n'
        "  exit 1\n"
        "fi\n"
        "\n"
        f'{executable} run "{hook_name}" "$@"\n'
    )
    return script.encode()


def config():
    """Return the default configuration file written on install."""
    return _CONFIG.encode()


def checksum(checksum, timestamp):
    """Return the contents of the checksum file."""
    return f"{checksum} {timestamp}\n".encode()