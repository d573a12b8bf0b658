"""Running git commands and checking for Git LFS."""

import os
import shutil
import subprocess
import sys

from . import log

LFS_REQUIRED_FILE = ".lfs-required"
LFS_CONFIG_FILE = ".lfsconfig"

_LFS_HOOKS = frozenset({"post-checkout", "post-commit", "post-merge", "pre-push"})


class GitError(Exception):
    """A command failed to start or exited with a non-zero status."""

    def __init__(self, args, output="", returncode=None):
        self.command = list(args)
        self.output = output
        self.returncode = returncode
        if returncode is None:
            message = f"cannot run {' '.join(self.command)}"
        else:
            message = f"{' '.join(self.command)}: exit status {returncode}"
        super().__init__(message)


class OsExec:
    """Runs commands in the operating system with LEFTHOOK=0 set."""

    def cmd(self, cmd):
        """Run a space-separated command; return its trimmed output."""
        return self.cmd_args(*cmd.split(" "))

    def cmd_lines(self, cmd):
        """Run a shell command; return its output split by newline."""
        return self.raw_cmd(cmd).split("\n")

    def cmd_args(self, *args):
        """Run a command given as separate words; return its trimmed output."""
        return self._run(args).strip()

    def raw_cmd(self, cmd):
        """Run a shell command; return its output unprocessed."""
        if sys.platform == "win32":
            args = cmd.split(" ")
        else:
            args = ["sh", "-c", cmd]
        return self._run(args)

    def _run(self, args):
        log.debug("[lefthook] cmd: ", list(args))
        try:
            completed = subprocess.run(
                list(args),
                env={**os.environ, "LEFTHOOK": "0"},
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as exc:
            log.debug("[lefthook] err: ", exc)
            raise GitError(args) from exc

        output = completed.stdout.decode("utf-8", errors="replace")
        log.debug("[lefthook] out: ", output)
        if completed.returncode != 0:
            log.debug("[lefthook] err: exit status ", completed.returncode)
            raise GitError(args, output, completed.returncode)
        return output


def is_lfs_available():
    """Return True if git-lfs is installed."""
    return shutil.which("git-lfs") is not None


def is_lfs_hook(hook_name):
    """Return True if Git LFS handles the hook ``hook_name``."""
    return hook_name in _LFS_HOOKS