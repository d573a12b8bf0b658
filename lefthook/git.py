"""A git repository: its paths, file lists, unstaged-change backups, remotes and state."""

import os
import re
import stat
from dataclasses import dataclass, field

from . import log
from .gitexec import GitError

_CMD_ROOT_PATH = "git rev-parse --show-toplevel"
_CMD_HOOKS_PATH = "git rev-parse --git-path hooks"
_CMD_INFO_PATH = "git rev-parse --git-path info"
_CMD_GIT_PATH = "git rev-parse --git-dir"
_CMD_STAGED_FILES = "git diff --name-only --cached --diff-filter=ACMR"
_CMD_ALL_FILES = "git ls-files --cached"
_CMD_PUSH_FILES_BASE = "git diff --name-only HEAD @{push}"
_CMD_REMOTE_BRANCHES = "git branch --remotes"
_CMD_STATUS_SHORT = "git status --short"
_CMD_CREATE_STASH = "git stash create"
_CMD_LIST_STASH = "git stash list"

STASH_MESSAGE = "lefthook auto backup"
UNSTAGED_PATCH_NAME = "lefthook-unstaged.patch"
REMOTES_FOLDER = "lefthook-remotes"

_INFO_DIR_MODE = 0o775
_REMOTES_FOLDER_MODE = 0o755
_MIN_STATUS_LEN = 3

NIL_STEP = ""
MERGE_STEP = "merge"
REBASE_STEP = "rebase"

_HEAD_BRANCH_RE = re.compile(r"HEAD -> (?P<name>.*)$")
_REF_BRANCH_RE = re.compile(r"^ref:\s*refs/heads/(.+)$")
_STASH_RE = re.compile(r"^(?P<stash>[^ ]+):\s*" + STASH_MESSAGE)


@dataclass(frozen=True)
class State:
    """The current branch and the operation in progress (merge, rebase or none)."""

    branch: str = ""
    step: str = NIL_STEP


def _exists(path):
    """True unless stat reports that the path does not exist."""
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError:
        return True
    return True


def _extension(path):
    """The suffix from the last dot of the final path element, dot included."""
    tail = path.rsplit(os.sep, 1)[-1]
    dot = tail.rfind(".")
    return tail[dot:] if dot >= 0 else ""


def _base(path):
    """The last element of a path, ignoring trailing separators."""
    if not path:
        return "."
    stripped = path.rstrip(os.sep)
    if not stripped:
        return os.sep
    return os.path.basename(stripped)


def _remote_name(url):
    ext = _extension(url)
    trimmed = url[: -len(ext)] if ext else url
    return _base(trimmed)


@dataclass
class Repository:
    """A git repository and the commands run against it."""

    git: object = None
    hooks_path: str = ""
    root_path: str = ""
    git_path: str = ""
    info_path: str = ""
    _head_branch: str = field(default="", init=False, repr=False, compare=False)

    @classmethod
    def discover(cls, git):
        """Locate the repository through ``git``; raise if git is not initialised."""
        root_path = git.cmd(_CMD_ROOT_PATH)

        hooks_path = git.cmd(_CMD_HOOKS_PATH)
        if os.path.isdir(os.path.join(root_path, hooks_path)):
            hooks_path = os.path.join(root_path, hooks_path)

        info_path = os.path.normpath(git.cmd(_CMD_INFO_PATH))
        if not os.path.isdir(info_path):
            os.mkdir(info_path, _INFO_DIR_MODE)

        git_path = git.cmd(_CMD_GIT_PATH)
        if not os.path.isabs(git_path):
            git_path = os.path.join(root_path, git_path)

        return cls(
            git=git,
            hooks_path=hooks_path,
            root_path=root_path,
            git_path=git_path,
            info_path=info_path,
        )

    @property
    def unstaged_patch_path(self):
        return os.path.join(self.info_path, UNSTAGED_PATCH_NAME)

    def staged_files(self):
        """Files staged for commit."""
        return self.files_by_command(_CMD_STAGED_FILES)

    def all_files(self):
        """All files tracked in the repository."""
        return self.files_by_command(_CMD_ALL_FILES)

    def push_files(self):
        """Files that differ from the push target, falling back to the remote HEAD."""
        try:
            return self.files_by_command(_CMD_PUSH_FILES_BASE)
        except (GitError, OSError):
            pass

        if not self._head_branch:
            for branch in self.git.cmd_lines(_CMD_REMOTE_BRANCHES):
                match = _HEAD_BRANCH_RE.search(branch)
                if match:
                    self._head_branch = match["name"]
                    break

        return self.files_by_command(f"git diff --name-only HEAD {self._head_branch}")

    def partially_staged_files(self):
        """Files that have both staged and unstaged changes."""
        partially_staged = []
        for line in self.git.cmd_lines(_CMD_STATUS_SHORT):
            if len(line) < _MIN_STATUS_LEN:
                continue

            index, working_tree = line[0], line[1]
            filename = line[3:]
            arrow = filename.find("->")
            if arrow != -1:
                filename = filename[arrow + 3:]

            if index not in " ?" and working_tree not in " ?" and filename:
                partially_staged.append(filename)

        return partially_staged

    def save_unstaged(self, files):
        """Write the unstaged changes of ``files`` to a patch file."""
        self.git.cmd_args(
            "git",
            "diff",
            "--binary",
            "--unified=0",
            "--no-color",
            "--no-ext-diff",
            "--src-prefix=a/",
            "--dst-prefix=b/",
            "--patch",
            "--submodule=short",
            "--output",
            self.unstaged_patch_path,
            "--",
            *files,
        )

    def hide_unstaged(self, files):
        """Discard the working-tree changes of ``files``."""
        self.git.cmd_args("git", "checkout", "--force", "--", *files)

    def restore_unstaged(self):
        """Apply the saved patch, if any, and remove it."""
        if not _exists(self.unstaged_patch_path):
            return

        self.git.cmd_args(
            "git",
            "apply",
            "-v",
            "--whitespace=nowarn",
            "--recount",
            "--unidiff-zero",
            self.unstaged_patch_path,
        )
        os.remove(self.unstaged_patch_path)

    def stash_unstaged(self):
        """Store a backup stash of the current changes."""
        stash_hash = self.git.cmd(_CMD_CREATE_STASH)
        self.git.cmd_args(
            "git", "stash", "store", "--quiet", "--message", STASH_MESSAGE, stash_hash
        )

    def drop_unstaged_stash(self):
        """Drop every backup stash made by ``stash_unstaged``, newest last."""
        for line in reversed(self.git.cmd_lines(_CMD_LIST_STASH)):
            match = _STASH_RE.match(line)
            if match and match["stash"]:
                self.git.cmd_args("git", "stash", "drop", "--quiet", match["stash"])

    def files_by_command(self, command):
        """Run ``command`` and return the regular files among its output lines."""
        return [
            name
            for name in (line.strip() for line in self.git.cmd_lines(command))
            if name and self._is_file(name)
        ]

    @staticmethod
    def _is_file(path):
        try:
            info = os.stat(path)
        except FileNotFoundError:
            return False
        return not stat.S_ISDIR(info.st_mode)

    def remote_folder(self, url):
        """Where the remote repository at ``url`` is cloned."""
        return os.path.join(self.remotes_folder(), _remote_name(url))

    def remotes_folder(self):
        """The folder holding all cloned remote config repositories."""
        return os.path.join(self.info_path, REMOTES_FOLDER)

    def sync_remote(self, url, ref):
        """Clone the remote config repository, or update it if already cloned."""
        remotes_path = self.remotes_folder()
        os.makedirs(remotes_path, _REMOTES_FOLDER_MODE, exist_ok=True)

        remote_path = os.path.join(remotes_path, _remote_name(url))
        try:
            os.stat(remote_path)
        except OSError:
            self._clone_remote(remotes_path, url, ref)
        else:
            self._update_remote(remote_path, ref)

    def _update_remote(self, path, ref):
        log.debug(f"Updating remote config repository: {path}")
        if ref:
            self.git.cmd_args(
                "git", "-C", path, "fetch", "--quiet", "--depth", "1", "origin", ref
            )
            self.git.cmd_args("git", "-C", path, "checkout", "FETCH_HEAD")
        else:
            self.git.cmd_args("git", "-C", path, "pull", "--quiet")

    def _clone_remote(self, path, url, ref):
        log.debug(f"Cloning remote config repository: {path}")
        command = ["git", "-C", path, "clone", "--quiet", "--depth", "1"]
        if ref:
            command += ["--branch", ref]
        command.append(url)
        self.git.cmd_args(*command)

    def state(self):
        """The current branch and whether a merge or rebase is in progress."""
        branch = self.branch()
        if self._is_merge_state():
            return State(branch, MERGE_STEP)
        if self._is_rebase_state():
            return State(branch, REBASE_STEP)
        return State(branch, NIL_STEP)

    def branch(self):
        """The branch HEAD points to, or an empty string."""
        try:
            with open(os.path.join(self.git_path, "HEAD"), encoding="utf-8") as head:
                text = head.read()
        except (OSError, UnicodeDecodeError):
            return ""

        for line in text.splitlines():
            match = _REF_BRANCH_RE.search(line)
            if match:
                return match[1]
        return ""

    def _is_merge_state(self):
        return _exists(os.path.join(self.git_path, "MERGE_HEAD"))

    def _is_rebase_state(self):
        return _exists(os.path.join(self.git_path, "rebase-merge")) or _exists(
            os.path.join(self.git_path, "rebase-apply")
        )