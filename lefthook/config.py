"""Configuration model: hooks, commands, scripts, remotes and skip rules."""

from dataclasses import dataclass, field

from .version import check_covered

CHECKSUM_FILE_NAME = "lefthook.checksum"
GHOST_HOOK_NAME = "prepare-commit-msg"

DEFAULT_CONFIG_NAME = "lefthook.yml"
DEFAULT_SOURCE_DIR = ".lefthook"
DEFAULT_SOURCE_DIR_LOCAL = ".lefthook-local"
DEFAULT_COLORS_ENABLED = True

CMD = "{cmd}"

SUB_FILES = "{files}"
SUB_ALL_FILES = "{all_files}"
SUB_STAGED_FILES = "{staged_files}"
PUSH_FILES = "{push_files}"

AVAILABLE_HOOKS = (
    "pre-applypatch",
    "applypatch-msg",
    "post-applypatch",
    "commit-msg",
    "fsmonitor-watchman",
    "p4-changelist",
    "p4-post-changelist",
    "p4-pre-submit",
    "p4-prepare-changelist",
    "pre-commit",
    "post-commit",
    "pre-receive",
    "proc-receive",
    "post-receive",
    "post-merge",
    "pre-rebase",
    "rebase",
    "update",
    "post-update",
    "post-rewrite",
    "post-checkout",
    "post-index-change",
    "pre-auto-gc",
    "pre-merge-commit",
    "pre-push",
    "prepare-commit-msg",
    "push-to-checkout",
    "reference-transaction",
    "sendemail-validate",
)


class ConfigError(Exception):
    """The configuration is invalid."""


def hook_uses_staged_files(hook):
    """Whether the hook works on staged files."""
    return hook == "pre-commit"


def hook_available(hook):
    """Whether ``hook`` is a git hook name."""
    return hook in AVAILABLE_HOOKS


def is_runner_files_compatible(runner):
    """Staged files and push files cannot be used in one command."""
    return not (SUB_STAGED_FILES in runner and PUSH_FILES in runner)


def is_skip(git_state, value):
    """Evaluate a ``skip`` setting against the repository state."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value == git_state.step
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item == git_state.step:
                return True
            if isinstance(item, dict) and item.get("ref") == git_state.branch:
                return True
    return False


@dataclass
class Remote:
    """A remote repository holding a shared configuration."""

    git_url: str = ""
    ref: str = ""
    config: str = ""

    def configured(self):
        return bool(self.git_url)


@dataclass
class Command:
    """A command run by a hook."""

    run: str = ""
    skip: object = None
    tags: list = field(default_factory=list)
    glob: str = ""
    files: str = ""
    env: dict = field(default_factory=dict)
    root: str = ""
    exclude: str = ""
    fail_text: str = ""
    interactive: bool = False

    def validate(self):
        if not is_runner_files_compatible(self.run):
            raise ConfigError("One of your runners contains incompatible file types")

    def do_skip(self, git_state):
        return self.skip is not None and is_skip(git_state, self.skip)


@dataclass
class Script:
    """A script file run by a hook."""

    runner: str = ""
    skip: object = None
    tags: list = field(default_factory=list)
    env: dict = field(default_factory=dict)
    fail_text: str = ""
    interactive: bool = False

    def do_skip(self, git_state):
        return self.skip is not None and is_skip(git_state, self.skip)


@dataclass
class Hook:
    """A group of commands and scripts run for one git hook."""

    commands: dict = field(default_factory=dict)
    scripts: dict = field(default_factory=dict)
    files: str = ""
    parallel: bool = False
    piped: bool = False
    exclude_tags: list = field(default_factory=list)
    skip: object = None
    follow: bool = False

    def validate(self):
        if self.parallel and self.piped:
            raise ConfigError(
                "conflicting options 'piped' and 'parallel' are set to 'true', "
                "remove one of this option from hook group"
            )

    def do_skip(self, git_state):
        return self.skip is not None and is_skip(git_state, self.skip)


@dataclass
class Config:
    """The whole, merged configuration."""

    colors: bool = DEFAULT_COLORS_ENABLED
    extends: list = field(default_factory=list)
    remote: Remote = field(default_factory=Remote)
    min_version: str = ""
    skip_output: list = field(default_factory=list)
    source_dir: str = DEFAULT_SOURCE_DIR
    source_dir_local: str = DEFAULT_SOURCE_DIR_LOCAL
    rc: str = ""
    no_tty: bool = False
    hooks: dict = field(default_factory=dict)

    def validate(self):
        """Raise VersionError if ``min_version`` is not covered."""
        check_covered(self.min_version)