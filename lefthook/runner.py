"""Running the commands and scripts of a hook and collecting their results."""

import enum
import io
import os
import re
import shlex
import stat
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field

from . import log
from .config import (
    PUSH_FILES,
    SUB_ALL_FILES,
    SUB_FILES,
    SUB_STAGED_FILES,
    ConfigError,
    hook_uses_staged_files,
)
from .executor import CommandExecutor, ExecuteOptions
from .filters import filter_exclude, filter_glob, filter_relative
from .gitexec import (
    LFS_CONFIG_FILE,
    LFS_REQUIRED_FILE,
    GitError,
    is_lfs_available,
    is_lfs_hook,
)
from .log import SkipSettings

EXECUTABLE_FILE_MODE = 0o751
EXECUTABLE_MASK = 0o111

_SURROUNDING_QUOTES_RE = re.compile(r"'(.*)'")


class Status(enum.IntEnum):
    """Outcome of a command or script."""

    OK = 0
    ERR = 1


@dataclass(frozen=True)
class Result:
    """The outcome of one command or script."""

    name: str
    status: Status
    text: str = ""


class _Skipped(Exception):
    """A command or script is not run; the message is the reason."""


class _BuildError(Exception):
    """The command line could not be built."""


class _LFSError(Exception):
    """The Git LFS hook failed or Git LFS is missing."""


@contextmanager
def _batch(parallel):
    """Yield a function that runs a job now, or in a thread pool when parallel."""
    if not parallel:
        yield lambda fn, *args: fn(*args)
        return
    futures = []
    with ThreadPoolExecutor() as pool:
        yield lambda fn, *args: futures.append(pool.submit(fn, *args))
    for future in futures:
        future.result()


def intersect(a, b):
    """Whether the two sequences share at least one element."""
    return not set(a or ()).isdisjoint(b or ())


def _unquote(name):
    match = _SURROUNDING_QUOTES_RE.fullmatch(name)
    return match[1] if match else name


def replace_quoted(source, substitution, files):
    """Replace ``substitution`` in ``source`` with the files, keeping its quotes."""
    for quote in ('"', "'", ""):
        sub = f"{quote}{substitution}{quote}"
        if sub not in source:
            continue
        if quote:
            quoted = [f"{quote}{_unquote(name)}{quote}" for name in files]
        else:
            quoted = list(files)
        source = source.replace(sub, " ".join(quoted))
    return source


def _prepare_files(command, files):
    if not files:
        return []
    log.debug("[lefthook] files before filters:\n", files)
    files = filter_glob(files, command.glob)
    files = filter_exclude(files, command.exclude)
    files = filter_relative(files, command.root)
    log.debug("[lefthook] files after filters:\n", files)
    escaped = [shlex.quote(name) for name in files if name]
    log.debug("[lefthook] files after escaping:\n", escaped)
    return escaped


def _log_skip(name, reason):
    log.info(f"{log.bold(name)}: {log.gray('(skip)')} {log.yellow(reason)}")


@dataclass
class Runner:
    """Runs the commands and scripts of one hook."""

    repo: object
    hook: object
    hook_name: str
    git_args: list = field(default_factory=list)
    skip_settings: SkipSettings = field(default_factory=SkipSettings)
    disable_tty: bool = False
    executor: object = field(default_factory=CommandExecutor)

    def __post_init__(self):
        self._lock = threading.Lock()
        self._results = []
        self._failed = threading.Event()
        self.partially_staged_files = []

    def run_all(self, source_dirs):
        """Run the LFS hook, then scripts from ``source_dirs``, then commands.

        Returns the results in the order they finished.
        """
        with self._lock:
            self._results = []
        self._failed.clear()

        try:
            self._run_lfs_hook()
        except (_LFSError, OSError) as exc:
            log.error(exc)

        if self.hook.skip is not None and self.hook.do_skip(self.repo.state()):
            _log_skip(self.hook_name, "hook setting")
            return self.results

        use_spinner = not self.disable_tty and not self.hook.follow
        if use_spinner:
            log.start_spinner()
        try:
            self._pre_hook()
            for directory in source_dirs:
                self._run_scripts(os.path.join(directory, self.hook_name))
            self._run_commands()
            self._post_hook()
        finally:
            if use_spinner:
                log.stop_spinner()

        return self.results

    @property
    def results(self):
        with self._lock:
            return list(self._results)

    def _fail(self, name, text):
        with self._lock:
            self._results.append(Result(name, Status.ERR, text))
        self._failed.set()

    def _success(self, name):
        with self._lock:
            self._results.append(Result(name, Status.OK))

    def _run_lfs_hook(self):
        if not is_lfs_hook(self.hook_name):
            return

        required_file = os.path.join(self.repo.root_path, LFS_REQUIRED_FILE)
        config_file = os.path.join(self.repo.root_path, LFS_CONFIG_FILE)
        required = os.path.exists(required_file) or os.path.exists(config_file)

        if is_lfs_available():
            log.debug(
                f"[git-lfs] executing hook: git lfs {self.hook_name} "
                f"{' '.join(self.git_args)}"
            )
            out = io.StringIO()
            error = None
            try:
                self.executor.raw_execute(
                    ["git", "lfs", self.hook_name, *self.git_args], out
                )
            except Exception as exc:
                error = exc

            output = out.getvalue().strip("\n")
            if output:
                log.debug("[git-lfs] output: ", output)
            if error is not None:
                log.debug("[git-lfs] error: ", error)
            if error is None and output:
                log.info(output)
            if error is not None and required:
                log.warn(f"git-lfs command failed: {output}\n")
                raise _LFSError(str(error)) from error
            return

        if required:
            log.error(
                "This Repository requires Git LFS, but 'git-lfs' wasn't found.\n"
                "Install 'git-lfs' or consider reviewing the files:\n"
                f"  - {required_file}\n"
                f"  - {config_file}\n"
            )
            raise _LFSError("git-lfs is required")

    def _pre_hook(self):
        if not hook_uses_staged_files(self.hook_name):
            return

        try:
            files = self.repo.partially_staged_files()
        except (GitError, OSError) as exc:
            log.warn(f"Couldn't find partially staged files: {exc}\n")
            return
        if not files:
            return

        log.debug("[lefthook] saving partially staged files")
        self.partially_staged_files = files

        steps = (
            (self.repo.save_unstaged, (files,), "Couldn't save unstaged changes"),
            (self.repo.stash_unstaged, (), "Couldn't stash partially staged files"),
            (self.repo.hide_unstaged, (files,), "Couldn't hide unstaged files"),
        )
        for step, args, message in steps:
            try:
                step(*args)
            except (GitError, OSError) as exc:
                log.warn(f"{message}: {exc}\n")
                return

        log.debug(f"[lefthook] hide partially staged files: {files}\n")

    def _post_hook(self):
        try:
            self.repo.restore_unstaged()
        except (GitError, OSError) as exc:
            log.warn(f"Couldn't restore hidden unstaged files: {exc}\n")
            return
        try:
            self.repo.drop_unstaged_stash()
        except (GitError, OSError) as exc:
            log.warn(f"Couldn't remove unstaged files backup: {exc}\n")

    def _run_scripts(self, directory):
        try:
            with os.scandir(directory) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError:
            return
        if not entries:
            return

        scripts = self.hook.scripts or {}
        interactive = []
        with _batch(self.hook.parallel) as submit:
            for entry in entries:
                script = scripts.get(entry.name)
                if script is None:
                    _log_skip(entry.name, "not specified in config file")
                    continue
                if self._failed.is_set() and self.hook.piped:
                    _log_skip(entry.name, "broken pipe")
                    continue
                if script.interactive:
                    interactive.append(entry)
                    continue
                submit(self._run_script, script, entry)

        for entry in interactive:
            if self._failed.is_set():
                _log_skip(entry.name, "non-interactive scripts failed")
                continue
            self._run_script(scripts[entry.name], entry)

    def _run_script(self, script, entry):
        try:
            args = self._prepare_script(script, entry)
        except _Skipped as skipped:
            _log_skip(entry.name, str(skipped))
            return

        opts = ExecuteOptions(
            name=entry.name,
            root=self.repo.root_path,
            args=args,
            fail_text=script.fail_text,
            interactive=script.interactive and not self.disable_tty,
            env=script.env,
        )
        self._run_paused(opts, script.interactive)

    def _prepare_script(self, script, entry):
        if script.skip is not None and script.do_skip(self.repo.state()):
            raise _Skipped("settings")
        if intersect(self.hook.exclude_tags, script.tags):
            raise _Skipped("excluded tags")

        try:
            info = entry.stat(follow_symlinks=False)
        except OSError:
            raise _Skipped("not a regular file") from None
        if not stat.S_ISREG(info.st_mode):
            log.debug(f"[lefthook] file {entry.name} is not a regular file, skipping")
            raise _Skipped("not a regular file")

        if info.st_mode & EXECUTABLE_MASK == 0:
            try:
                os.chmod(entry.path, EXECUTABLE_FILE_MODE)
            except OSError as exc:
                log.error(f"Couldn't change file mode to make file executable: {exc}")
                self._fail(entry.name, "")
                raise _Skipped("system error") from None

        args = script.runner.split(" ") if script.runner else []
        return [*args, entry.path, *self.git_args]

    def _run_commands(self):
        commands = self.hook.commands or {}
        interactive = []
        with _batch(self.hook.parallel) as submit:
            for name in sorted(commands):
                if self._failed.is_set() and self.hook.piped:
                    _log_skip(name, "broken pipe")
                    continue
                if commands[name].interactive:
                    interactive.append(name)
                    continue
                submit(self._run_command, name, commands[name])

        for name in interactive:
            if self._failed.is_set():
                _log_skip(name, "non-interactive commands failed")
                continue
            self._run_command(name, commands[name])

    def _run_command(self, name, command):
        try:
            args = self._prepare_command(name, command)
        except _Skipped as skipped:
            _log_skip(name, str(skipped))
            return

        opts = ExecuteOptions(
            name=name,
            root=os.path.join(self.repo.root_path, command.root),
            args=args,
            fail_text=command.fail_text,
            interactive=command.interactive and not self.disable_tty,
            env=command.env,
        )
        self._run_paused(opts, command.interactive)

    def _prepare_command(self, name, command):
        if command.skip is not None and command.do_skip(self.repo.state()):
            raise _Skipped("settings")
        if intersect(self.hook.exclude_tags, command.tags):
            raise _Skipped("tags")
        if intersect(self.hook.exclude_tags, [name]):
            raise _Skipped("name")

        try:
            command.validate()
        except ConfigError:
            self._fail(name, "")
            raise _Skipped("invalid config") from None

        try:
            args = self._build_command_args(command)
        except _BuildError as exc:
            log.error(exc)
            raise _Skipped("error") from None
        if not args:
            raise _Skipped("no files for inspection")
        return args

    def _build_command_args(self, command):
        files_command = command.files or self.hook.files

        sources = (
            (SUB_STAGED_FILES, self.repo.staged_files),
            (PUSH_FILES, self.repo.push_files),
            (SUB_ALL_FILES, self.repo.all_files),
            (SUB_FILES, lambda: self.repo.files_by_command(files_command)),
        )

        run_string = command.run
        for files_type, files_fn in sources:
            wanted = files_type in run_string or (
                files_command and files_type == SUB_FILES
            )
            if not wanted:
                continue
            try:
                files = files_fn()
            except (GitError, OSError) as exc:
                raise _BuildError(f"error replacing {files_type}: {exc}") from exc
            if not files:
                return None
            prepared = _prepare_files(command, files)
            if not prepared:
                return None
            run_string = replace_quoted(run_string, files_type, prepared)

        run_string = run_string.replace("{0}", " ".join(self.git_args))
        for number, git_arg in enumerate(self.git_args, start=1):
            run_string = run_string.replace(f"{{{number}}}", git_arg)

        log.debug("[lefthook] executing: ", run_string)
        return run_string.split(" ")

    def _run_paused(self, opts, interactive):
        pause = interactive and not self.disable_tty and not self.hook.follow
        if pause:
            log.stop_spinner()
        try:
            self._run(opts)
        finally:
            if pause:
                log.start_spinner()

    def _run(self, opts):
        log.set_name(opts.name)
        try:
            if (self.hook.follow or opts.interactive) and not (
                self.skip_settings.skip_execution()
            ):
                log.info(log.cyan("\n  EXECUTE > "), log.bold(opts.name))
                try:
                    self.executor.execute(opts, sys.stdout)
                except Exception:
                    self._fail(opts.name, opts.fail_text)
                else:
                    self._success(opts.name)
                return

            out = io.StringIO()
            error = None
            try:
                self.executor.execute(opts, out)
            except Exception as exc:
                error = exc

            if error is not None:
                self._fail(opts.name, opts.fail_text)
                exec_name = log.red("\n  EXECUTE > ") + log.bold(opts.name)
            else:
                self._success(opts.name)
                exec_name = log.cyan("\n  EXECUTE > ") + log.bold(opts.name)

            if error is None and self.skip_settings.skip_execution():
                return

            text = f"{exec_name}\n{out.getvalue()}"
            if error is not None:
                text += str(error)
            log.info(text)
        finally:
            log.unset_name(opts.name)