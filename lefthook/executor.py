"""Running hook commands and scripts in a shell."""

import codecs
import os
import re
import selectors
import subprocess
import sys
from dataclasses import dataclass, field

from . import log

_ENV_VAR_RE = re.compile(r"\$\{([^}]*)\}|\$([A-Za-z0-9_]+)")
_READ_SIZE = 4096


@dataclass
class ExecuteOptions:
    """What to run, where, and how."""

    name: str
    root: str
    args: list
    fail_text: str = ""
    interactive: bool = False
    env: dict = field(default_factory=dict)


def _expand_env(value):
    """Replace $VAR and ${VAR} with their values; unset ones become empty."""
    return _ENV_VAR_RE.sub(
        lambda match: os.environ.get(match[1] if match[1] is not None else match[2], ""),
        value,
    )


def _environment(opts):
    env = dict(os.environ)
    env.update(
        {name.upper(): _expand_env(value) for name, value in (opts.env or {}).items()}
    )
    return env


def _stdin_isatty():
    try:
        return os.isatty(sys.stdin.fileno())
    except (AttributeError, OSError, ValueError):
        return False


def _stdin_fd():
    try:
        return sys.stdin.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _pump_pty(master, out, stdin_fd):
    """Copy the terminal's output to ``out`` and our stdin into it until it closes."""
    decoder = codecs.getincrementaldecoder("utf-8")("replace")
    with selectors.DefaultSelector() as selector:
        selector.register(master, selectors.EVENT_READ)
        if stdin_fd is not None:
            try:
                selector.register(stdin_fd, selectors.EVENT_READ)
            except (OSError, ValueError):
                stdin_fd = None
        while True:
            for key, _ in selector.select():
                if key.fd == master:
                    try:
                        data = os.read(master, _READ_SIZE)
                    except OSError:
                        data = b""
                    if not data:
                        out.write(decoder.decode(b"", final=True))
                        return
                    out.write(decoder.decode(data))
                else:
                    try:
                        data = os.read(stdin_fd, _READ_SIZE)
                    except OSError:
                        data = b""
                    if data:
                        try:
                            os.write(master, data)
                        except OSError:
                            pass
                    else:
                        selector.unregister(stdin_fd)


def _check(process, command):
    returncode = process.wait()
    if returncode != 0:
        raise subprocess.CalledProcessError(returncode, command)


class CommandExecutor:
    """Executes commands in the operating system."""

    def execute(self, opts, out):
        """Run ``opts.args`` as one shell command line.

        Output goes to ``out``, or straight to the terminal when interactive.
        Raises subprocess.CalledProcessError on a non-zero exit and OSError
        when the command cannot be started.
        """
        if sys.platform == "win32":
            self._execute_windows(opts, out)
        else:
            self._execute_unix(opts, out)

    def _execute_unix(self, opts, out):
        command = ["sh", "-c", " ".join(opts.args)]
        cwd = os.path.abspath(opts.root)
        env = _environment(opts)

        if opts.interactive:
            tty = None
            if not _stdin_isatty():
                try:
                    tty = open("/dev/tty", "rb")
                except OSError as exc:
                    log.error(f"Couldn't enable TTY input: {exc}\n")
            try:
                process = subprocess.Popen(command, cwd=cwd, env=env, stdin=tty)
                _check(process, command)
            finally:
                if tty is not None:
                    tty.close()
            return

        import pty

        master, slave = pty.openpty()
        try:
            try:
                process = subprocess.Popen(
                    command,
                    cwd=cwd,
                    env=env,
                    stdin=slave,
                    stdout=slave,
                    stderr=slave,
                    start_new_session=True,
                )
            finally:
                os.close(slave)
            try:
                _pump_pty(master, out, _stdin_fd())
            except BaseException:
                process.kill()
                process.wait()
                raise
            _check(process, command)
        finally:
            os.close(master)

    def _execute_windows(self, opts, out):
        command_line = " ".join(opts.args)
        cwd = os.path.abspath(opts.root)
        env = _environment(opts)

        if opts.interactive:
            process = subprocess.Popen(command_line, cwd=cwd, env=env)
            _check(process, command_line)
            return

        process = subprocess.Popen(
            command_line, cwd=cwd, env=env, stdout=subprocess.PIPE
        )
        decoder = codecs.getincrementaldecoder("utf-8")("replace")
        with process.stdout:
            for chunk in iter(lambda: process.stdout.read(_READ_SIZE), b""):
                out.write(decoder.decode(chunk))
        out.write(decoder.decode(b"", final=True))
        _check(process, command_line)

    def raw_execute(self, command, out):
        """Run ``command`` directly, writing its standard output to ``out``."""
        completed = subprocess.run(list(command), stdout=subprocess.PIPE, check=False)
        out.write(completed.stdout.decode("utf-8", errors="replace"))
        if completed.returncode != 0:
            raise subprocess.CalledProcessError(completed.returncode, list(command))