"""Console output: levels, colours, a progress spinner and output filters."""

import enum
import itertools
import sys
import threading
from contextlib import contextmanager

_COLOR_CYAN = "#70C0BA"
_COLOR_YELLOW = "#fada5e"
_COLOR_RED = "#ff6347"
_COLOR_GREEN = "#76ff7a"
_COLOR_GRAY = "#808080"

_RESET = "\x1b[0m"
_CLEAR_LINE = "\r\x1b[K"

SPINNER_TEXT = " waiting"
_SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
_SPINNER_INTERVAL = 0.1


class Level(enum.IntEnum):
    """Verbosity levels; a message shows when its level is at most the logger's."""

    ERROR = 0
    WARN = 1
    INFO = 2
    DEBUG = 3


class _Skip(enum.IntFlag):
    META = 1
    SUCCESS = 2
    FAILURE = 4
    SUMMARY = 8
    EXECUTION = 16


_SKIP_NAMES = {
    "meta": _Skip.META,
    "success": _Skip.SUCCESS,
    "failure": _Skip.FAILURE,
    "summary": _Skip.SUMMARY,
    "execution": _Skip.EXECUTION,
}


class SkipSettings:
    """Which parts of the run output are suppressed."""

    def __init__(self, settings=()):
        self._flags = _Skip(0)
        for setting in settings:
            self.apply_setting(setting)

    def apply_setting(self, setting):
        """Turn on the named option; unknown names are ignored."""
        flag = _SKIP_NAMES.get(setting)
        if flag is not None:
            self._flags |= flag

    def skip_success(self):
        return bool(self._flags & _Skip.SUCCESS)

    def skip_failure(self):
        return bool(self._flags & _Skip.FAILURE)

    def skip_summary(self):
        return bool(self._flags & _Skip.SUMMARY)

    def skip_meta(self):
        return bool(self._flags & _Skip.META)

    def skip_execution(self):
        return bool(self._flags & _Skip.EXECUTION)

    def __eq__(self, other):
        if not isinstance(other, SkipSettings):
            return NotImplemented
        return self._flags == other._flags

    def __repr__(self):
        names = [name for name, flag in _SKIP_NAMES.items() if self._flags & flag]
        return f"SkipSettings({names!r})"


def _isatty(stream):
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except (OSError, ValueError):
        return False


class _Spinner:
    """A terminal spinner drawn from a background thread."""

    def __init__(self, stream_getter):
        self._stream = stream_getter
        self._lock = threading.Lock()
        self._thread = None
        self._stop_event = None
        self._out = None
        self.suffix = SPINNER_TEXT

    @property
    def active(self):
        return self._thread is not None

    def start(self):
        with self._lock:
            if self._thread is not None:
                return
            out = self._stream()
            if not _isatty(out):
                return
            self._out = out
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._spin, args=(out, self._stop_event), daemon=True
            )
            self._thread.start()

    def stop(self):
        with self._lock:
            thread, stop_event, out = self._thread, self._stop_event, self._out
            self._thread = self._stop_event = self._out = None
        if thread is None:
            return
        stop_event.set()
        thread.join()
        out.write(_CLEAR_LINE)
        out.flush()

    def _spin(self, out, stop_event):
        for frame in itertools.cycle(_SPINNER_FRAMES):
            out.write(f"{_CLEAR_LINE}{frame}{self.suffix}")
            out.flush()
            if stop_event.wait(_SPINNER_INTERVAL):
                break


class Logger:
    """A thread-safe writer of leveled messages."""

    def __init__(self, out=None, level=Level.INFO, colors=True):
        self.level = level
        self.colors = colors
        self.names = []
        self._out = out
        self._lock = threading.RLock()
        self._spinner = _Spinner(self.stream)

    def stream(self):
        """The stream written to; standard output unless one was set."""
        return self._out if self._out is not None else sys.stdout

    def styled(self):
        """Whether terminal styling should be emitted."""
        return _isatty(self.stream())

    def set_level(self, level):
        with self._lock:
            self.level = level

    def set_output(self, out):
        with self._lock:
            self._out = out

    def is_level_enabled(self, level):
        return self.level >= level

    def log(self, level, *args):
        if self.is_level_enabled(level):
            self.println(*args)

    @contextmanager
    def _spinner_paused(self):
        if self._spinner.active:
            self._spinner.stop()
            try:
                yield
            finally:
                self._spinner.start()
        else:
            yield

    def println(self, *args):
        """Write the arguments separated by spaces and end the line."""
        self.write(" ".join(str(arg) for arg in args) + "\n")

    def write(self, text):
        """Write text as it is."""
        with self._lock, self._spinner_paused():
            out = self.stream()
            out.write(text)
            out.flush()

    def _update_suffix(self):
        if self.names:
            self._spinner.suffix = f"{SPINNER_TEXT}: {', '.join(self.names)}"
        else:
            self._spinner.suffix = SPINNER_TEXT

    def set_name(self, name):
        """Add a running task name shown next to the spinner."""
        with self._lock, self._spinner_paused():
            self.names.append(name)
            self._update_suffix()

    def unset_name(self, name):
        """Remove a task name shown next to the spinner."""
        with self._lock, self._spinner_paused():
            self.names = [n for n in self.names if n != name]
            self._update_suffix()

    def start_spinner(self):
        self._spinner.start()

    def stop_spinner(self):
        self._spinner.stop()


_std = Logger()


def _sprint(args):
    """Join arguments, spacing only between neighbours that are both non-strings."""
    parts = []
    previous_is_str = True
    for index, arg in enumerate(args):
        is_str = isinstance(arg, str)
        if index > 0 and not is_str and not previous_is_str:
            parts.append(" ")
        parts.append(str(arg))
        previous_is_str = is_str
    return "".join(parts)


def _rgb(hex_color):
    value = hex_color.lstrip("#")
    return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))


def _colorize(s, hex_color):
    if not _std.colors or not _std.styled():
        return s
    red_part, green_part, blue_part = _rgb(hex_color)
    return f"\x1b[38;2;{red_part};{green_part};{blue_part}m{s}{_RESET}"


def cyan(s):
    return _colorize(s, _COLOR_CYAN)


def green(s):
    return _colorize(s, _COLOR_GREEN)


def red(s):
    return _colorize(s, _COLOR_RED)


def yellow(s):
    return _colorize(s, _COLOR_YELLOW)


def gray(s):
    return _colorize(s, _COLOR_GRAY)


def bold(s):
    if not _std.styled():
        return s
    return f"\x1b[1m{s}{_RESET}"


def debug(*args):
    if _std.is_level_enabled(Level.DEBUG):
        _std.log(Level.DEBUG, gray(_sprint(args)))


def info(*args):
    _std.log(Level.INFO, *args)


def warn(*args):
    if _std.is_level_enabled(Level.WARN):
        _std.log(Level.WARN, yellow(_sprint(args)))


def error(*args):
    _std.log(Level.ERROR, red(_sprint(args)))


def println(*args):
    _std.println(*args)


def write(text):
    _std.write(text)


def set_level(level):
    _std.set_level(level)


def set_colors(enable):
    _std.colors = enable


def set_output(out):
    _std.set_output(out)


def set_name(name):
    _std.set_name(name)


def unset_name(name):
    _std.unset_name(name)


def start_spinner():
    _std.start_spinner()


def stop_spinner():
    _std.stop_spinner()


def parse_level(lvl):
    """Return the Level named by ``lvl``; raise ValueError for other names."""
    levels = {"error": Level.ERROR, "info": Level.INFO, "debug": Level.DEBUG}
    try:
        return levels[lvl.lower()]
    except KeyError:
        raise ValueError(f'not a valid Level: "{lvl}"') from None