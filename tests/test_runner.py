import os
import stat
import threading

import pytest

from lefthook.config import DEFAULT_SOURCE_DIR, Command, Hook, Script
from lefthook.git import Repository
from lefthook.gitexec import GitError
from lefthook.runner import Result, Runner, Status, intersect, replace_quoted

HOOK_NAME = "pre-commit"


class GitMock:
    def __init__(self, cases=None, failing=()):
        self.cases = cases or {}
        self.failing = set(failing)

    def _lines(self, cmd):
        if cmd in self.failing:
            raise GitError(cmd.split(" "), "", 1)
        return list(self.cases.get(cmd, []))

    def cmd(self, cmd):
        return "\n".join(self._lines(cmd)).strip()

    def cmd_args(self, *args):
        return self.cmd(" ".join(args))

    def cmd_lines(self, cmd):
        return self._lines(cmd)

    def raw_cmd(self, cmd):
        return "\n".join(self._lines(cmd))


class RecordingExecutor:
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def execute(self, opts, out):
        with self._lock:
            self.calls.append(list(opts.args))
        if opts.args[0] != "success":
            raise RuntimeError(opts.args[0])

    def raw_execute(self, command, out):
        return None


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "src"
    (path / ".git" / "info").mkdir(parents=True)
    (path / ".git" / "hooks").mkdir()
    return path


def make_runner(root, hook, executor=None, git=None, git_args=None):
    git_path = root / ".git"
    repo = Repository(
        git=git or GitMock(),
        hooks_path=str(git_path / "hooks"),
        root_path=str(root),
        git_path=str(git_path),
        info_path=str(git_path / "info"),
    )
    return Runner(
        repo=repo,
        hook=hook,
        hook_name=HOOK_NAME,
        git_args=git_args or [],
        executor=executor or RecordingExecutor(),
    )


def _key(result):
    return (result.name, int(result.status), result.text)


def _split(results):
    success = sorted((r for r in results if r.status == Status.OK), key=_key)
    fail = sorted((r for r in results if r.status == Status.ERR), key=_key)
    return success, fail


RUN_ALL_CASES = [
    dict(
        name="empty hook",
        hook=lambda: Hook(commands={}, scripts={}, piped=True),
        success=[],
        fail=[],
    ),
    dict(
        name="with simple command",
        hook=lambda: Hook(commands={"test": Command(run="success")}),
        success=[Result("test", Status.OK)],
        fail=[],
    ),
    dict(
        name="with simple command in follow mode",
        hook=lambda: Hook(follow=True, commands={"test": Command(run="success")}),
        success=[Result("test", Status.OK)],
        fail=[],
    ),
    dict(
        name="with multiple commands ran in parallel",
        hook=lambda: Hook(
            parallel=True,
            commands={
                "test": Command(run="success"),
                "lint": Command(run="success"),
                "type-check": Command(run="fail"),
            },
        ),
        success=[Result("test", Status.OK), Result("lint", Status.OK)],
        fail=[Result("type-check", Status.ERR)],
    ),
    dict(
        name="with exclude tags",
        hook=lambda: Hook(
            exclude_tags=["tests", "formatter"],
            commands={
                "test": Command(run="success", tags=["tests"]),
                "formatter": Command(run="success"),
                "lint": Command(run="success", tags=["linters"]),
            },
        ),
        success=[Result("lint", Status.OK)],
        fail=[],
    ),
    dict(
        name="with skip boolean option",
        hook=lambda: Hook(
            commands={
                "test": Command(run="success", skip=True),
                "lint": Command(run="success"),
            }
        ),
        success=[Result("lint", Status.OK)],
        fail=[],
    ),
    dict(
        name="with skip merge",
        files=[".git/MERGE_HEAD"],
        hook=lambda: Hook(
            commands={
                "test": Command(run="success", skip="merge"),
                "lint": Command(run="success"),
            }
        ),
        success=[Result("lint", Status.OK)],
        fail=[],
    ),
    dict(
        name="with global skip merge",
        files=[".git/MERGE_HEAD"],
        hook=lambda: Hook(
            skip="merge",
            commands={
                "test": Command(run="success"),
                "lint": Command(run="success"),
            },
        ),
        success=[],
        fail=[],
    ),
    dict(
        name="with skip rebase and merge in an array",
        files=[".git/rebase-merge", ".git/rebase-apply"],
        hook=lambda: Hook(
            commands={
                "test": Command(run="success", skip=["merge", "rebase"]),
                "lint": Command(run="success"),
            }
        ),
        success=[Result("lint", Status.OK)],
        fail=[],
    ),
    dict(
        name="with global skip on ref",
        branch="main",
        hook=lambda: Hook(
            skip=["merge", {"ref": "main"}],
            commands={
                "test": Command(run="success"),
                "lint": Command(run="success"),
            },
        ),
        success=[],
        fail=[],
    ),
    dict(
        name="with global skip on another ref",
        branch="fix",
        hook=lambda: Hook(
            skip=["merge", {"ref": "main"}],
            commands={
                "test": Command(run="success"),
                "lint": Command(run="success"),
            },
        ),
        success=[Result("test", Status.OK), Result("lint", Status.OK)],
        fail=[],
    ),
    dict(
        name="with fail test",
        hook=lambda: Hook(
            commands={"test": Command(run="fail", fail_text="try 'success'")}
        ),
        success=[],
        fail=[Result("test", Status.ERR, "try 'success'")],
    ),
    dict(
        name="with simple scripts",
        with_source_dir=True,
        files=[
            f"{DEFAULT_SOURCE_DIR}/{HOOK_NAME}/script.sh",
            f"{DEFAULT_SOURCE_DIR}/{HOOK_NAME}/failing.js",
        ],
        hook=lambda: Hook(
            scripts={
                "script.sh": Script(runner="success"),
                "failing.js": Script(runner="fail", fail_text="install node"),
            }
        ),
        success=[Result("script.sh", Status.OK)],
        fail=[Result("failing.js", Status.ERR, "install node")],
    ),
    dict(
        name="with interactive and parallel",
        with_source_dir=True,
        files=[
            f"{DEFAULT_SOURCE_DIR}/{HOOK_NAME}/script.sh",
            f"{DEFAULT_SOURCE_DIR}/{HOOK_NAME}/failing.js",
        ],
        hook=lambda: Hook(
            parallel=True,
            commands={
                "ok": Command(run="success", interactive=True),
                "fail": Command(run="fail"),
            },
            scripts={
                "script.sh": Script(runner="success", interactive=True),
                "failing.js": Script(runner="fail"),
            },
        ),
        success=[],
        fail=[Result("failing.js", Status.ERR), Result("fail", Status.ERR)],
    ),
]


@pytest.mark.parametrize("case", RUN_ALL_CASES, ids=[c["name"] for c in RUN_ALL_CASES])
def test_run_all(root, case):
    for relative in case.get("files", []):
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"")
        path.chmod(0o755)
    if case.get("branch"):
        (root / ".git" / "HEAD").write_text(f"ref: refs/heads/{case['branch']}")

    source_dirs = [str(root / DEFAULT_SOURCE_DIR)] if case.get("with_source_dir") else []
    runner = make_runner(root, case["hook"]())

    success, fail = _split(runner.run_all(source_dirs))

    assert success == sorted(case["success"], key=_key)
    assert fail == sorted(case["fail"], key=_key)


def test_piped_stops_after_failure(root):
    executor = RecordingExecutor()
    hook = Hook(
        piped=True,
        commands={"a": Command(run="fail"), "b": Command(run="success")},
    )
    results = make_runner(root, hook, executor).run_all([])
    assert results == [Result("a", Status.ERR)]
    assert executor.calls == [["fail"]]


def test_staged_files_are_filtered_and_substituted(root, monkeypatch):
    monkeypatch.chdir(root)
    for name in ("a.rb", "b.txt", "c.rb"):
        (root / name).write_text("x")
    git = GitMock(
        {"git diff --name-only --cached --diff-filter=ACMR": ["a.rb", "b.txt", "c.rb"]}
    )
    executor = RecordingExecutor()
    hook = Hook(commands={"lint": Command(run="success {staged_files}", glob="*.rb")})

    results = make_runner(root, hook, executor, git).run_all([])

    assert results == [Result("lint", Status.OK)]
    assert executor.calls == [["success", "a.rb", "c.rb"]]


def test_command_without_files_is_skipped(root, monkeypatch):
    monkeypatch.chdir(root)
    executor = RecordingExecutor()
    hook = Hook(commands={"lint": Command(run="success {all_files}")})

    results = make_runner(root, hook, executor).run_all([])

    assert results == []
    assert executor.calls == []


def test_files_option_is_used_for_files_substitution(root, monkeypatch):
    monkeypatch.chdir(root)
    (root / "changed.rb").write_text("x")
    git = GitMock({"git ls-files -m": ["changed.rb", "missing.rb"]})
    executor = RecordingExecutor()
    hook = Hook(
        files="git ls-files -m",
        commands={"lint": Command(run="success {files}")},
    )

    results = make_runner(root, hook, executor, git).run_all([])

    assert results == [Result("lint", Status.OK)]
    assert executor.calls == [["success", "changed.rb"]]


def test_git_error_while_listing_files_skips_command(root, monkeypatch):
    monkeypatch.chdir(root)
    git = GitMock(failing={"git ls-files --cached"})
    executor = RecordingExecutor()
    hook = Hook(commands={"lint": Command(run="success {all_files}")})

    results = make_runner(root, hook, executor, git).run_all([])

    assert results == []
    assert executor.calls == []


def test_git_args_are_substituted(root):
    executor = RecordingExecutor()
    hook = Hook(commands={"echo": Command(run="success {1} {0}")})

    make_runner(root, hook, executor, git_args=["x", "y"]).run_all([])

    assert executor.calls == [["success", "x", "x", "y"]]


def test_incompatible_files_fail_without_running(root):
    executor = RecordingExecutor()
    hook = Hook(
        commands={"bad": Command(run="success {staged_files} {push_files}")}
    )

    results = make_runner(root, hook, executor).run_all([])

    assert results == [Result("bad", Status.ERR, "")]
    assert executor.calls == []


def test_script_arguments_and_mode(root):
    script_dir = root / DEFAULT_SOURCE_DIR / HOOK_NAME
    script_dir.mkdir(parents=True)
    script_path = script_dir / "check.sh"
    script_path.write_text("echo hi\n")
    script_path.chmod(0o644)
    unlisted = script_dir / "other.sh"
    unlisted.write_text("echo other\n")

    executor = RecordingExecutor()
    hook = Hook(scripts={"check.sh": Script(runner="success -e")})

    results = make_runner(root, hook, executor, git_args=["arg"]).run_all(
        [str(root / DEFAULT_SOURCE_DIR)]
    )

    assert results == [Result("check.sh", Status.OK)]
    assert executor.calls == [["success", "-e", str(script_path), "arg"]]
    assert stat.S_IMODE(os.stat(script_path).st_mode) & 0o111 != 0


def test_script_excluded_by_tags(root):
    script_dir = root / DEFAULT_SOURCE_DIR / HOOK_NAME
    script_dir.mkdir(parents=True)
    (script_dir / "check.sh").write_text("x")
    executor = RecordingExecutor()
    hook = Hook(
        exclude_tags=["slow"],
        scripts={"check.sh": Script(runner="success", tags=["slow"])},
    )

    results = make_runner(root, hook, executor).run_all([str(root / DEFAULT_SOURCE_DIR)])

    assert results == []
    assert executor.calls == []


@pytest.mark.parametrize(
    "source, substitution, files, expected",
    [
        ("echo", "{staged_files}", ["a", "b"], "echo"),
        (
            "echo {staged_files}",
            "{staged_files}",
            ["test.rb", "README"],
            "echo test.rb README",
        ),
        (
            "echo '{staged_files}'",
            "{staged_files}",
            ["test.rb", "README"],
            "echo 'test.rb' 'README'",
        ),
        (
            'echo "{staged_files}"',
            "{staged_files}",
            ["test.rb", "README"],
            'echo "test.rb" "README"',
        ),
        (
            'echo "{staged_files}"',
            "{staged_files}",
            ["'test me.rb'", "README"],
            'echo "test me.rb" "README"',
        ),
        (
            "echo '{staged_files}'",
            "{staged_files}",
            ["'test me.rb'", "README"],
            "echo 'test me.rb' 'README'",
        ),
        (
            "echo {staged_files}",
            "{staged_files}",
            ["'test me.rb'", "README"],
            "echo 'test me.rb' README",
        ),
        (
            'echo "{staged_files}" {staged_files}',
            "{staged_files}",
            ["'test me.rb'", "README"],
            "echo \"test me.rb\" \"README\" 'test me.rb' README",
        ),
    ],
)
def test_replace_quoted(source, substitution, files, expected):
    assert replace_quoted(source, substitution, files) == expected


@pytest.mark.parametrize(
    "a, b, expected",
    [
        (["a", "b"], ["c", "b"], True),
        (["a"], ["c"], False),
        ([], ["c"], False),
        (["a"], [], False),
        (None, ["a"], False),
    ],
)
def test_intersect(a, b, expected):
    assert intersect(a, b) is expected