# lefthook

A Python library for Git hooks described in a `lefthook.yml` file at the root
of a repository. It reads and merges the configuration, finds the files a
hook works on, and runs the configured commands and scripts one after
another, in parallel, or piped (stop at the first failure).

## Installation

```
pip install lefthook
```

## Running a hook

```python
import os

from lefthook.gitexec import OsExec
from lefthook.git import Repository
from lefthook.loader import load
from lefthook.log import SkipSettings
from lefthook.runner import Runner, Status

repo = Repository.discover(OsExec())
cfg = load(repo)
cfg.validate()                      # raises VersionError if min_version is too high

hook = cfg.hooks["pre-commit"]
hook.validate()                     # raises ConfigError for parallel + piped

runner = Runner(
    repo=repo,
    hook=hook,
    hook_name="pre-commit",
    git_args=[],
    skip_settings=SkipSettings(cfg.skip_output),
    disable_tty=cfg.no_tty,
)
results = runner.run_all([
    os.path.join(repo.root_path, cfg.source_dir),
    os.path.join(repo.root_path, cfg.source_dir_local),
])
failed = [r for r in results if r.status is Status.ERR]
```

`Runner.run_all` first runs `git lfs <hook>` for the hooks Git LFS handles,
then the scripts found in `<source dir>/<hook name>/`, then the commands in
name order, and returns a list of `Result(name, status, text)`. For
`pre-commit`, changes that are only partly staged are saved to a patch and a
backup stash, hidden while the hook runs, and restored afterwards.

## Configuration

```yaml
pre-commit:
  parallel: true
  commands:
    lint:
      glob: "*.py"
      run: flake8 {staged_files}
    tests:
      run: pytest
      tags: [backend]
  scripts:
    "check.sh":
      runner: bash

pre-push:
  commands:
    audit:
      run: ./audit {push_files}
```

`lefthook.loader.load(repo)` reads `lefthook.yml` (or `.yaml`), merges in
the files listed under `extends`, a config from a cloned `remote`
repository, and `lefthook-local.yml`, and returns a `lefthook.config.Config`.

- `run`: the shell command. `{staged_files}`, `{all_files}`, `{push_files}`
  and `{files}` (the output of the `files` command) are replaced with file
  lists; `{0}` with all Git hook arguments and `{1}`, `{2}`, … with single ones.
- `glob`, `exclude`, `root`: narrow down the file list
  (see `lefthook.filters`).
- `skip`: `true`, `merge`, `rebase`, or a list including `- ref: main`.
- `tags`, with `exclude_tags` on the hook or `LEFTHOOK_EXCLUDE=tag1,tag2`.
- `parallel`, `piped`, `follow`, `interactive`, `fail_text`, `env`.
- In `lefthook-local.yml`, `{cmd}` in a `run` (or a script's `runner`)
  expands to the original value.
- `min_version`, `skip_output`, `source_dir`, `source_dir_local`, `rc`,
  `colors`, `no_tty`.

`Repository.sync_remote(url, ref)` clones or updates a remote config
repository under `.git/info/lefthook-remotes`.

## Other pieces

- `lefthook.templates`: `hook(name, rc)` gives the shell script to place in
  `.git/hooks`, `config()` a commented starter `lefthook.yml`,
  `checksum(value, timestamp)` the contents of the checksum file.
- `lefthook.log`: levelled, coloured output with a spinner, and
  `SkipSettings` for hiding `meta`, `success`, `failure`, `summary` or
  `execution` output.
- `lefthook.version`: `version()` and `check_covered(min_version)`.

## What this package does not do

There is no `lefthook` command-line program here. Installing hook files into
`.git/hooks`, keeping them in step with the config checksum, adding single
hooks, uninstalling them, and printing a run summary are not provided. The
script produced by `templates.hook()` calls a `lefthook` executable, which
this package does not supply.