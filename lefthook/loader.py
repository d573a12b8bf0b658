"""Reading and merging configuration files into a Config."""

import os

import yaml

from .config import (
    AVAILABLE_HOOKS,
    CMD,
    DEFAULT_CONFIG_NAME,
    Command,
    Config,
    ConfigError,
    Hook,
    Remote,
    Script,
)

_EXTENSIONS = (".yaml", ".yml")
_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _str(value):
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (dict, list)):
        raise ConfigError(f"expected a string, got {value!r}")
    return str(value)


def _bool(value):
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if value == "" or value in _FALSE:
            return False
        if value in _TRUE:
            return True
    raise ConfigError(f"cannot parse {value!r} as a boolean")


def _str_list(value):
    if value is None:
        return []
    if isinstance(value, list):
        return [_str(item) for item in value]
    return [_str(value)]


def _fields(value):
    """A list of strings; a single string is split on whitespace."""
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return _str_list(value)


def _str_map(value):
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"expected a mapping, got {value!r}")
    return {str(key): _str(item) for key, item in value.items()}


def _sub(data, key):
    if not isinstance(data, dict):
        return None
    value = data.get(key)
    return value if isinstance(value, dict) else None


def _deep_merge(base, extra):
    result = dict(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _stringify_keys(value):
    if isinstance(value, dict):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stringify_keys(v) for v in value]
    return value


def _decode_command(data):
    data = data if isinstance(data, dict) else {}
    return Command(
        run=_str(data.get("run")),
        skip=data.get("skip"),
        tags=_str_list(data.get("tags")),
        glob=_str(data.get("glob")),
        files=_str(data.get("files")),
        env=_str_map(data.get("env")),
        root=_str(data.get("root")),
        exclude=_str(data.get("exclude")),
        fail_text=_str(data.get("fail_text")),
        interactive=_bool(data.get("interactive")),
    )


def _decode_script(data):
    data = data if isinstance(data, dict) else {}
    return Script(
        runner=_str(data.get("runner")),
        skip=data.get("skip"),
        tags=_str_list(data.get("tags")),
        env=_str_map(data.get("env")),
        fail_text=_str(data.get("fail_text")),
        interactive=_bool(data.get("interactive")),
    )


def _merge_entries(base, extra, key, run_key, decode):
    if base is None and extra is None:
        return {}
    origin = _sub(base, key)
    override = _sub(extra, key)
    if origin is None:
        return {name: decode(v) for name, v in (override or {}).items()}
    if override is None:
        return {name: decode(v) for name, v in origin.items()}

    replaces = {
        name: _str(cfg.get(run_key))
        for name, cfg in origin.items()
        if isinstance(cfg, dict)
    }
    merged = {name: decode(v) for name, v in _deep_merge(origin, override).items()}
    for name, replace in replaces.items():
        if replace:
            entry = merged[name]
            setattr(entry, run_key, getattr(entry, run_key).replace(CMD, replace))
    return merged


def merge_commands(base, extra):
    """Merge the ``commands`` of two hook mappings; ``{cmd}`` takes the base run."""
    return _merge_entries(base, extra, "commands", "run", _decode_command)


def merge_scripts(base, extra):
    """Merge the ``scripts`` of two hook mappings; ``{cmd}`` takes the base runner."""
    return _merge_entries(base, extra, "scripts", "runner", _decode_script)


def build_hook(base, extra):
    """Build a Hook from a base and an overriding mapping; None if both are absent."""
    if base is None and extra is None:
        return None
    merged = _deep_merge(base or {}, extra or {})
    hook = Hook(
        commands=merge_commands(base, extra),
        scripts=merge_scripts(base, extra),
        files=_str(merged.get("files")),
        parallel=_bool(merged.get("parallel")),
        piped=_bool(merged.get("piped")),
        exclude_tags=_str_list(merged.get("exclude_tags")),
        skip=merged.get("skip"),
        follow=_bool(merged.get("follow")),
    )
    tags = os.environ.get("LEFTHOOK_EXCLUDE", "")
    if tags:
        hook.exclude_tags.extend(tags.split(","))
    return hook


def _find_config(directory, name):
    for ext in _EXTENSIONS:
        path = os.path.join(directory, name + ext)
        if os.path.isfile(path):
            return path
    return None


def _read_file(path):
    with open(path, encoding="utf-8") as stream:
        try:
            data = yaml.safe_load(stream)
        except yaml.YAMLError as exc:
            raise ConfigError(f"{path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: the configuration must be a mapping")
    return _stringify_keys(data)


def _read_main(root):
    path = _find_config(root, "lefthook")
    if path is None:
        raise FileNotFoundError(f"config file \"lefthook\" not found in {root}")
    return _read_file(path)


def _extend(data, root):
    for path in _fields(data.get("extends")):
        if not os.path.isabs(path):
            path = os.path.normpath(os.path.join(root, path))
        data = _deep_merge(data, _read_file(path))
    return data


def _decode_remote(value):
    if not isinstance(value, dict):
        return Remote()
    return Remote(
        git_url=_str(value.get("git_url")),
        ref=_str(value.get("ref")),
        config=_str(value.get("config")),
    )


def _merge_remote(data, repo):
    remote = _decode_remote(data.get("remote"))
    if not remote.configured():
        return data
    config_path = os.path.join(
        repo.remote_folder(remote.git_url), remote.config or DEFAULT_CONFIG_NAME
    )
    if not os.path.exists(config_path):
        return data
    data = _deep_merge(data, _read_file(config_path))
    return _extend(data, os.path.dirname(config_path))


def _merge_all(repo):
    root = repo.root_path
    data = _extend(_read_main(root), root)
    data = _merge_remote(data, repo)
    local = _find_config(root, "lefthook-local")
    if local is not None:
        data = _deep_merge(data, _read_file(local))
    return _extend(data, root)


def _extra_hook_names(data):
    for name, value in data.items():
        if "." in name or not isinstance(value, dict):
            continue
        if "scripts" in value or "commands" in value:
            yield name


def load(repo):
    """Load and merge the configuration of ``repo``.

    Raises FileNotFoundError when the main config or an extended file is missing.
    """
    main = _read_main(repo.root_path)
    extended = _merge_all(repo)

    cfg = Config()
    for name in (*AVAILABLE_HOOKS, *_extra_hook_names(main)):
        if name in cfg.hooks:
            continue
        hook = build_hook(_sub(main, name), _sub(extended, name))
        if hook is not None:
            cfg.hooks[name] = hook

    merged = _deep_merge(main, extended)
    if "colors" in merged:
        cfg.colors = _bool(merged["colors"])
    if "extends" in merged:
        cfg.extends = _fields(merged["extends"])
    if "remote" in merged:
        cfg.remote = _decode_remote(merged["remote"])
    if "min_version" in merged:
        cfg.min_version = _str(merged["min_version"])
    if "skip_output" in merged:
        cfg.skip_output = _str_list(merged["skip_output"])
    if "source_dir" in merged:
        cfg.source_dir = _str(merged["source_dir"])
    if "source_dir_local" in merged:
        cfg.source_dir_local = _str(merged["source_dir_local"])
    if "rc" in merged:
        cfg.rc = _str(merged["rc"])
    if "no_tty" in merged:
        cfg.no_tty = _bool(merged["no_tty"])
    return cfg