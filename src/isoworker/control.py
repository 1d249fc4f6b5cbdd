"""Worker environment preparation applied before the work item is decoded."""

import importlib
import os
import sys
from collections.abc import Mapping

from isoworker.errors import ControlError

CONTROL_KEYS: tuple[str, ...] = ("env", "cwd", "sys_path", "preload_modules", "bootstrap")


def _parse_bootstrap_target(target: str) -> tuple[str, str]:
    """Parse ``module.path:callable`` bootstrap targets.

    :param target: Raw target string.
    :returns: Tuple of ``(module_name, qualname)``.
    :raises ControlError: If the target format is invalid.
    """
    parts: list[str] = target.split(":")
    if len(parts) != 2:
        raise ControlError("bootstrap must use module.path:callable format")

    module_name: str = parts[0].strip()
    qualname: str = parts[1].strip()
    if len(module_name) == 0:
        raise ControlError("Module path in bootstrap cannot be empty")
    if len(qualname) == 0:
        raise ControlError("Callable name in bootstrap cannot be empty")
    return module_name, qualname


def _resolve_qualname(root: object, qualname: str) -> object:
    """Resolve a dotted qualname against a root object.

    :param root: Root object.
    :param qualname: Dotted qualname, such as ``Outer.setup``.
    :returns: Resolved object.
    """
    current: object = root
    pieces: list[str] = qualname.split(".")
    for piece in pieces:
        current = getattr(current, piece)
    return current


def _require_str_list(data: dict[str, object], key: str) -> list[str]:
    """Extract and validate a list of strings.

    :param data: Control data.
    :param key: Field name.
    :returns: List of strings.
    :raises ControlError: If the field is not a list of strings.
    """
    value: object = data[key]
    if isinstance(value, (list, tuple)) is False:
        raise ControlError(f"{key} must be a list of strings")
    for item in value:
        if isinstance(item, str) is False:
            raise ControlError(f"{key} must be a list of strings")
    return list(value)


class Control:
    """Pre-execution configuration for one worker process.

    Keys are applied in a fixed order: ``env``, ``cwd``, ``sys_path``,
    ``preload_modules`` and finally ``bootstrap``.
    """

    _data: dict[str, object]

    def __init__(self, data: Mapping[str, object]) -> None:
        """Initialize control from a plain mapping.

        Values are not validated until :meth:`apply` runs.

        :param data: Ordered mapping of control keys to values.
        :raises TypeError: If ``data`` is not a mapping.
        """
        if isinstance(data, Mapping) is False:
            raise TypeError("Control data must be a mapping")
        self._data = dict(data)

    @classmethod
    def for_current_process(cls, **overrides: object) -> "Control":
        """Build control data that reproduces this process's import environment.

        :param overrides: Control keys replacing the computed defaults.
        :returns: New control instance.
        """
        cwd: str = os.getcwd()
        sys_path: list[str] = []
        for entry in sys.path:
            resolved: str = entry
            if entry == "":
                resolved = cwd
            if resolved not in sys_path:
                sys_path.append(resolved)

        data: dict[str, object] = {"cwd": cwd, "sys_path": sys_path}
        data.update(overrides)
        return cls(data)

    @property
    def data(self) -> dict[str, object]:
        """Return a copy of the raw control mapping.

        :returns: Control data.
        """
        return dict(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Control) is False:
            return NotImplemented
        return self._data == other._data

    def __repr__(self) -> str:
        return f"Control({self._data!r})"

    def apply(self) -> None:
        """Prepare the current process so the work item can be decoded.

        This mutates process-wide state and is meant to run once per worker.

        :raises ControlError: If the control data is invalid or cannot be applied.
        """
        unknown_keys: list[str] = [key for key in self._data if key not in CONTROL_KEYS]
        if len(unknown_keys) > 0:
            raise ControlError(f"Unknown control keys: {', '.join(sorted(unknown_keys))}")

        if "env" in self._data:
            self._apply_env(self._data["env"])
        if "cwd" in self._data:
            self._apply_cwd(self._data["cwd"])
        if "sys_path" in self._data:
            self._apply_sys_path(_require_str_list(self._data, "sys_path"))
        if "preload_modules" in self._data:
            for module_name in _require_str_list(self._data, "preload_modules"):
                importlib.import_module(module_name)
        if "bootstrap" in self._data:
            self._apply_bootstrap(self._data["bootstrap"])

    def _apply_env(self, env: object) -> None:
        """Export environment variables.

        :param env: Mapping of variable names to values.
        :raises ControlError: If ``env`` is not a mapping of strings.
        """
        if isinstance(env, Mapping) is False:
            raise ControlError("env must be a mapping of strings")
        for name, value in env.items():
            if isinstance(name, str) is False or isinstance(value, str) is False:
                raise ControlError("env must be a mapping of strings")
            os.environ[name] = value

    def _apply_cwd(self, cwd: object) -> None:
        """Change the working directory.

        :param cwd: Target directory.
        :raises ControlError: If ``cwd`` is not a string or cannot be entered.
        """
        if isinstance(cwd, str) is False:
            raise ControlError("cwd must be a string")
        try:
            os.chdir(cwd)
        except OSError as exc:
            raise ControlError(f"Cannot change directory to {cwd!r}") from exc

    def _apply_sys_path(self, entries: list[str]) -> None:
        """Put entries at the front of ``sys.path`` preserving their order.

        :param entries: Import path entries.
        """
        for entry in reversed(entries):
            while entry in sys.path:
                sys.path.remove(entry)
            sys.path.insert(0, entry)
        importlib.invalidate_caches()

    def _apply_bootstrap(self, target: object) -> None:
        """Import and call the bootstrap callable.

        :param target: ``module.path:callable`` string.
        :raises ControlError: If the target is invalid or not callable.
        """
        if isinstance(target, str) is False:
            raise ControlError("bootstrap must be a string")
        module_name, qualname = _parse_bootstrap_target(target)
        module: object = importlib.import_module(module_name)
        bootstrap: object = _resolve_qualname(module, qualname)
        if callable(bootstrap) is False:
            raise ControlError(f"bootstrap target {target!r} is not callable")
        bootstrap()
