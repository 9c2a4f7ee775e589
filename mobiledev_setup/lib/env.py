from __future__ import annotations

import logging
import os
import re
import sys
from enum import Enum
from pathlib import Path
from typing import Iterable, List, MutableMapping, Optional, Sequence

if sys.platform == "win32":
    import winreg
else:
    winreg = None

logger = logging.getLogger(__name__)

PROFILE_TAG = "# mobiledev-setup"


class Scope(str, Enum):
    PROCESS = "process"
    USER = "user"
    SYSTEM = "system"


def _norm(segment: str, case_insensitive: bool) -> str:
    s = segment.strip().strip('"')
    if len(s) > 1:
        s = s.rstrip("/\\") or s
    return s.lower() if case_insensitive else s


def split_path_like(value: Optional[str], delimiter: str) -> List[str]:
    return [p for p in (value or "").split(delimiter) if p.strip()]


def has_segment(value: Optional[str], segment: str, delimiter: str, *, case_insensitive: bool = False) -> bool:
    """True if `segment` is one of the delimiter-bounded entries of `value`."""

    wanted = _norm(segment, case_insensitive)
    return any(_norm(p, case_insensitive) == wanted for p in split_path_like(value, delimiter))


def join_unique(segments: Iterable[str], delimiter: str, *, case_insensitive: bool = False) -> str:
    seen: set[str] = set()
    out: List[str] = []
    for seg in segments:
        key = _norm(seg, case_insensitive)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(seg)
    return delimiter.join(out)


def same_value(a: Optional[str], b: Optional[str], *, case_insensitive: bool = False) -> bool:
    if a is None or b is None:
        return False
    return _norm(a, case_insensitive) == _norm(b, case_insensitive)


class EnvBackend:
    """Persistence mechanism for user/system scoped variables."""

    delimiter: str = os.pathsep
    case_insensitive: bool = False

    def get(self, name: str, scope: Scope) -> Optional[str]:
        raise NotImplementedError

    def set(self, name: str, value: str, scope: Scope) -> None:
        raise NotImplementedError

    def delete(self, name: str, scope: Scope) -> None:
        raise NotImplementedError

    def add_path_segment(self, name: str, segment: str, scope: Scope) -> None:
        current = split_path_like(self.get(name, scope), self.delimiter)
        self.set(name, join_unique([*current, segment], self.delimiter, case_insensitive=self.case_insensitive), scope)

    def remove_path_segment(self, name: str, segment: str, scope: Scope) -> bool:
        current = split_path_like(self.get(name, scope), self.delimiter)
        wanted = _norm(segment, self.case_insensitive)
        kept = [p for p in current if _norm(p, self.case_insensitive) != wanted]
        if len(kept) == len(current):
            return False
        self.set(name, self.delimiter.join(kept), scope)
        return True

    def compose(self, name: str, current: Optional[str]) -> Optional[str]:
        """Recompute the process value of `name` from all persisted scopes."""
        raise NotImplementedError


# ---------------------------------------------------------------------
# POSIX: export lines in shell profiles
# ---------------------------------------------------------------------

_EXPORT_RE = re.compile(r'^\s*export\s+([A-Za-z_][A-Za-z0-9_]*)="((?:[^"\\]|\\.)*)"')


def _shell_escape(value: str) -> str:
    return re.sub(r'(["\\$`])', r"\\\1", value)


def _shell_unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


class ShellProfileBackend(EnvBackend):
    """Persists variables as `export` lines appended to shell profiles.

    User scope writes every profile in `user_profiles`; system scope writes a
    single profile.d fragment. Reads only report what all target profiles agree on.
    """

    delimiter = ":"
    case_insensitive = False

    def __init__(
        self,
        user_profiles: Sequence[Path],
        system_profile: Path = Path("/etc/profile.d/mobiledev-setup.sh"),
    ) -> None:
        if not user_profiles:
            raise ValueError("at least one user profile is required")
        self.user_profiles = [Path(p) for p in user_profiles]
        self.system_profile = Path(system_profile)

    def _targets(self, scope: Scope) -> List[Path]:
        if scope is Scope.SYSTEM:
            return [self.system_profile]
        return list(self.user_profiles)

    @staticmethod
    def _read_lines(path: Path) -> List[str]:
        try:
            return path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []

    @staticmethod
    def _write_lines(path: Path, lines: List[str]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    @staticmethod
    def _parse(lines: Iterable[str], name: str) -> tuple[Optional[str], List[str]]:
        value: Optional[str] = None
        segments: List[str] = []
        suffix = f":${name}"
        for line in lines:
            m = _EXPORT_RE.match(line)
            if not m or m.group(1) != name:
                continue
            raw = _shell_unescape(m.group(2))
            if raw.endswith(suffix):
                # The user's own PATH edits are left to the shell to expand.
                if PROFILE_TAG not in line:
                    continue
                segments.extend(split_path_like(raw[: -len(suffix)], ":"))
            else:
                value = raw
        return value, segments

    @staticmethod
    def _path_line(name: str, segment: str) -> str:
        return f'export {name}="{_shell_escape(segment)}:${name}"  {PROFILE_TAG}'

    @staticmethod
    def _var_line(name: str, value: str) -> str:
        return f'export {name}="{_shell_escape(value)}"  {PROFILE_TAG}'

    def get(self, name: str, scope: Scope) -> Optional[str]:
        parsed = [self._parse(self._read_lines(p), name) for p in self._targets(scope)]
        if any(segments for _, segments in parsed):
            per_file = [":".join(segments) for _, segments in parsed]
            common = [s for s in split_path_like(per_file[0], ":") if all(has_segment(v, s, ":") for v in per_file)]
            return ":".join(common) or None
        values = [value for value, _ in parsed]
        first = values[0]
        if first is None:
            return None
        return first if all(v == first for v in values) else None

    def set(self, name: str, value: str, scope: Scope) -> None:
        new_line = self._var_line(name, value)
        for path in self._targets(scope):
            lines = self._read_lines(path)
            replaced = False
            out: List[str] = []
            for line in lines:
                m = _EXPORT_RE.match(line)
                is_ours = (
                    m is not None
                    and m.group(1) == name
                    and PROFILE_TAG in line
                    and not _shell_unescape(m.group(2)).endswith(f":${name}")
                )
                if is_ours:
                    if not replaced:
                        out.append(new_line)
                        replaced = True
                    continue
                out.append(line)
            if not replaced:
                if out and out[-1].strip():
                    out.append("")
                out.append(new_line)
            if out != lines:
                self._write_lines(path, out)
                logger.info("Profile %s: export %s", path, name)

    @staticmethod
    def _is_tagged_export(line: str, name: str) -> bool:
        m = _EXPORT_RE.match(line)
        return m is not None and m.group(1) == name and PROFILE_TAG in line

    def delete(self, name: str, scope: Scope) -> None:
        for path in self._targets(scope):
            lines = self._read_lines(path)
            out = [line for line in lines if not self._is_tagged_export(line, name)]
            if out != lines:
                self._write_lines(path, out)

    def add_path_segment(self, name: str, segment: str, scope: Scope) -> None:
        new_line = self._path_line(name, segment)
        for path in self._targets(scope):
            lines = self._read_lines(path)
            if new_line in lines:
                continue
            _, segments = self._parse(lines, name)
            if has_segment(":".join(segments), segment, ":"):
                continue
            if lines and lines[-1].strip():
                lines.append("")
            lines.append(new_line)
            self._write_lines(path, lines)
            logger.info("Profile %s: %s += %s", path, name, segment)

    def remove_path_segment(self, name: str, segment: str, scope: Scope) -> bool:
        removed = False
        for path in self._targets(scope):
            lines = self._read_lines(path)
            out: List[str] = []
            for line in lines:
                m = _EXPORT_RE.match(line)
                if m and m.group(1) == name and PROFILE_TAG in line:
                    raw = _shell_unescape(m.group(2))
                    if raw.endswith(f":${name}") and has_segment(raw[: -len(name) - 2], segment, ":"):
                        removed = True
                        continue
                out.append(line)
            if out != lines:
                self._write_lines(path, out)
        return removed

    def compose(self, name: str, current: Optional[str]) -> Optional[str]:
        persisted = [self.get(name, Scope.SYSTEM), self.get(name, Scope.USER)]
        if name == "PATH":
            segments: List[str] = []
            for value in reversed(persisted):
                segments.extend(split_path_like(value, ":"))
            return join_unique([*segments, *split_path_like(current, ":")], ":")
        for value in reversed(persisted):
            if value is not None:
                return value
        return current


# ---------------------------------------------------------------------
# Windows: registry environment
# ---------------------------------------------------------------------

_HWND_BROADCAST = 0xFFFF
_WM_SETTINGCHANGE = 0x001A
_SMTO_ABORTIFHUNG = 0x0002

_REG_LOCATIONS = {
    Scope.USER: ("HKEY_CURRENT_USER", r"Environment"),
    Scope.SYSTEM: ("HKEY_LOCAL_MACHINE", r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment"),
}


def broadcast_environment_change() -> None:
    """Tell running Explorer/shell processes that the environment changed."""

    try:
        import ctypes
        from ctypes import wintypes

        result = wintypes.DWORD()
        ctypes.windll.user32.SendMessageTimeoutW(  # type: ignore[attr-defined]
            _HWND_BROADCAST,
            _WM_SETTINGCHANGE,
            0,
            "Environment",
            _SMTO_ABORTIFHUNG,
            5000,
            ctypes.byref(result),
        )
    except (ImportError, AttributeError, OSError) as e:
        logger.debug("Environment change broadcast failed: %s", e)


class WindowsRegistryBackend(EnvBackend):
    delimiter = ";"
    case_insensitive = True

    def __init__(self) -> None:
        if winreg is None:
            raise RuntimeError("winreg is only available on Windows")

    @staticmethod
    def _key(scope: Scope, access: int):
        root_name, subkey = _REG_LOCATIONS[scope]
        return winreg.OpenKey(getattr(winreg, root_name), subkey, 0, access)

    def get(self, name: str, scope: Scope) -> Optional[str]:
        try:
            with self._key(scope, winreg.KEY_READ) as key:
                value, _ = winreg.QueryValueEx(key, name)
                return str(value)
        except FileNotFoundError:
            return None

    def set(self, name: str, value: str, scope: Scope) -> None:
        reg_type = winreg.REG_EXPAND_SZ if "%" in value or name.upper() == "PATH" else winreg.REG_SZ
        with self._key(scope, winreg.KEY_READ | winreg.KEY_WRITE) as key:
            winreg.SetValueEx(key, name, 0, reg_type, value)
        logger.info("Registry (%s): %s set", scope.value, name)
        broadcast_environment_change()

    def delete(self, name: str, scope: Scope) -> None:
        try:
            with self._key(scope, winreg.KEY_READ | winreg.KEY_WRITE) as key:
                winreg.DeleteValue(key, name)
        except FileNotFoundError:
            return
        broadcast_environment_change()

    def compose(self, name: str, current: Optional[str]) -> Optional[str]:
        system = self.get(name, Scope.SYSTEM)
        user = self.get(name, Scope.USER)
        if name.upper() == "PATH":
            parts = split_path_like(system, ";") + split_path_like(user, ";")
            return join_unique([os.path.expandvars(p) for p in parts], ";", case_insensitive=True) or current
        if user is not None:
            return os.path.expandvars(user)
        if system is not None:
            return os.path.expandvars(system)
        return current


# ---------------------------------------------------------------------
# Mutator
# ---------------------------------------------------------------------


class EnvironmentMutator:
    """Idempotent environment updates, visible now and in future sessions."""

    def __init__(self, backend: EnvBackend, environ: Optional[MutableMapping[str, str]] = None) -> None:
        self.backend = backend
        self.environ: MutableMapping[str, str] = os.environ if environ is None else environ

    @property
    def delimiter(self) -> str:
        return self.backend.delimiter

    def _ci(self) -> bool:
        return self.backend.case_insensitive

    def get(self, name: str, scope: Scope = Scope.USER) -> Optional[str]:
        if scope is Scope.PROCESS:
            return self.environ.get(name)
        return self.backend.get(name, scope)

    def set_variable(self, name: str, value: str, scope: Scope = Scope.USER) -> None:
        if scope is Scope.PROCESS:
            self.environ[name] = value
            return
        self.backend.set(name, value, scope)
        self.refresh(name)

    def append_to_path_like(self, name: str, segment: str, scope: Scope = Scope.USER) -> bool:
        """Append `segment` unless it is already present. Returns True if it was added."""

        if scope is Scope.PROCESS:
            current = self.environ.get(name)
            if has_segment(current, segment, self.delimiter, case_insensitive=self._ci()):
                return False
            self.environ[name] = join_unique(
                [*split_path_like(current, self.delimiter), segment], self.delimiter, case_insensitive=self._ci()
            )
            return True

        current = self.backend.get(name, scope)
        if has_segment(current, segment, self.delimiter, case_insensitive=self._ci()):
            self.refresh(name)
            return False
        self.backend.add_path_segment(name, segment, scope)
        self.refresh(name)
        return True

    def is_variable_set(self, name: str, value: str, scope: Scope = Scope.USER) -> bool:
        return same_value(self.get(name, scope), value, case_insensitive=self._ci())

    def has_path_segment(self, name: str, segment: str, scope: Scope = Scope.USER) -> bool:
        return has_segment(self.get(name, scope), segment, self.delimiter, case_insensitive=self._ci())

    def remove_variable(self, name: str, scope: Scope = Scope.USER) -> None:
        self.backend.delete(name, scope)
        self.environ.pop(name, None)
        self.refresh(name)

    def remove_path_segment(self, name: str, segment: str, scope: Scope = Scope.USER) -> bool:
        removed = self.backend.remove_path_segment(name, segment, scope)
        current = self.environ.get(name)
        if current is not None:
            wanted = _norm(segment, self._ci())
            self.environ[name] = self.delimiter.join(
                p for p in split_path_like(current, self.delimiter) if _norm(p, self._ci()) != wanted
            )
        return removed

    def refresh(self, name: str) -> None:
        value = self.backend.compose(name, self.environ.get(name))
        if value is None:
            self.environ.pop(name, None)
        else:
            self.environ[name] = value
