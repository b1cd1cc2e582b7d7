from __future__ import annotations

import subprocess
from pathlib import Path
from types import SimpleNamespace
from typing import Callable

import pytest

from limine_run import build_run


class _RecordingRun:
    """Stands in for subprocess.run and fakes each tool's side effects"""

    def __init__(self) -> None:
        self.calls: list[tuple[list[str], object]] = []
        self.returncodes: dict[str, int] = {}
        self.missing: set[str] = set()
        self.no_output: set[str] = set()
        self.hooks: dict[str, Callable[[list[str]], None]] = {}

    def __call__(self, cmd: list[str], cwd: object = None, **_: object) -> SimpleNamespace:
        cmd = [str(c) for c in cmd]
        self.calls.append((cmd, cwd))
        tool = Path(cmd[0]).name
        if tool in self.missing:
            raise FileNotFoundError(cmd[0])
        if tool in self.hooks:
            self.hooks[tool](cmd)

        if cmd[:2] == ["git", "clone"]:
            checkout = Path(cmd[-1])
            checkout.mkdir(parents=True)
            for name in build_run.LIMINE_FILES:
                (checkout / name).write_bytes(b"limine " + name.encode())
        elif tool == "make" and tool not in self.no_output:
            build_run.limine_deploy_path().write_bytes(b"deploy")
        elif tool == "xorriso" and tool not in self.no_output:
            Path(cmd[cmd.index("-o") + 1]).write_bytes(b"iso")

        return SimpleNamespace(returncode=self.returncodes.get(tool, 0))

    def commands(self, tool: str) -> list[list[str]]:
        return [cmd for cmd, _ in self.calls if Path(cmd[0]).name == tool]

    def tools(self) -> list[str]:
        return [" ".join(cmd[:2]) if cmd[0] == "git" else Path(cmd[0]).name for cmd, _ in self.calls]


@pytest.fixture
def fake_run(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> _RecordingRun:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(build_run.QEMU_ENV, raising=False)
    recorder = _RecordingRun()
    monkeypatch.setattr(subprocess, "run", recorder)
    return recorder


@pytest.fixture
def kernel(tmp_path: Path) -> Path:
    path = tmp_path / "kernel.bin"
    path.write_bytes(b"\x7fELF kernel")
    return path
