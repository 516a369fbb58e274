"""Wrappers around the ecosystem listing commands (cargo tree, go list)."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Sequence

from .errors import ExtractionFailure, PreconditionViolation

logger = logging.getLogger("xdrsync.toolchain")


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str = ""

    @property
    def combined(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part).strip()


CommandRunner = Callable[[Sequence[str], Path], CommandResult]


def run_command(args: Sequence[str], cwd: Path) -> CommandResult:
    logger.debug("run_command: %s (cwd=%s)", " ".join(args), cwd)
    proc = subprocess.run(list(args), cwd=cwd, capture_output=True, text=True)
    return CommandResult(proc.returncode, proc.stdout, proc.stderr)


class Toolchain:
    """Issue listing commands for one project checkout."""

    def __init__(
        self,
        root: Path,
        runner: CommandRunner = run_command,
        *,
        cargo: str = "cargo",
        go: str = "go",
    ) -> None:
        self.root = root
        self.runner = runner
        self.cargo = cargo
        self.go = go

    def _run(self, args: List[str], stage: str) -> CommandResult:
        try:
            return self.runner(args, self.root)
        except FileNotFoundError as exc:
            raise ExtractionFailure(
                stage, f"{args[0]} is not installed or not on PATH"
            ) from exc

    def cargo_tree(
        self, package: str, *, depth: int | None = None, stage: str = "cargo-tree"
    ) -> CommandResult:
        args = [self.cargo, "tree"]
        if depth is not None:
            args += ["--depth", str(depth)]
        args += ["-p", package]
        return self._run(args, stage)

    def native_listing(self, package: str, *, stage: str) -> str:
        """Return ``cargo tree --depth 0 -p <package>`` output.

        Cargo refuses ``-p`` for a package resolved at several versions, so a
        non-zero exit is reported as a precondition violation.
        """
        result = self.cargo_tree(package, depth=0, stage=stage)
        if result.returncode != 0:
            raise PreconditionViolation(
                stage,
                f"the project depends on multiple versions of {package}",
                hint=f"Make sure a single version of {package} is used",
                raw_output=result.combined,
            )
        return result.stdout

    def module_listing(self, module: str, *, stage: str) -> str:
        result = self._run(
            [self.go, "list", "-m", "-f", "{{.Version}}", module], stage
        )
        if result.returncode != 0:
            raise PreconditionViolation(
                stage,
                f"go could not resolve a single version of {module}",
                hint=f"Run `go mod tidy` and make sure {module} is required once",
                raw_output=result.combined,
            )
        return result.stdout
