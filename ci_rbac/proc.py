from __future__ import annotations

from dataclasses import dataclass
import shutil
import subprocess
from typing import Callable

CommandRunner = Callable[[list[str]], subprocess.CompletedProcess[str]]

MISSING_BINARY_RETURNCODE = 127
_DETAIL_LIMIT = 400


@dataclass(frozen=True)
class CommandResult:
    command: list[str]
    returncode: int
    stdout: str
    stderr: str


class AdapterCommandError(RuntimeError):
    def __init__(self, *, message: str, result: CommandResult) -> None:
        self.result = result
        super().__init__(self._build_message(message))

    @property
    def not_found(self) -> bool:
        text = f"{self.result.stderr}\n{self.result.stdout}".lower()
        return "not found" in text or "notfound" in text

    def _build_message(self, message: str) -> str:
        detail = (self.result.stderr or self.result.stdout).strip()
        if len(detail) > _DETAIL_LIMIT:
            detail = f"{detail[:_DETAIL_LIMIT - 3]}..."
        cmd = " ".join(self.result.command)
        return f"{message} (returncode={self.result.returncode}, command={cmd!r}, detail={detail!r})"


def default_runner(command: list[str]) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(command, capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        # Same exit status a shell reports for an unknown command.
        return subprocess.CompletedProcess(
            args=command, returncode=MISSING_BINARY_RETURNCODE, stdout="", stderr=str(exc)
        )


def which(binary: str) -> str | None:
    return shutil.which(binary)


def run_command(
    command: list[str],
    *,
    runner: CommandRunner | None = None,
    error_message: str,
) -> CommandResult:
    active_runner = runner or default_runner
    completed = active_runner(command)
    result = CommandResult(
        command=command,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
    if result.returncode != 0:
        raise AdapterCommandError(message=error_message, result=result)
    return result
