"""
CommandRunner: execução de comandos externos dos passos de recovery.
"""

import shlex
import subprocess
from abc import ABC, abstractmethod

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


class CommandResult(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0


class CommandRunner(ABC):
    """Executa uma linha de comando e devolve stdout, stderr e exit code."""

    @abstractmethod
    def run(self, command: str) -> CommandResult:
        pass


class SubprocessCommandRunner(CommandRunner):
    """
    Executa comandos via subprocess, sem shell.

    Timeout é reportado como exit code 124 (convenção do coreutils timeout).
    """

    TIMEOUT_EXIT_CODE = 124

    def __init__(self, timeout_seconds: int = 600):
        self.timeout_seconds = timeout_seconds

    def run(self, command: str) -> CommandResult:
        args = shlex.split(command)

        logger.info("Executando comando", command=command, timeout_seconds=self.timeout_seconds)

        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("Timeout ao executar comando", command=command)
            return CommandResult(
                stdout=_as_text(e.stdout),
                stderr=f"Timeout após {self.timeout_seconds}s",
                exit_code=self.TIMEOUT_EXIT_CODE,
            )
        except FileNotFoundError as e:
            logger.error("Executável não encontrado", command=command, error=str(e))
            return CommandResult(stderr=str(e), exit_code=127)

        return CommandResult(
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.returncode,
        )


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value
