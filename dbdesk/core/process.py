"""External command execution for pg_dump, psql and pg_restore."""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .exceptions import ProcessError


logger = logging.getLogger(__name__)


@dataclass
class ProcessOutput:
    """Captured output of a successful command."""
    stdout: str
    stderr: str


class ProcessRunner:
    """Runs one command line to completion and reports failure as ProcessError.

    No retries: a non-zero exit is always handed back to the caller.
    """

    def __init__(self, timeout: Optional[float] = None, bin_dir: Optional[str] = None):
        self.timeout = timeout
        self.bin_dir = bin_dir

    def resolve(self, program: str) -> str:
        """Prefix a tool name with the configured binary directory."""
        if self.bin_dir:
            return str(Path(self.bin_dir) / program)
        return program

    def run(self, args: List[str], env: Optional[Dict[str, str]] = None) -> ProcessOutput:
        """Run ``args`` and return captured output."""
        command = [self.resolve(args[0])] + list(args[1:])
        logger.debug(f"Running command: {' '.join(command)}")

        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=full_env,
            )
        except FileNotFoundError as e:
            logger.error(f"Command not found: {command[0]}")
            raise ProcessError(127, str(e), command) from e
        except subprocess.TimeoutExpired as e:
            logger.error(f"Command timed out after {self.timeout}s: {command[0]}")
            stderr = e.stderr if isinstance(e.stderr, str) else ""
            raise ProcessError(None, stderr or f"timed out after {self.timeout}s", command) from e

        if result.returncode != 0:
            logger.error(f"{command[0]} failed with code {result.returncode}: {result.stderr.strip()}")
            raise ProcessError(result.returncode, result.stderr, command)

        return ProcessOutput(stdout=result.stdout, stderr=result.stderr)


def full_dump_command(database: str, output_path: str, connection_args: Sequence[str] = ()) -> List[str]:
    """pg_dump of schema and data as plain SQL."""
    return ["pg_dump", *connection_args, "-F", "p", "-f", output_path, database]


def schema_dump_command(database: str, output_path: str, connection_args: Sequence[str] = ()) -> List[str]:
    """pg_dump of the schema only."""
    return ["pg_dump", *connection_args, "-s", "-F", "p", "-f", output_path, database]


def sql_restore_command(database: str, input_path: str, connection_args: Sequence[str] = ()) -> List[str]:
    """Replay a plain SQL dump with psql, stopping at the first error."""
    return ["psql", *connection_args, "-v", "ON_ERROR_STOP=1", "-d", database, "-f", input_path]


def archive_restore_command(database: str, input_path: str, connection_args: Sequence[str] = ()) -> List[str]:
    """Restore a tar archive dump with pg_restore."""
    return ["pg_restore", *connection_args, "-d", database, input_path]
