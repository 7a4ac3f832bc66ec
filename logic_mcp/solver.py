"""SWI-Prolog invocation: one child process per query."""

import contextlib
import functools
import logging
import os
import subprocess
import tempfile
import time
from collections.abc import Iterator, Sequence
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

import anyio

from logic_mcp.errors import SolverNotFoundError
from logic_mcp.syntax import TERMINATOR, ensure_terminated

logger = logging.getLogger(__name__)

SUCCESS_MARKER = "SUCCESS: true"
FAILURE_MARKER = "SUCCESS: false"

# Wraps the user's goal; prints exactly one marker and halts.
DRIVER_TEMPLATE = """
main :-
    (   ({goal}) ->
        write('{success}')
    ;   write('{failure}')
    ),
    nl,
    halt.
"""

SWIPL_CANDIDATES = (
    "swipl",
    "/usr/bin/swipl",
    "/usr/local/bin/swipl",
    "/opt/homebrew/bin/swipl",
    "/Applications/SWI-Prolog.app/Contents/MacOS/swipl",
)


@dataclass(frozen=True)
class QueryOutcome:
    """Result of a single solver invocation."""

    query: str
    succeeded: bool
    raw_output: str = ""
    error_detail: Optional[str] = None
    elapsed: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@functools.lru_cache(maxsize=None)
def find_swipl(preferred: Optional[str] = None) -> str:
    """Find a working swipl executable, trying ``preferred`` first."""
    candidates = [preferred] if preferred else []
    candidates.extend(SWIPL_CANDIDATES)

    for path in candidates:
        try:
            result = subprocess.run(
                [path, "--version"],
                capture_output=True,
                timeout=2,
                text=True,
            )
            if result.returncode == 0:
                logger.debug("Using %s (%s)", path, result.stdout.strip())
                return path
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
            continue

    raise SolverNotFoundError(
        "SWI-Prolog not found. Install it (apt-get install swi-prolog, "
        "brew install swi-prolog) or set LOGIC_MCP_SWIPL"
    )


def build_program(statements: Sequence[str], goal: str) -> str:
    """Concatenate the knowledge base with the driver clause for ``goal``."""
    goal = ensure_terminated(goal)[: -len(TERMINATOR)]
    program = "\n".join(statements)
    if program:
        program += "\n"
    return program + DRIVER_TEMPLATE.format(
        goal=goal, success=SUCCESS_MARKER, failure=FAILURE_MARKER
    )


@contextlib.contextmanager
def program_file(source: str) -> Iterator[Path]:
    """Write ``source`` to a uniquely named temp file, removed on exit.

    The file is removed even when writing fails part way.
    """
    tmp = tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", prefix="logic_mcp_", suffix=".pl", delete=False
    )
    path = Path(tmp.name)
    try:
        with tmp:
            tmp.write(source)
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(path)


class SolverInvoker:
    """Runs goals against a program text with an external swipl process.

    The solver keeps no state between calls; every invocation gets the full
    knowledge base again.
    """

    def __init__(self, executable: str, timeout: float = 10.0):
        self.executable = executable
        self.timeout = timeout

    def command(self, path: Path) -> list[str]:
        return [self.executable, "-q", "-g", "main", "-t", "halt", str(path)]

    async def invoke(
        self,
        statements: Sequence[str],
        goal: str,
        timeout: Optional[float] = None,
    ) -> QueryOutcome:
        """Prove ``goal`` against ``statements`` and classify the result.

        Failures to run the solver are reported in the outcome, never raised.
        Cancellation of the calling task kills the child and propagates.
        """
        goal = ensure_terminated(goal)
        timeout = timeout or self.timeout
        started = time.monotonic()

        def outcome(succeeded: bool, output: str = "", detail: Optional[str] = None):
            return QueryOutcome(
                query=goal,
                succeeded=succeeded,
                raw_output=output,
                error_detail=detail,
                elapsed=time.monotonic() - started,
            )

        try:
            with program_file(build_program(statements, goal)) as path:
                logger.debug("Running %s with %d statement(s)", goal, len(statements))
                with anyio.fail_after(timeout):
                    result = await anyio.run_process(
                        self.command(path),
                        stdin=subprocess.DEVNULL,
                        stderr=subprocess.STDOUT,
                        check=False,
                    )
        except TimeoutError:
            logger.warning("Query %s timed out after %s seconds", goal, timeout)
            return outcome(False, detail=f"query timed out after {timeout:g} seconds")
        except UnicodeEncodeError as e:
            # Lone surrogates survive JSON decoding but cannot be written out.
            return outcome(False, detail=f"program text is not valid UTF-8: {e.reason}")
        except OSError as e:
            return outcome(False, detail=f"failed to start solver: {e}")

        output = result.stdout.decode("utf-8", errors="replace")
        if result.returncode != 0:
            return outcome(
                False, output, f"execution failed: exit status {result.returncode}"
            )
        if SUCCESS_MARKER in output:
            return outcome(True, output)
        if FAILURE_MARKER in output:
            return outcome(False, output)
        return outcome(False, output, "solver produced no result marker")
