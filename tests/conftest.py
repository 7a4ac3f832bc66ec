import os
import shutil
import stat

import anyio
import pytest

from logic_mcp.engine import SessionEngine
from logic_mcp.solver import QueryOutcome

requires_swipl = pytest.mark.skipif(
    shutil.which("swipl") is None, reason="SWI-Prolog (swipl) not installed"
)


class StubInvoker:
    """Stands in for swipl: a goal is proven when it is literally a loaded fact.

    ``boom.`` simulates a solver crash.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls = []

    async def invoke(self, statements, goal, timeout=None):
        self.calls.append((tuple(statements), goal))
        if self.delay:
            await anyio.sleep(self.delay)
        if goal == "boom.":
            return QueryOutcome(
                query=goal,
                succeeded=False,
                raw_output="ERROR: boom",
                error_detail="execution failed: exit status 1",
            )
        succeeded = goal == "true." or goal in statements
        return QueryOutcome(
            query=goal,
            succeeded=succeeded,
            raw_output=f"SUCCESS: {str(succeeded).lower()}\n",
        )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def invoker():
    return StubInvoker()


@pytest.fixture
def engine(invoker):
    engine = SessionEngine(invoker)
    yield engine
    engine.close()


@pytest.fixture
def fake_swipl(tmp_path):
    """Write an executable shell script that plays the part of swipl.

    The program file is the sixth argument (``-q -g main -t halt FILE``).
    """
    counter = iter(range(1000))

    def make(body: str) -> str:
        path = tmp_path / f"swipl-{next(counter)}"
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return os.fspath(path)

    return make
