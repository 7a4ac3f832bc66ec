"""Per-session Prolog engine: knowledge base plus a serialized solver."""

import contextlib
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Optional

import anyio

from logic_mcp import syntax
from logic_mcp.config import Settings
from logic_mcp.errors import EngineClosedError
from logic_mcp.knowledge_base import KnowledgeBase
from logic_mcp.solver import QueryOutcome, SolverInvoker, find_swipl

logger = logging.getLogger(__name__)


class SessionEngine:
    """Owns one knowledge base and one solver gate.

    ``query``, ``load_facts`` and ``clear_knowledge_base`` go through a single
    fair lock, so a query always sees a whole knowledge base and at most one
    solver process runs per engine. Waiters are served in arrival order. The
    query timeout only starts once the gate is held; time spent queued is not
    bounded.

    Program files live only for the duration of one invocation, so closing
    has nothing left on disk to remove.
    """

    def __init__(self, invoker: SolverInvoker, session_id: Optional[str] = None):
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._invoker = invoker
        self._kb = KnowledgeBase()
        self._gate = anyio.Lock()
        self._closed = False
        logger.debug("[%s] engine created", self.session_id)

    @classmethod
    def create(cls, settings: Settings, session_id: Optional[str] = None) -> "SessionEngine":
        """Build an engine with the solver configured in ``settings``.

        Raises:
            SolverNotFoundError: if no swipl executable works.
        """
        executable = find_swipl(settings.swipl_path)
        return cls(SolverInvoker(executable, settings.timeout), session_id=session_id)

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise EngineClosedError()

    @contextlib.asynccontextmanager
    async def _gated(self) -> AsyncIterator[None]:
        self._ensure_open()
        async with self._gate:
            # Closed while we were queued.
            self._ensure_open()
            yield

    async def query(self, text: str, timeout: Optional[float] = None) -> QueryOutcome:
        """Execute a goal against the current knowledge base.

        Empty input is returned as a failed outcome rather than raised, so
        callers can tell bad input apart from a closed engine.
        """
        self._ensure_open()
        text = text.strip()
        if not text:
            return QueryOutcome(query="", succeeded=False, error_detail="Empty query provided")

        goal = syntax.ensure_terminated(text)
        async with self._gated():
            outcome = await self._invoker.invoke(self._kb.snapshot(), goal, timeout)
        logger.debug(
            "[%s] %s -> %s in %.3fs",
            self.session_id, goal, outcome.succeeded, outcome.elapsed,
        )
        return outcome

    async def load_facts(self, text: str) -> int:
        """Append facts and rules to the knowledge base; returns how many."""
        async with self._gated():
            added = self._kb.load(text)
        logger.debug("[%s] loaded %d statement(s)", self.session_id, added)
        return added

    async def clear_knowledge_base(self) -> None:
        async with self._gated():
            self._kb.clear()
        logger.debug("[%s] knowledge base cleared", self.session_id)

    def validate_query(self, text: str) -> None:
        """Static syntax check; raises ``PrologSyntaxError`` when invalid."""
        self._ensure_open()
        syntax.validate(text)

    def snapshot(self) -> tuple[str, ...]:
        self._ensure_open()
        return self._kb.snapshot()

    def close(self) -> None:
        """Close the engine. Safe to call repeatedly.

        An operation already holding the gate runs to completion; anything
        started or still queued afterwards raises ``EngineClosedError``.
        """
        if self._closed:
            return
        self._closed = True
        logger.info("[%s] session closed", self.session_id)

    async def __aenter__(self) -> "SessionEngine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()
