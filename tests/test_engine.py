import anyio
import pytest

from logic_mcp.config import Settings
from logic_mcp.engine import SessionEngine
from logic_mcp.errors import EngineClosedError, PrologSyntaxError, SolverNotFoundError
from logic_mcp.solver import QueryOutcome, find_swipl

from conftest import StubInvoker, requires_swipl

pytestmark = pytest.mark.anyio

MAMMALS = """animal(cat).
animal(dog).
has_fur(cat).
has_fur(dog).
mammal(X) :- animal(X), has_fur(X).
"""


async def test_query_sees_loaded_facts(engine, invoker):
    await engine.load_facts("parent(tom, bob).")
    outcome = await engine.query("parent(tom, bob)")

    assert outcome.succeeded
    assert invoker.calls == [(("parent(tom, bob).",), "parent(tom, bob).")]


async def test_query_does_not_mutate_knowledge_base(engine):
    await engine.load_facts("a(1).")
    await engine.query("a(1).")
    assert engine.snapshot() == ("a(1).",)


async def test_empty_query_is_an_outcome_not_an_error(engine, invoker):
    outcome = await engine.query("   ")

    assert isinstance(outcome, QueryOutcome)
    assert not outcome.succeeded
    assert outcome.error_detail == "Empty query provided"
    assert invoker.calls == []


async def test_solver_failure_is_returned_as_data(engine):
    outcome = await engine.query("boom.")
    assert not outcome.succeeded
    assert outcome.error_detail.startswith("execution failed")


async def test_load_then_snapshot(engine):
    added = await engine.load_facts(MAMMALS)
    assert added == 5
    assert engine.snapshot()[-1] == "mammal(X) :- animal(X), has_fur(X)."


async def test_clear(engine):
    await engine.load_facts(MAMMALS)
    await engine.clear_knowledge_base()
    assert engine.snapshot() == ()
    await engine.clear_knowledge_base()
    assert engine.snapshot() == ()


async def test_validate_query(engine):
    engine.validate_query("member(X, [1,2,3]).")
    with pytest.raises(PrologSyntaxError):
        engine.validate_query("member(X, [1,2,3])")


class TestClose:
    async def test_operations_fail_after_close(self, engine):
        engine.close()
        assert engine.closed

        with pytest.raises(EngineClosedError, match="closed"):
            await engine.query("true.")
        with pytest.raises(EngineClosedError):
            await engine.load_facts("a(1).")
        with pytest.raises(EngineClosedError):
            await engine.clear_knowledge_base()
        with pytest.raises(EngineClosedError):
            engine.validate_query("true.")
        with pytest.raises(EngineClosedError):
            engine.snapshot()

    async def test_empty_query_after_close_still_fails(self, engine):
        engine.close()
        with pytest.raises(EngineClosedError):
            await engine.query("")

    async def test_close_twice(self, engine):
        engine.close()
        engine.close()
        assert engine.closed

    async def test_context_manager_closes(self, invoker):
        async with SessionEngine(invoker) as engine:
            await engine.query("true.")
        assert engine.closed

    async def test_in_flight_finishes_and_queued_fails(self):
        engine = SessionEngine(StubInvoker(delay=0.2))
        results = {}

        async def run(goal):
            try:
                results[goal] = await engine.query(goal)
            except EngineClosedError as e:
                results[goal] = e

        async with anyio.create_task_group() as tg:
            tg.start_soon(run, "true.")
            await anyio.sleep(0.05)
            tg.start_soon(run, "queued.")
            await anyio.sleep(0.05)
            engine.close()

        assert isinstance(results["true."], QueryOutcome)
        assert results["true."].succeeded
        assert isinstance(results["queued."], EngineClosedError)


class TestSerialization:
    async def test_queries_never_see_partial_load(self):
        invoker = StubInvoker(delay=0.01)
        engine = SessionEngine(invoker)
        await engine.load_facts("a(1).\na(2).")
        before = engine.snapshot()
        batch = "\n".join(f"b({i})." for i in range(50))

        async with anyio.create_task_group() as tg:
            for i in range(10):
                tg.start_soon(engine.query, f"a({i}).")
            tg.start_soon(engine.load_facts, batch)
            for i in range(10):
                tg.start_soon(engine.query, f"b({i}).")

        after = engine.snapshot()
        assert len(after) == 52
        assert len(invoker.calls) == 20
        for statements, _goal in invoker.calls:
            assert statements in (before, after)

    async def test_one_invocation_at_a_time(self):
        active = 0
        peak = 0

        class CountingInvoker(StubInvoker):
            async def invoke(self, statements, goal, timeout=None):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                try:
                    return await super().invoke(statements, goal, timeout)
                finally:
                    active -= 1

        engine = SessionEngine(CountingInvoker(delay=0.01))
        async with anyio.create_task_group() as tg:
            for i in range(8):
                tg.start_soon(engine.query, f"q({i}).")
        assert peak == 1

    async def test_waiters_served_in_arrival_order(self):
        invoker = StubInvoker(delay=0.01)
        engine = SessionEngine(invoker)

        async with anyio.create_task_group() as tg:
            for i in range(6):
                tg.start_soon(engine.query, f"q({i}).")
                await anyio.sleep(0)

        assert [goal for _, goal in invoker.calls] == [f"q({i})." for i in range(6)]

    async def test_engines_are_isolated(self):
        first = SessionEngine(StubInvoker())
        second = SessionEngine(StubInvoker())
        await first.load_facts("secret(1).")

        assert (await first.query("secret(1).")).succeeded
        assert not (await second.query("secret(1).")).succeeded
        assert second.snapshot() == ()


def test_create_without_solver(monkeypatch):
    def missing(preferred=None):
        raise SolverNotFoundError("SWI-Prolog not found")

    monkeypatch.setattr("logic_mcp.engine.find_swipl", missing)
    with pytest.raises(SolverNotFoundError):
        SessionEngine.create(Settings())


@requires_swipl
class TestWithSwipl:
    async def test_mammals(self):
        async with SessionEngine.create(Settings()) as engine:
            await engine.load_facts(MAMMALS)
            assert (await engine.query("mammal(cat).")).succeeded

            outcome = await engine.query("mammal(bird).")
            assert not outcome.succeeded
            assert outcome.error_detail is None

    async def test_family_tree(self):
        facts = """
% Facts
male(john).
male(bob).
female(mary).
parent(john, bob).
parent(mary, bob).
parent(bob, charlie).

% Rules
father(X, Y) :- male(X), parent(X, Y).
grandparent(X, Z) :- parent(X, Y), parent(Y, Z).
"""
        async with SessionEngine.create(Settings(swipl_path=find_swipl())) as engine:
            await engine.load_facts(facts)
            assert (await engine.query("father(john, bob).")).succeeded
            assert (await engine.query("grandparent(mary, charlie).")).succeeded
            assert not (await engine.query("father(mary, bob).")).succeeded
