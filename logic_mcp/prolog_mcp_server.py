#!/usr/bin/env python3
"""FastMCP server for SWI-Prolog execution.

Same tools and resources as the built-in JSON-RPC front end, hosted by
FastMCP for clients that expect its full MCP handshake.
"""

from typing import Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from logic_mcp import resources
from logic_mcp.config import Settings
from logic_mcp.engine import SessionEngine
from logic_mcp.tools import ToolResult, build_registry


def _render(result: ToolResult) -> str:
    if result.is_error:
        raise ToolError(result.text)
    return result.text


def build_fastmcp(engine: SessionEngine, timeout: Optional[float] = None) -> FastMCP:
    """Build a FastMCP app whose tools all share ``engine``."""
    mcp = FastMCP("Logic MCP")
    registry = build_registry(engine, timeout)

    @mcp.tool()
    async def prolog_query(query: str) -> str:
        """Execute a Prolog query and return results.

        Args:
            query: The Prolog query to execute (e.g., 'member(X, [1,2,3]).')

        Returns:
            The result of the Prolog query execution
        """
        return _render(await registry.dispatch("prolog_query", {"query": query}))

    @mcp.tool()
    async def prolog_load_facts(facts: str) -> str:
        """Load Prolog facts and rules into the knowledge base.

        Args:
            facts: Facts and rules separated by newlines (e.g., 'parent(tom, bob).\\nparent(bob, pat).')
        """
        return _render(await registry.dispatch("prolog_load_facts", {"facts": facts}))

    @mcp.tool()
    async def prolog_validate_syntax(code: str) -> str:
        """Validate Prolog syntax without executing."""
        return _render(await registry.dispatch("prolog_validate_syntax", {"code": code}))

    @mcp.tool()
    async def prolog_clear_kb() -> str:
        """Clear the Prolog knowledge base."""
        return _render(await registry.dispatch("prolog_clear_kb", {}))

    @mcp.tool()
    async def prolog_solve_problem(
        problem_description: str, facts_and_rules: str, queries: list[str]
    ) -> str:
        """Clear the knowledge base, load facts and rules, then run each query.

        Args:
            problem_description: A description of the logic problem to solve
            facts_and_rules: Prolog facts and rules that define the problem domain
            queries: Queries to execute; each one is reported on its own
        """
        return _render(await registry.dispatch("prolog_solve_problem", {
            "problem_description": problem_description,
            "facts_and_rules": facts_and_rules,
            "queries": queries,
        }))

    @mcp.tool()
    async def prolog_explain_solution(query: str, facts: str = "") -> str:
        """Run a query (optionally after loading facts) and explain the result."""
        return _render(await registry.dispatch(
            "prolog_explain_solution", {"query": query, "facts": facts}
        ))

    for resource in resources.CATALOG:
        mcp.resource(
            resource.uri,
            name=resource.name,
            description=resource.description,
            mime_type=resources.MIME_TYPE,
        )(resource.read)

    return mcp


def run_fastmcp(settings: Settings) -> None:
    """Serve over stdio through FastMCP with one engine for the process."""
    engine = SessionEngine.create(settings)
    try:
        build_fastmcp(engine, settings.timeout).run()
    finally:
        engine.close()


if __name__ == "__main__":
    run_fastmcp(Settings.from_env())
