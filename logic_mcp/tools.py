"""Tool registry and the Prolog tools exposed over MCP."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from logic_mcp.engine import SessionEngine
from logic_mcp.errors import EngineClosedError, PrologSyntaxError, UnknownToolError
from logic_mcp.solver import QueryOutcome

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    """What a tool hands back: readable text plus the raw fields behind it."""

    text: str
    is_error: bool = False
    structured: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "content": [{"type": "text", "text": self.text}],
            "isError": self.is_error,
        }
        if self.structured is not None:
            result["structuredContent"] = self.structured
        return result


Handler = Callable[[Any], Awaitable[ToolResult]]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    arguments: type[BaseModel]
    handler: Handler

    def definition(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.arguments.model_json_schema(),
        }


def describe_validation_error(error: ValidationError) -> str:
    problems = []
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"])
        if err["type"] == "missing":
            problems.append(f"'{field}' parameter is required")
        elif field:
            problems.append(f"'{field}' parameter: {err['msg']}")
        else:
            problems.append(f"arguments: {err['msg']}")
    return "; ".join(problems)


class ToolRegistry:
    """Maps tool names to handlers and checks arguments before calling them."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(
        self,
        name: str,
        description: str,
        arguments: type[BaseModel],
        handler: Handler,
    ) -> Tool:
        if name in self._tools:
            raise ValueError(f"tool already registered: {name}")
        tool = Tool(name, description, arguments, handler)
        self._tools[name] = tool
        return tool

    def tool(self, name: str, description: str, arguments: type[BaseModel]):
        """Decorator form of ``register``."""

        def decorator(handler: Handler) -> Handler:
            self.register(name, description, arguments, handler)
            return handler

        return decorator

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        return [tool.definition() for tool in self._tools.values()]

    async def dispatch(self, name: str, arguments: Any = None) -> ToolResult:
        """Run tool ``name`` with ``arguments``.

        Raises:
            UnknownToolError: if no tool is registered under ``name``. Bad
                arguments are not raised; they come back as an error result.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)

        if arguments is None:
            arguments = {}
        try:
            args = tool.arguments.model_validate(arguments)
        except ValidationError as e:
            return ToolResult(f"Error: {describe_validation_error(e)}", is_error=True)

        try:
            return await tool.handler(args)
        except EngineClosedError as e:
            return ToolResult(f"Failed to run {name}: {e}", is_error=True)


# Argument schemas


class _Arguments(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")


class QueryArgs(_Arguments):
    query: str = Field(
        description="The Prolog query to execute. Must end with a period. "
        "Example: 'member(X, [1,2,3]).'"
    )


class LoadFactsArgs(_Arguments):
    facts: str = Field(
        description="Prolog facts and rules to load, separated by newlines. "
        "Comments start with %. Example: 'parent(tom, bob).\\nparent(bob, pat).'"
    )


class ValidateSyntaxArgs(_Arguments):
    code: str = Field(
        description="Prolog code to validate syntax for. Can include facts, rules, or queries."
    )


class ClearArgs(_Arguments):
    pass


class SolveProblemArgs(_Arguments):
    problem_description: str = Field(description="A description of the logic problem to solve.")
    facts_and_rules: str = Field(description="Prolog facts and rules that define the problem domain.")
    # Items are checked one by one so a bad entry does not reject the call.
    queries: list[Any] = Field(
        description="List of queries to execute to solve the problem.",
        json_schema_extra={"items": {"type": "string"}},
    )


class ExplainArgs(_Arguments):
    query: str = Field(description="The Prolog query to explain.")
    facts: str = Field("", description="Relevant facts and rules (optional).")


def format_outcome(outcome: QueryOutcome, indent: str = "") -> list[str]:
    lines = [
        f"{indent}Query: {outcome.query}",
        f"{indent}Result: {str(outcome.succeeded).lower()}",
        f"{indent}Execution Time: {outcome.elapsed:.3f}s",
    ]
    if outcome.error_detail:
        lines.append(f"{indent}Error: {outcome.error_detail}")
    if outcome.raw_output.strip():
        lines.append(f"{indent}Output: {outcome.raw_output.strip()}")
    return lines


SUCCESS_RATIONALE = (
    "The query succeeded, meaning Prolog was able to prove the goal using the "
    "loaded facts and rules through logical inference."
)
FAILURE_RATIONALE = (
    "The query failed, meaning Prolog could not prove the goal with the available "
    "facts and rules; the goal may not be derivable, or required facts or rules "
    "may be missing."
)


def build_registry(engine: SessionEngine, timeout: Optional[float] = None) -> ToolRegistry:
    """Register the Prolog tools over ``engine``."""
    registry = ToolRegistry()

    @registry.tool(
        "prolog_query",
        "Execute a Prolog query and return results. Supports both simple queries "
        "and complex logic problems.",
        QueryArgs,
    )
    async def prolog_query(args: QueryArgs) -> ToolResult:
        outcome = await engine.query(args.query, timeout)
        return ToolResult("\n".join(format_outcome(outcome)), structured=outcome.to_dict())

    @registry.tool(
        "prolog_load_facts",
        "Load Prolog facts and rules into the knowledge base. Use this to define "
        "rules and facts before querying.",
        LoadFactsArgs,
    )
    async def prolog_load_facts(args: LoadFactsArgs) -> ToolResult:
        added = await engine.load_facts(args.facts)
        return ToolResult(
            f"Facts loaded successfully! ({added} statement(s) added)",
            structured={"loaded": added, "total": len(engine.snapshot())},
        )

    @registry.tool(
        "prolog_validate_syntax",
        "Validate Prolog syntax without executing. Use this to check if your "
        "Prolog code is syntactically correct.",
        ValidateSyntaxArgs,
    )
    async def prolog_validate_syntax(args: ValidateSyntaxArgs) -> ToolResult:
        try:
            engine.validate_query(args.code)
        except PrologSyntaxError as e:
            return ToolResult(
                f"Syntax validation failed: {e}",
                is_error=True,
                structured={"valid": False, "reason": e.reason.value},
            )
        return ToolResult("Syntax is valid!", structured={"valid": True})

    @registry.tool(
        "prolog_clear_kb",
        "Clear the Prolog knowledge base. This removes all loaded facts and rules.",
        ClearArgs,
    )
    async def prolog_clear_kb(args: ClearArgs) -> ToolResult:
        await engine.clear_knowledge_base()
        return ToolResult("Knowledge base cleared successfully!")

    @registry.tool(
        "prolog_solve_problem",
        "Solve a complex logic problem by loading facts/rules and then executing "
        "queries. This is a high-level tool that combines loading facts and querying.",
        SolveProblemArgs,
    )
    async def prolog_solve_problem(args: SolveProblemArgs) -> ToolResult:
        lines = [f"Solving Problem: {args.problem_description}", ""]

        await engine.clear_knowledge_base()
        added = await engine.load_facts(args.facts_and_rules)
        lines.append(f"Loaded {added} fact(s) and rule(s)")
        lines.append("")
        lines.append("Executing queries:")

        results = []
        for index, query in enumerate(args.queries, 1):
            if not isinstance(query, str):
                lines.append(f"[Failed] Query {index}: invalid query type (must be string)")
                results.append({
                    "index": index,
                    "query": query,
                    "succeeded": False,
                    "error_detail": "query must be a string",
                })
                continue

            try:
                outcome = await engine.query(query, timeout)
            except EngineClosedError as e:
                lines.append(f"[Failed] Query {index} ({query}): {e}")
                results.append({"index": index, "query": query, "succeeded": False, "error_detail": str(e)})
                continue

            status = "Success" if outcome.succeeded else "Failed"
            lines.append(f"[{status}] Query {index}: {outcome.query}")
            if outcome.error_detail:
                lines.append(f"   Error: {outcome.error_detail}")
            if outcome.raw_output.strip():
                lines.append(f"   Output: {outcome.raw_output.strip()}")
            results.append({"index": index, **outcome.to_dict()})

        return ToolResult(
            "\n".join(lines),
            structured={
                "problem": args.problem_description,
                "loaded": added,
                "results": results,
            },
        )

    @registry.tool(
        "prolog_explain_solution",
        "Explain how a Prolog solution works step by step. This tool provides "
        "educational explanations.",
        ExplainArgs,
    )
    async def prolog_explain_solution(args: ExplainArgs) -> ToolResult:
        lines = [f"Explaining Prolog Solution: {args.query}", ""]

        if args.facts.strip():
            added = await engine.load_facts(args.facts)
            lines.append(f"Loaded {added} provided fact(s) and rule(s)")
            lines.append("")

        outcome = await engine.query(args.query, timeout)
        lines.append("Query Execution:")
        lines.extend(format_outcome(outcome, indent="   "))
        lines.append("")
        lines.append("Explanation:")
        lines.append(SUCCESS_RATIONALE if outcome.succeeded else FAILURE_RATIONALE)

        return ToolResult("\n".join(lines), structured=outcome.to_dict())

    return registry
