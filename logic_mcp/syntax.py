"""Cheap structural checks for Prolog text before it is sent to the solver."""

from typing import Optional

from logic_mcp.errors import PrologSyntaxError, SyntaxReason

TERMINATOR = "."


def ensure_terminated(text: str) -> str:
    """Trim ``text`` and append the clause terminator if it is missing."""
    text = text.strip()
    if not text.endswith(TERMINATOR):
        text += TERMINATOR
    return text


def _check_balanced(text: str, open_char: str, close_char: str) -> Optional[str]:
    depth = 0
    for ch in text:
        if ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth < 0:
                return f"unmatched closing {close_char!r}"
    if depth != 0:
        return f"unmatched opening {open_char!r}"
    return None


def validate(text: str) -> None:
    """Validate Prolog syntax without executing it.

    Only the shape of the text is checked: it must be non-empty, end with a
    period, and have balanced parentheses and brackets. Unknown predicates or
    arity mismatches are left for the solver to report.

    Raises:
        PrologSyntaxError: for the first rule the text breaks.
    """
    text = text.strip()
    if not text:
        raise PrologSyntaxError(SyntaxReason.EMPTY_INPUT, "empty query")

    if not text.endswith(TERMINATOR):
        raise PrologSyntaxError(
            SyntaxReason.MISSING_TERMINATOR, "query must end with a period"
        )

    problem = _check_balanced(text, "(", ")")
    if problem:
        raise PrologSyntaxError(
            SyntaxReason.UNBALANCED_PARENS, f"unbalanced parentheses: {problem}"
        )

    problem = _check_balanced(text, "[", "]")
    if problem:
        raise PrologSyntaxError(
            SyntaxReason.UNBALANCED_BRACKETS, f"unbalanced brackets: {problem}"
        )
