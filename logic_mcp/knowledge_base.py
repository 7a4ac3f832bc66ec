"""Append-only store of Prolog facts and rules owned by one session."""

from logic_mcp.syntax import ensure_terminated

COMMENT = "%"


class KnowledgeBase:
    """Ordered list of normalized statements.

    Statements are kept exactly in load order because they are concatenated
    verbatim into every generated program. The store does no locking of its
    own; the owning ``SessionEngine`` serializes access.
    """

    def __init__(self):
        self._statements: list[str] = []

    def load(self, text: str) -> int:
        """Append every non-blank, non-comment line of ``text``.

        Returns the number of statements added. Malformed Prolog is accepted
        here and only surfaces when a query uses it.
        """
        added = 0
        for line in text.split("\n"):
            line = line.strip()
            if not line or line.startswith(COMMENT):
                continue
            self._statements.append(ensure_terminated(line))
            added += 1
        return added

    def clear(self) -> None:
        self._statements = []

    def snapshot(self) -> tuple[str, ...]:
        return tuple(self._statements)

    def render(self) -> str:
        """Program text for the current statements."""
        return "\n".join(self._statements)

    def __len__(self) -> int:
        return len(self._statements)
