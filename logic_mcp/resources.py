"""Read-only example programs served as MCP resources."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from logic_mcp.errors import ResourceNotFoundError

EXAMPLES_DIR = Path(__file__).parent / "examples"
MIME_TYPE = "text/prolog"


@dataclass(frozen=True)
class Resource:
    slug: str
    name: str
    description: str

    @property
    def uri(self) -> str:
        return f"prolog://examples/{self.slug}"

    @property
    def path(self) -> Path:
        return EXAMPLES_DIR / f"{self.slug}.pl"

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")

    def definition(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": MIME_TYPE,
        }


CATALOG = (
    Resource("basic", "Basic Prolog Examples", "Basic Prolog predicates and examples"),
    Resource("logic-puzzles", "Logic Puzzles", "Examples of logic puzzles solved with Prolog"),
    Resource("family-tree", "Family Tree Example", "Family relationships modeling in Prolog"),
)


def list_resources() -> list[dict[str, Any]]:
    return [resource.definition() for resource in CATALOG]


def find_resource(uri: str) -> Resource:
    """Resolve ``uri`` by its final path segment, as clients often vary the scheme."""
    for resource in CATALOG:
        if uri.endswith(resource.slug):
            return resource
    raise ResourceNotFoundError(uri)


def read_resource(uri: str) -> dict[str, Any]:
    """MCP ``contents`` entry for ``uri``."""
    resource = find_resource(uri)
    return {"uri": uri, "mimeType": MIME_TYPE, "text": resource.read()}
