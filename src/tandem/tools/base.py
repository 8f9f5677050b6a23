"""
tools/base.py — Tool Contract

Every capability the agent can invoke subclasses BaseTool:

    class ReadFile(BaseTool):
        name = "read_file"
        description = "Read a UTF-8 text file"
        kind = "filesystem"
        parameters = {
            "type": "object",
            "properties": {"path": {"type": "string"}},
            "required": ["path"],
        }

        async def execute(self, args, cancel, on_output=None) -> ToolOutput:
            ...

validate() defaults to a JSON-schema required/type check. should_confirm()
defaults to "no confirmation needed"; tools with side effects override it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Optional

from tandem.brain.types import ToolSchema
from tandem.tools.types import ConfirmationDetails, ToolOutput

if TYPE_CHECKING:
    from tandem.cancellation import CancellationToken

OutputCallback = Callable[[str], None]

_JSON_TYPE_MAP: dict[str, type | tuple] = {
    "string":  str,
    "integer": int,
    "number":  (int, float),
    "boolean": bool,
    "array":   list,
    "object":  dict,
}


def validate_args(arguments: dict, schema: dict) -> Optional[str]:
    """
    Validate tool arguments against a JSON schema.
    Returns an error string if invalid, None if valid.

    Checks:
      1. All required fields are present.
      2. Provided values match the declared JSON Schema types.
    """
    required = schema.get("required", [])
    properties = schema.get("properties", {})

    for field in required:
        if field not in arguments:
            return f"Missing required field: '{field}'"

    for field, value in arguments.items():
        prop_schema = properties.get(field)
        if prop_schema is None:
            continue  # unknown field, lenient
        json_type = prop_schema.get("type")
        expected = _JSON_TYPE_MAP.get(json_type) if json_type else None
        if expected is None:
            continue
        # bool is a subclass of int
        if json_type in ("integer", "number") and isinstance(value, bool):
            return f"Field '{field}': expected {json_type}, got boolean"
        if not isinstance(value, expected):
            return f"Field '{field}': expected {json_type}, got {type(value).__name__}"

    return None


class BaseTool(ABC):
    """Abstract base for a registered capability."""

    name: str = ""
    description: str = ""
    kind: str = "general"       # tool class used by "always allow"
    parameters: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

    def validate(self, args: dict[str, Any]) -> Optional[str]:
        return validate_args(args, self.parameters)

    async def should_confirm(
        self, args: dict[str, Any], cancel: "CancellationToken"
    ) -> Optional[ConfirmationDetails]:
        return None

    @abstractmethod
    async def execute(
        self,
        args: dict[str, Any],
        cancel: "CancellationToken",
        on_output: Optional[OutputCallback] = None,
    ) -> ToolOutput:
        """Run the tool. Raising marks the call as ERROR."""
        ...

    def schema(self) -> ToolSchema:
        return ToolSchema(name=self.name, description=self.description, parameters=self.parameters)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} kind={self.kind!r}>"
