"""Registry of tool definitions keyed by unique name."""

from typing import Any, Iterator

from ..exceptions import ToolRegistrationError
from ..logging import get_logger
from .models import ToolDefinition
from .schema import SchemaError, check_schema


class ToolRegistry:
    """Holds the tools an agent may call.

    Definitions are immutable once registered. Registering a name twice is an
    error unless the caller explicitly asks to replace the existing tool.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self.logger = get_logger()

    def register(self, definition: ToolDefinition, replace: bool = False) -> None:
        """
        Register a tool.

        Args:
            definition: The tool to add
            replace: Overwrite an existing tool with the same name

        Raises:
            ToolRegistrationError: If the name is taken or a schema is invalid
        """
        name = definition.name
        for label, schema in (("input", definition.input_schema), ("output", definition.output_schema)):
            if not schema:
                continue
            try:
                check_schema(schema)
            except SchemaError as e:
                raise ToolRegistrationError(
                    f"Invalid {label} schema: {e.message}", name
                ) from e

        if name in self._tools:
            if not replace:
                raise ToolRegistrationError("Tool is already registered", name)
            self.logger.logger.warning(
                f"Replacing tool {name}@{self._tools[name].version} "
                f"with version {definition.version}"
            )

        self._tools[name] = definition
        self.logger.log_configuration(
            "tool_registered",
            {
                "name": name,
                "version": definition.version,
                "auth_level": definition.auth_level.value,
                "rate_limit_per_minute": definition.rate_limit_per_minute,
                "allowed_channels": [c.value for c in definition.allowed_channels],
            },
        )

    def get(self, name: str) -> ToolDefinition | None:
        """Get a tool by name, or None if it is not registered."""
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get_all(self) -> list[ToolDefinition]:
        """All tools in registration order."""
        return list(self._tools.values())

    def to_function_specs(self) -> list[dict[str, Any]]:
        """Describe every tool as ``{name, description, parameters}`` for an LLM prompt."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            }
            for tool in self._tools.values()
        ]

    def to_openai_tools(self) -> list[dict[str, Any]]:
        """Describe every tool in the OpenAI ``tools`` request format."""
        return [{"type": "function", "function": spec} for spec in self.to_function_specs()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(list(self._tools.values()))
