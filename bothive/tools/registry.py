"""Registry of tools keyed by name and capability."""
from __future__ import annotations

from typing import Callable, Dict, Iterable, Iterator, List, Optional

from bothive.core.models import ToolDescriptor, ToolRunner
from bothive.errors import ToolNotFoundError


def tool(name: str, capability: str, description: str = "") -> Callable[[ToolRunner], ToolDescriptor]:
    """Decorator turning an async ``run(args, context)`` function into a ToolDescriptor."""

    def wrap(fn: ToolRunner) -> ToolDescriptor:
        return ToolDescriptor(
            name=name,
            capability=capability,
            description=description or (fn.__doc__ or "").strip(),
            run=fn,
        )

    return wrap


class ToolRegistry:
    """Registry maintaining tool definitions by name, with capability fallback."""

    def __init__(self, tools: Iterable[ToolDescriptor] = ()) -> None:
        self._tools: Dict[str, ToolDescriptor] = {}
        for descriptor in tools:
            self.register(descriptor)

    def register(self, descriptor: ToolDescriptor) -> None:
        self._tools[descriptor.name] = descriptor

    def get(self, name: str) -> ToolDescriptor:
        if name not in self._tools:
            raise ToolNotFoundError(f"No tool registered with name: {name}")
        return self._tools[name]

    def find(self, name_or_capability: str) -> Optional[ToolDescriptor]:
        """Exact name first, then the first tool offering the capability."""
        if name_or_capability in self._tools:
            return self._tools[name_or_capability]
        for descriptor in self._tools.values():
            if descriptor.capability == name_or_capability:
                return descriptor
        return None

    def resolve(self, name_or_capability: str) -> ToolDescriptor:
        descriptor = self.find(name_or_capability)
        if descriptor is None:
            raise ToolNotFoundError(f"No tool registered for: {name_or_capability}")
        return descriptor

    def names(self) -> List[str]:
        return list(self._tools)

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(list(self._tools.values()))


def as_registry(tools: "ToolRegistry | Iterable[ToolDescriptor] | None") -> ToolRegistry:
    if isinstance(tools, ToolRegistry):
        return tools
    return ToolRegistry(tools or ())
