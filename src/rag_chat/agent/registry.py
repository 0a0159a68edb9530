"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field

from rag_chat.types import ToolTrace


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[Any], Awaitable[str]]
    tags: list[str] = Field(default_factory=list)

    async def ainvoke(self, payload: dict[str, Any]) -> str:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data)


class ToolRegistry:
    """Stores tool specs and exports LangChain-compatible tool objects.

    The observer is fixed for the registry's lifetime and must not hold
    per-request state: one registry serves every request.
    """

    def __init__(self, observer: Callable[[ToolTrace], None] | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer = observer

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    async def execute(self, name: str, payload: dict[str, Any]) -> str:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return await self._execute_spec(spec, payload)

    def as_langchain_tools(self) -> list[StructuredTool]:
        return [
            StructuredTool.from_function(
                name=spec.name,
                description=spec.description,
                args_schema=spec.args_schema,
                coroutine=self._build_coroutine(spec),
            )
            for spec in self._tools.values()
        ]

    def _build_coroutine(self, spec: ToolSpec) -> Callable[..., Awaitable[str]]:
        async def _call(**kwargs: Any) -> str:
            return await self._execute_spec(spec, kwargs)

        return _call

    async def _execute_spec(self, spec: ToolSpec, payload: dict[str, Any]) -> str:
        start = perf_counter()
        output = await spec.ainvoke(payload)
        latency_ms = (perf_counter() - start) * 1000.0

        if self._observer is not None:
            self._observer(
                ToolTrace(
                    name=spec.name,
                    input_payload=payload,
                    output_preview=output[:320],
                    latency_ms=latency_ms,
                )
            )
        return output
