"""Citation and tool-result extraction from completed responses.

One loop walks ``response.output`` in order; per-family mappers turn
``annotation`` and ``tool_result`` entries into normalized records. Adding a
tool family means registering a mapper, never touching the loop.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tandem.models import Annotation, CompletedResponse, ExtractionResult, ToolResult

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


@runtime_checkable
class ToolFamily(Protocol):
    """Maps one tool family's raw annotation and result records."""

    def annotation(self, raw: Mapping[str, Any]) -> Annotation:
        """Normalize an ``annotation`` entry whose source is this family."""
        ...

    def result(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Normalize one element of a ``tool_result`` entry's results."""
        ...


class FileSearchFamily:
    """Document search: citations carry document id, passage and score."""

    def annotation(self, raw: Mapping[str, Any]) -> Annotation:
        return Annotation(
            type="citation",
            data={
                "documentId": raw.get("document_id"),
                "filename": raw.get("filename"),
                "passage": raw.get("passage"),
                "score": raw.get("score"),
                "metadata": raw.get("metadata"),
            },
        )

    def result(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "documentId": raw.get("document_id"),
            "filename": raw.get("filename"),
            "passage": raw.get("passage"),
            "score": raw.get("score"),
            "metadata": raw.get("metadata"),
        }


class WebSearchFamily:
    """Web search: sources carry url, title, snippet and the engine used."""

    def annotation(self, raw: Mapping[str, Any]) -> Annotation:
        return Annotation(type="web_source", data=self.result(raw))

    def result(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "url": raw.get("url"),
            "title": raw.get("title"),
            "snippet": raw.get("snippet"),
            "score": raw.get("score"),
            "engine": raw.get("engine"),
            "metadata": raw.get("metadata"),
        }


class ExtractorRegistry:
    """Maps tool family names to their mappers.

    Process-local and mutable; build one per client (``default_registry()``)
    rather than sharing a module-level instance.
    """

    def __init__(self, families: Mapping[str, ToolFamily] | None = None) -> None:
        """Initialize with an optional initial family mapping."""
        self._families: dict[str, ToolFamily] = dict(families or {})

    def register(self, name: str, family: ToolFamily) -> None:
        """Register (or replace) the mapper for tool family *name*."""
        self._families[name] = family

    def get(self, name: str) -> ToolFamily | None:
        """Return the mapper for *name*, if registered."""
        return self._families.get(name)

    def families(self) -> tuple[str, ...]:
        """Registered family names, in registration order."""
        return tuple(self._families)

    def parse(self, response: Any) -> ExtractionResult:
        """Extract annotations and tool results from a completed response.

        Accepts a mapping with an ``output`` list, a ``CompletedResponse`` or
        None. Entries that are not recognized, or belong to an unregistered
        family, are skipped.
        """
        annotations: list[Annotation] = []
        tool_results: list[ToolResult] = []

        for entry in _output_entries(response):
            entry_type = entry.get("type")
            if entry_type == "annotation":
                raw = entry.get("annotation")
                if not isinstance(raw, Mapping):
                    continue
                family = self._families.get(str(raw.get("source")))
                if family is not None:
                    annotations.append(family.annotation(raw))
            elif entry_type == "tool_result":
                name = entry.get("tool_name")
                family = self._families.get(str(name))
                if family is None:
                    continue
                raw_results = entry.get("results")
                results = (
                    [family.result(r) for r in raw_results if isinstance(r, Mapping)]
                    if isinstance(raw_results, list)
                    else []
                )
                tool_results.append(ToolResult(type=str(name), results=results))

        if annotations or tool_results:
            logger.debug(
                "Extracted %d annotations and %d tool results",
                len(annotations),
                len(tool_results),
            )
        return ExtractionResult(annotations=annotations, tool_results=tool_results)


def _output_entries(response: Any) -> Iterable[Mapping[str, Any]]:
    if isinstance(response, CompletedResponse):
        output: Any = response.output
    elif isinstance(response, Mapping):
        output = response.get("output")
    else:
        output = None
    if not isinstance(output, list):
        return []
    return [e for e in output if isinstance(e, Mapping)]


def default_registry() -> ExtractorRegistry:
    """Return a fresh registry with the built-in tool families."""
    return ExtractorRegistry(
        {"file_search": FileSearchFamily(), "web_search": WebSearchFamily()}
    )


def parse(response: Any, registry: ExtractorRegistry | None = None) -> ExtractionResult:
    """Extract with *registry* (the built-in families when omitted)."""
    return (registry or default_registry()).parse(response)


def parse_file_search_citations(response: Any) -> ExtractionResult:
    """Extract only document-search citations and results."""
    return ExtractorRegistry({"file_search": FileSearchFamily()}).parse(response)


def parse_web_search(response: Any) -> ExtractionResult:
    """Extract only web-search sources and results."""
    return ExtractorRegistry({"web_search": WebSearchFamily()}).parse(response)


def file_search_tool_enabled(tools: Iterable[Any] | None) -> bool:
    """Return True when any declared tool is a document-search tool."""
    for tool in tools or ():
        if isinstance(tool, Mapping):
            tool_type = tool.get("type")
        else:
            tool_type = getattr(tool, "type", None)
        if tool_type == "file_search":
            return True
    return False
