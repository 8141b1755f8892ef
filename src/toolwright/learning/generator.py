"""Artifact generation from learned patterns.

Renders a pattern's tool suggestion into the source of a Python async
function using Jinja2, persists it as a generated tool, links the pattern
to it, and documents the generation in the knowledge log. The rendered
source is text for the external execution pipeline; it is never run here.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any

import jinja2

from toolwright.core.logging import get_logger
from toolwright.store import GeneratedTool, KnowledgeEntryType, LearnedPattern, LearningStore

_logger = get_logger("learning.generator")

SEQUENCE_TEMPLATE = """\
async def {{ name }}(params, context):
    {{ description | pyrepr }}
    results = []
    errors = []
{% for step in steps %}

    # Step {{ loop.index }}: {{ step.action }}
    try:
        result = await context.execute(
            {{ step.action | pyrepr }},
            {**{{ step.params | pyrepr }}, **params},
        )
        results.append(
            {"step": {{ loop.index }}, "action": {{ step.action | pyrepr }}, "result": result}
        )
    except Exception as error:
        errors.append(
            {"step": {{ loop.index }}, "action": {{ step.action | pyrepr }}, "error": str(error)}
        )
{% endfor %}

    return {
        "success": not errors,
        "results": results,
        "errors": errors,
        "summary": (
            "Completed {{ steps | length }} actions successfully"
            if not errors
            else f"Completed with {len(errors)} errors"
        ),
    }
"""

PRESET_TEMPLATE = """\
async def {{ name }}(params, context):
    {{ description | pyrepr }}
    preset_params = {{ preset_params | pyrepr }}
    merged_params = {**preset_params, **params}
    return await context.execute({{ base_tool | pyrepr }}, merged_params)
"""

GENERIC_TEMPLATE = """\
async def {{ name }}(params, context):
    {{ description | pyrepr }}
    return {"success": True, "message": "Tool executed", "params": params}
"""


def python_identifier(name: str) -> str:
    """Coerce a tool name into a valid Python function name."""
    ident = re.sub(r"\W+", "_", name).strip("_") or "tool"
    if ident[0].isdigit():
        ident = f"auto_{ident}"
    return ident


class ArtifactGenerator:
    """Renders and persists generated tools.

    Args:
        store: Learning store receiving the tool, the pattern link, and
            the knowledge entry.
        jinja_env: Optional custom Jinja2 environment.
    """

    def __init__(
        self,
        store: LearningStore,
        jinja_env: jinja2.Environment | None = None,
    ) -> None:
        self.store = store
        self.env = jinja_env or jinja2.Environment(
            undefined=jinja2.StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters.setdefault("pyrepr", repr)

    def render(self, suggestion: dict[str, Any]) -> str:
        """Render a suggestion to Python source.

        Suggestions with ``steps`` render as sequences, suggestions with a
        ``base_tool`` render as presets, anything else as a generic echo.
        """
        name = python_identifier(suggestion.get("name") or "auto_tool")
        description = suggestion.get("description") or f"Auto-generated tool {name}"

        if suggestion.get("steps"):
            template = self.env.from_string(SEQUENCE_TEMPLATE)
            return template.render(
                name=name,
                description=description,
                steps=[
                    {"action": step["action"], "params": step.get("params") or {}}
                    for step in suggestion["steps"]
                ],
            )
        if suggestion.get("base_tool"):
            template = self.env.from_string(PRESET_TEMPLATE)
            return template.render(
                name=name,
                description=description,
                base_tool=suggestion["base_tool"],
                preset_params=suggestion.get("preset_params") or {},
            )
        template = self.env.from_string(GENERIC_TEMPLATE)
        return template.render(name=name, description=description)

    def unique_tool_name(self, name: str, signature: str) -> str:
        """Return ``name``, or ``name`` plus a signature hash if it is taken."""
        if not self.store.tool_name_exists(name):
            return name
        digest = hashlib.md5(signature.encode(), usedforsecurity=False).hexdigest()[:6]
        return f"{name}_{digest}"

    def generate(self, pattern: LearnedPattern) -> GeneratedTool:
        """Create the generated tool for a pattern.

        The tool insert, the pattern link, and the knowledge entry are
        committed together.

        Returns:
            The persisted tool.
        """
        suggestion = dict(pattern.tool_suggestion or {})
        base_name = python_identifier(
            suggestion.get("name") or f"auto_tool_{pattern.id[:8]}"
        )

        with self.store.batch_connection():
            tool_name = self.unique_tool_name(base_name, pattern.pattern_signature)
            suggestion["name"] = tool_name
            code = self.render(suggestion)
            tool = self.store.insert_generated_tool(
                tool_name=tool_name,
                code_content=code,
                config=suggestion,
                source_pattern_id=pattern.id,
            )
            self.store.link_pattern_tool(pattern.id, tool.id)
            self.store.add_knowledge_entry(
                KnowledgeEntryType.DOCUMENTATION,
                title=f"Auto-generated tool: {tool_name}",
                content=(
                    "Auto-generated tool based on a detected usage pattern.\n\n"
                    f"**Pattern Type**: {pattern.pattern_type.value}\n"
                    f"**Occurrences**: {pattern.occurrences}\n"
                    f"**Confidence**: {pattern.confidence * 100:.1f}%\n"
                ),
                tags=["auto-generated", "tool", tool_name, pattern.pattern_type.value],
            )

        _logger.info(
            "tool_generated",
            tool_name=tool_name,
            pattern_id=pattern.id,
            occurrences=pattern.occurrences,
            confidence=pattern.confidence,
        )
        return tool
