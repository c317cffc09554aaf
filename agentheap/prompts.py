"""Prompt template rendering and argument validation."""

from __future__ import annotations

import re
from typing import Any, Mapping

from agentheap.errors import PromptArgumentError, PromptNotFoundError
from agentheap.models import PromptTemplate

_PLACEHOLDER = re.compile(r"{{\s*([^}]+?)\s*}}")


def resolve_path(obj: Any, path: str) -> Any:
    """Walk a dotted path through nested mappings. Returns None when any segment is missing."""
    for key in path.split("."):
        if isinstance(obj, Mapping) and key in obj:
            obj = obj[key]
        else:
            return None
    return obj


def render_prompt_template(
    template: PromptTemplate,
    input: Any = None,
    context: Mapping[str, Any] | None = None,
    args: Mapping[str, Any] | None = None,
) -> str:
    """Fill {{ context.x }}, {{ input.x }} and {{ arg }} placeholders. Missing values render empty."""
    context = context or {}
    args = args or {}

    def _sub(m: re.Match) -> str:
        path = m.group(1).strip()
        if path.startswith("context."):
            value = resolve_path(context, path[len("context."):])
        elif path.startswith("input."):
            value = resolve_path(input, path[len("input."):])
        else:
            value = resolve_path(args, path)
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_sub, template.template)


def validate_prompt_arguments(template: PromptTemplate, args: Mapping[str, Any]):
    missing = [a.name for a in template.arguments if a.required and args.get(a.name) is None]
    if missing:
        raise PromptArgumentError(missing)


def get_prompt(prompts: Mapping[str, PromptTemplate], prompt_id: str) -> PromptTemplate:
    prompt = prompts.get(prompt_id)
    if prompt is None:
        raise PromptNotFoundError(prompt_id)
    return prompt
