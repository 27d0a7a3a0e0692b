"""
Substitution of ${NAME} placeholders into step arguments.

Substitution is a single textual pass. Values are never re-scanned, so a
value containing "${OTHER}" ends up in the argument verbatim. "$$" is the
escape for a literal "$".
"""

import re
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from controller.src.errors import UnresolvedVariable
from controller.src.models import PipelineSpec, StepSpec

PLACEHOLDER = re.compile(r"\$\$|\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

def build_context(
    defaults: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> Mapping[str, str]:
    """Merge pipeline defaults with caller overrides. Overrides win."""
    merged: Dict[str, str] = dict(defaults or {})
    merged.update({key: str(value) for key, value in (overrides or {}).items()})
    return MappingProxyType(merged)

def resolve(template: str, context: Mapping[str, str]) -> str:
    """Resolve every placeholder in a single template string."""

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name is None:
            return "$"
        if name not in context:
            raise UnresolvedVariable(name)
        return context[name]

    return PLACEHOLDER.sub(_replace, template)

def resolve_args(templates: Iterable[str], context: Mapping[str, str]) -> List[str]:
    return [resolve(template, context) for template in templates]

def resolve_step(
    step: StepSpec, context: Mapping[str, str], step_index: Optional[int] = None
) -> Tuple[List[str], Dict[str, str]]:
    """
    Resolve a step's args and env values.

    UnresolvedVariable raised from here carries the step index.
    """
    try:
        args = resolve_args(step.args, context)
        env = {key: resolve(value, context) for key, value in step.env.items()}
    except UnresolvedVariable as e:
        raise UnresolvedVariable(e.name, step_index) from None
    return args, env

def variables_in(template: str) -> Set[str]:
    return {m.group(1) for m in PLACEHOLDER.finditer(template) if m.group(1)}

def referenced_variables(spec: PipelineSpec) -> Set[str]:
    """All variable names referenced anywhere in a pipeline's steps."""
    names: Set[str] = set()
    for step in spec.steps:
        for template in list(step.args) + list(step.env.values()):
            names |= variables_in(template)
    return names
