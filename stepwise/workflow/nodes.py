"""
Step nodes parsed from the declarative step list.

Raw YAML shapes map to nodes once, at load time:
- "name" / "$(cmd)" / "*.py"      -> Leaf
- {"var": <leaf>}                 -> Assignment binding the leaf result to var
- {"group": {...}} / {"g": [...]} -> Assignment used as a structural group
- [a, b, ...]                     -> Parallel
"""

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from ..exceptions import UnknownStepError


COMMAND_PATTERN = re.compile(r'^\$\((.*)\)$', re.DOTALL)


def leaf_kind(text: str) -> str:
    """
    Classify step text.

    Returns:
        'command' for $(...), 'glob' for wildcard patterns,
        'prompt' for text with whitespace, 'named' otherwise
    """
    if text.startswith("$("):
        return "command"
    if "*" in text:
        return "glob"
    if re.search(r'\s', text.strip()):
        return "prompt"
    return "named"


@dataclass(frozen=True)
class Leaf:
    """Single step: a shell command, glob, inline prompt or step name."""
    text: str

    @property
    def kind(self) -> str:
        return leaf_kind(self.text)


@dataclass(frozen=True)
class Parallel:
    """Group of steps executed concurrently."""
    steps: Tuple["StepNode", ...]


@dataclass(frozen=True)
class Assignment:
    """
    Named step.

    With a Leaf value the step result is bound to `name` in the run output.
    With a nested Assignment or a step sequence the name only groups steps.
    """
    name: str
    value: Union[Leaf, "Assignment", Tuple["StepNode", ...]]

    @property
    def binds_result(self) -> bool:
        return isinstance(self.value, Leaf)


StepNode = Union[Leaf, Assignment, Parallel]
NODE_TYPES = (Leaf, Assignment, Parallel)


def parse_step(raw: Any) -> StepNode:
    """
    Parse one raw step.

    Raises:
        UnknownStepError: If the shape is not a string, single-key mapping or list
    """
    if isinstance(raw, NODE_TYPES):
        return raw
    if isinstance(raw, str):
        return Leaf(raw)
    if isinstance(raw, dict):
        if len(raw) != 1:
            raise UnknownStepError(raw)
        name, value = next(iter(raw.items()))
        return Assignment(str(name), _parse_assignment_value(value))
    if isinstance(raw, list):
        return Parallel(tuple(parse_step(sub_step) for sub_step in raw))
    raise UnknownStepError(raw)


def _parse_assignment_value(value: Any) -> Union[Leaf, Assignment, Tuple[StepNode, ...]]:
    if isinstance(value, str):
        return Leaf(value)
    if isinstance(value, dict):
        return parse_step(value)
    if isinstance(value, list):
        return tuple(parse_step(step) for step in value)
    raise UnknownStepError(value)


def parse_steps(raw_steps: Sequence[Any]) -> List[StepNode]:
    """Parse a raw step list."""
    return [parse_step(step) for step in raw_steps]


def step_names(node: StepNode) -> List[str]:
    """Names a node can be addressed by when replaying."""
    if isinstance(node, Leaf):
        return [node.text]
    if isinstance(node, Assignment):
        return [node.name]
    names: List[str] = []
    for sub_step in node.steps:
        if isinstance(sub_step, (Leaf, Assignment)):
            names.extend(step_names(sub_step))
    return names


def find_step_index(steps: Sequence[Any], target_step: str) -> Optional[int]:
    """
    Find the position of a step in the top-level step list.

    Bare strings match by text, assignments by variable name and parallel
    groups by any direct member.

    Returns:
        Index into steps, or None if no node carries that name
    """
    for index, step in enumerate(steps):
        if target_step in step_names(parse_step(step)):
            return index
    return None
