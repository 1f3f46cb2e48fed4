"""Workflow execution module."""

from .configuration import WorkflowConfiguration
from .executor import WorkflowExecutor
from .nodes import Assignment, Leaf, Parallel, find_step_index, parse_step, parse_steps
from .replay import ReplayController, parse_replay_argument
from .resolver import StepResolver
from .run import WorkflowRun
from .runner import WorkflowRunner
from .steps import DEFAULT_MODEL, BaseStep, PromptStep

__all__ = [
    'WorkflowConfiguration',
    'WorkflowExecutor',
    'WorkflowRun',
    'WorkflowRunner',
    'StepResolver',
    'ReplayController',
    'parse_replay_argument',
    'BaseStep',
    'PromptStep',
    'DEFAULT_MODEL',
    'Leaf',
    'Assignment',
    'Parallel',
    'parse_step',
    'parse_steps',
    'find_step_index',
]
