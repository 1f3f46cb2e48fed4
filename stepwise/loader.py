"""Workflow loader and validation of the workflow YAML."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Set
import yaml

from stepwise.exceptions import ValidationError, WorkflowValidationError
from stepwise.providers.registry import BUILTIN_PROVIDERS


class PreservingLoader(yaml.SafeLoader):
    """Custom YAML loader that preserves string keys like 'on' instead of converting to bool."""
    pass


# Drop the implicit bool resolvers for words starting with o/O so step names
# and table keys like 'on' / 'off' stay strings
PreservingLoader.yaml_implicit_resolvers = dict(PreservingLoader.yaml_implicit_resolvers)
for _first_char in ('o', 'O'):
    if _first_char in PreservingLoader.yaml_implicit_resolvers:
        PreservingLoader.yaml_implicit_resolvers[_first_char] = [
            (tag, regexp) for tag, regexp in PreservingLoader.yaml_implicit_resolvers[_first_char]
            if tag != 'tag:yaml.org,2002:bool'
        ]


class WorkflowLoader:
    """Loads and validates workflow YAML."""

    STRING_FIELDS = ('name', 'model', 'provider', 'target', 'each', 'session_name')
    RESERVED_FIELDS = set(STRING_FIELDS) | {'steps', 'providers', 'tools'}
    STEP_TABLE_FIELDS = {
        'model': str,
        'print_response': bool,
        'loop': bool,
        'json': bool,
        'params': dict,
    }

    def __init__(self):
        self.errors: List[ValidationError] = []

    def load(self, workflow_path: Path) -> Dict[str, Any]:
        """
        Load and validate workflow YAML.

        Raises:
            WorkflowValidationError: With every problem found
        """
        self.errors = []
        try:
            with open(workflow_path, 'r') as f:
                workflow = yaml.load(f, Loader=PreservingLoader)
        except (OSError, yaml.YAMLError) as e:
            self._add_error(f"Failed to load workflow: {e}")
            self._raise_validation_errors()

        if workflow is None or not isinstance(workflow, dict):
            self._add_error("Workflow must be a YAML object/dictionary")
            self._raise_validation_errors()

        self.validate(workflow)
        if self.errors:
            self._raise_validation_errors()

        return workflow

    def validate(self, workflow: Dict[str, Any]) -> List[ValidationError]:
        """Validate an already-parsed workflow dict, accumulating errors."""
        for field in self.STRING_FIELDS:
            if field in workflow and not isinstance(workflow[field], str):
                self._add_error(f"'{field}' must be a string, got {type(workflow[field]).__name__}", field)

        steps = workflow.get('steps')
        if not steps:
            self._add_error("'steps' field is required and must not be empty", 'steps')
        elif not isinstance(steps, list):
            self._add_error("'steps' must be a list", 'steps')
        else:
            for i, step in enumerate(steps):
                self._validate_step(step, f"steps[{i}]")

        if 'tools' in workflow:
            self._validate_tools(workflow['tools'])

        declared_providers: Set[str] = set()
        if 'providers' in workflow:
            declared_providers = self._validate_providers(workflow['providers'])

        provider = workflow.get('provider')
        if isinstance(provider, str) and provider not in declared_providers and provider not in BUILTIN_PROVIDERS:
            self._add_error(f"Unknown provider '{provider}'", 'provider')

        for key, value in workflow.items():
            if key not in self.RESERVED_FIELDS:
                self._validate_step_table(str(key), value)

        return self.errors

    def _validate_step(self, step: Any, path: str):
        """Validate one step shape, recursing into groups."""
        if isinstance(step, str):
            if not step.strip():
                self._add_error(f"{path}: step must not be empty", path)
            elif step.startswith("$(") and not step.rstrip().endswith(")"):
                self._add_error(f"{path}: missing closing parenthesis in command '{step}'", path)
        elif isinstance(step, dict):
            if len(step) != 1:
                self._add_error(f"{path}: a named step must have exactly one key, got {len(step)}", path)
                return
            name, value = next(iter(step.items()))
            child_path = f"{path}.{name}"
            if isinstance(value, str):
                self._validate_step(value, child_path)
            elif isinstance(value, dict):
                self._validate_step(value, child_path)
            elif isinstance(value, list):
                if not value:
                    self._add_error(f"{child_path}: step group must not be empty", child_path)
                for i, sub_step in enumerate(value):
                    self._validate_step(sub_step, f"{child_path}[{i}]")
            else:
                self._add_error(
                    f"{child_path}: value must be a step, a named step or a list, got {type(value).__name__}",
                    child_path
                )
        elif isinstance(step, list):
            if not step:
                self._add_error(f"{path}: parallel group must not be empty", path)
            for i, sub_step in enumerate(step):
                self._validate_step(sub_step, f"{path}[{i}]")
        else:
            self._add_error(f"{path}: unknown step type {type(step).__name__}", path)

    def _validate_tools(self, tools: Any):
        if not isinstance(tools, list):
            self._add_error("'tools' must be a list of tool names", 'tools')
            return

        for i, tool in enumerate(tools):
            if not isinstance(tool, str) or not tool:
                self._add_error(f"'tools[{i}]' must be a non-empty string", f"tools[{i}]")

    def _validate_providers(self, providers: Any) -> Set[str]:
        """Validate provider templates; returns the declared names."""
        if not isinstance(providers, dict):
            self._add_error("'providers' must be a dictionary", 'providers')
            return set()

        for name, config in providers.items():
            if not isinstance(config, dict):
                self._add_error(f"Provider '{name}' must be a dictionary")
                continue

            if 'command' not in config:
                self._add_error(f"Provider '{name}' missing required 'command' field")
            elif not isinstance(config['command'], list):
                self._add_error(f"Provider '{name}' command must be a list")
            elif config.get('input_mode', 'argv') == 'stdin':
                command_str = ' '.join(str(token) for token in config['command'])
                if '${PROMPT}' in command_str:
                    self._add_error(f"Provider '{name}': ${{PROMPT}} not allowed in stdin mode")

            if 'input_mode' in config and config['input_mode'] not in ['argv', 'stdin']:
                self._add_error(f"Provider '{name}' input_mode must be 'argv' or 'stdin'")

            if 'defaults' in config and not isinstance(config['defaults'], dict):
                self._add_error(f"Provider '{name}' defaults must be a dictionary")

        return set(providers)

    def _validate_step_table(self, step_name: str, table: Any):
        """Validate a per-step configuration table."""
        if not isinstance(table, dict):
            self._add_error(f"Step configuration '{step_name}' must be a dictionary", step_name)
            return

        for key, value in table.items():
            expected = self.STEP_TABLE_FIELDS.get(key)
            if expected is None:
                self._add_error(f"Step configuration '{step_name}': unknown field '{key}'", f"{step_name}.{key}")
            elif value is not None and not isinstance(value, expected):
                self._add_error(
                    f"Step configuration '{step_name}': '{key}' must be {expected.__name__}, "
                    f"got {type(value).__name__}",
                    f"{step_name}.{key}"
                )

    def _add_error(self, message: str, path: str = "", exit_code: int = 2):
        """Add validation error."""
        self.errors.append(ValidationError(message, path, exit_code))

    def _raise_validation_errors(self):
        """Raise WorkflowValidationError with accumulated errors."""
        raise WorkflowValidationError(self.errors)


def load_workflow(workflow_path: Path) -> Dict[str, Any]:
    """Load and validate a workflow file."""
    return WorkflowLoader().load(Path(workflow_path))
