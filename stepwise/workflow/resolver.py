"""
Step resolution: maps a step name to an executable step instance.

Lookup order for a name without whitespace, first match wins:
1. <workflow_dir>/<name>.py
2. <workflow_dir>/../shared/<name>.py
3. directory <workflow_dir>/<name>, else <workflow_dir>/../shared/<name>
"""

import hashlib
import importlib.util
import logging
import sys
import threading
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, Optional, Type

from ..exceptions import StepResolutionError
from .steps import DEFAULT_MODEL, BaseStep, PromptStep, camelize

logger = logging.getLogger(__name__)

STEP_SETTINGS = ('print_response', 'loop', 'json', 'params')


class StepResolver:
    """Resolves and configures steps for one workflow run."""

    _module_cache: Dict[Path, ModuleType] = {}
    _module_lock = threading.Lock()

    def __init__(self, run: Any, configuration: Any, context_path: Optional[Path] = None):
        """
        Initialize resolver.

        Args:
            run: WorkflowRun handed to every step
            configuration: WorkflowConfiguration (model and per-step tables)
            context_path: Workflow directory (default: configuration.context_path)
        """
        self.run = run
        self.configuration = configuration
        self.context_path = Path(context_path or configuration.context_path)

    @property
    def shared_path(self) -> Path:
        return (self.context_path / ".." / "shared").resolve()

    def resolve(self, step_name: str) -> BaseStep:
        """
        Build the executable for step_name.

        Raises:
            StepResolutionError: If no prompt, script or step directory matches
        """
        if any(ch.isspace() for ch in step_name.strip()):
            return self.setup_step(PromptStep, step_name, self.context_path)

        script_path = self.context_path / f"{step_name}.py"
        if script_path.is_file():
            return self.load_script_step(script_path, step_name)

        shared_script_path = self.shared_path / f"{step_name}.py"
        if shared_script_path.is_file():
            return self.load_script_step(shared_script_path, step_name)

        step_path = self.context_path / step_name
        if not step_path.is_dir():
            step_path = self.shared_path / step_name
        if not step_path.is_dir():
            raise StepResolutionError(step_name, str(step_path))

        return self.setup_step(BaseStep, step_name, step_path)

    def load_script_step(self, script_path: Path, step_name: str) -> BaseStep:
        """Load a step script and instantiate its CamelCase-named step class."""
        logger.info(f"Loading step file: {script_path}")
        module = self._load_module(script_path)

        class_name = camelize(step_name)
        step_class = getattr(module, class_name, None)
        if not isinstance(step_class, type) or not issubclass(step_class, BaseStep):
            raise StepResolutionError(
                step_name,
                str(script_path),
                f"Step file {script_path} does not define a BaseStep subclass named {class_name}"
            )

        return self.setup_step(step_class, step_name, script_path.parent)

    def setup_step(self, step_class: Type[BaseStep], step_name: str, context_path: Path) -> BaseStep:
        """
        Instantiate a step and apply its configuration.

        The model always resolves (step table, workflow model, default); the
        other settings apply only when the step table sets them.
        """
        step = step_class(self.run, name=step_name, context_path=context_path)
        step_config = self.configuration.get_step_config(step_name)

        step.model = step_config.get('model') or self.configuration.model or DEFAULT_MODEL
        step.resource = self.run.resource

        for setting in STEP_SETTINGS:
            if step_config.get(setting) is not None:
                setattr(step, setting, step_config[setting])

        return step

    @classmethod
    def _load_module(cls, script_path: Path) -> ModuleType:
        resolved = script_path.resolve()
        with cls._module_lock:
            module = cls._module_cache.get(resolved)
            if module is not None:
                return module

            digest = hashlib.md5(str(resolved).encode('utf-8')).hexdigest()[:8]
            module_name = f"stepwise_step_{resolved.stem}_{digest}"
            spec = importlib.util.spec_from_file_location(module_name, resolved)
            if spec is None or spec.loader is None:
                raise StepResolutionError(resolved.stem, str(resolved), f"Cannot load step file: {resolved}")

            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            try:
                spec.loader.exec_module(module)
            except Exception:
                sys.modules.pop(module_name, None)
                raise

            cls._module_cache[resolved] = module
            return module
