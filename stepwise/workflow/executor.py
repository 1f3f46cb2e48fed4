"""
Workflow executor.
Walks the parsed step list: sequential leaves, assignments, nested groups
and parallel groups.
"""

import logging
import threading
import time
from glob import glob
from pathlib import Path
from typing import Any, List, Optional, Sequence

from .. import instrumentation
from ..exceptions import UnknownStepError
from ..exec.step_executor import StepExecutor, strip_command
from ..state import FileStateRepository
from ..variables import Interpolator, build_bindings
from .nodes import COMMAND_PATTERN, Assignment, Leaf, Parallel, parse_step
from .resolver import StepResolver

logger = logging.getLogger(__name__)

COMMAND_ACKNOWLEDGEMENT = "Noted, thank you."


def command_transcript_entry(command: str, output: str) -> str:
    return (
        f"I just executed the following command: ```\n{command}\n```\n\n"
        f"Here is the output:\n\n```\n{output}\n```"
    )


class WorkflowExecutor:
    """
    Main step execution engine.
    Dispatches step nodes, records results in the run output and snapshots
    state after each resolved step.
    """

    def __init__(
        self,
        run: Any,
        configuration: Any,
        context_path: Optional[Path] = None,
        resolver: Optional[StepResolver] = None,
        step_executor: Optional[StepExecutor] = None,
        state_repository: Optional[FileStateRepository] = None
    ):
        """
        Initialize workflow executor.

        Args:
            run: WorkflowRun the steps operate on
            configuration: WorkflowConfiguration (step tables, default model)
            context_path: Workflow directory (default: configuration.context_path)
            resolver: Step resolver (default: one bound to run and configuration)
            step_executor: Runs $(...) commands
            state_repository: Snapshot storage used when the run has a session name
        """
        self.run = run
        self.configuration = configuration
        self.context_path = Path(context_path or configuration.context_path)
        self.resolver = resolver or StepResolver(run, configuration, self.context_path)
        self.step_executor = step_executor or StepExecutor()
        self.state_repository = state_repository or FileStateRepository()
        self.interpolator = Interpolator()

    def interpolate(self, text: Any) -> Any:
        return self.interpolator.interpolate(text, build_bindings(self.run))

    def execute_steps(self, steps: Sequence[Any]) -> None:
        """
        Execute steps in order.

        Raises:
            UnknownStepError: If a step has an unsupported shape
        """
        for step in steps:
            node = parse_step(step)
            if isinstance(node, Leaf):
                self.execute_step(self.interpolate(node.text))
            elif isinstance(node, Assignment):
                self._execute_assignment(node)
            elif isinstance(node, Parallel):
                self._execute_parallel(node)
            else:
                raise UnknownStepError(step)

    def _execute_assignment(self, node: Assignment) -> None:
        if isinstance(node.value, Leaf):
            name = self.interpolate(node.name)
            command = self.interpolate(node.value.text)
            self.run.output[name] = self.execute_step(command)
        elif isinstance(node.value, Assignment):
            self.execute_steps([node.value])
        else:
            self.execute_steps(node.value)

    def _execute_parallel(self, node: Parallel) -> None:
        """Run every branch in its own thread; re-raise the first failure after all join."""
        errors: List[BaseException] = []
        errors_lock = threading.Lock()

        def run_branch(sub_step):
            try:
                self.execute_steps([sub_step])
            except Exception as e:
                with errors_lock:
                    errors.append(e)

        threads = [
            threading.Thread(target=run_branch, args=(sub_step,), daemon=True)
            for sub_step in node.steps
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        if errors:
            if len(errors) > 1:
                logger.error(f"{len(errors)} parallel steps failed; raising the first")
            raise errors[0]

    def execute_step(self, name: str) -> Any:
        """
        Execute one step by name and return its result.

        Emits step start/complete/error events. Failures propagate; there is
        no retry at this layer.
        """
        start_time = time.monotonic()
        resource_type = self.run.resource_kind

        instrumentation.instrument("stepwise.step.start", {
            'step_name': name,
            'resource_type': resource_type,
        })
        logger.info(f"Executing: {name} (Resource type: {resource_type or 'unknown'})")

        try:
            if name.startswith("$("):
                result = self._execute_command(name)
            elif "*" in name and self.run.resource is None:
                result = "\n".join(sorted(glob(name)))
            else:
                step = self.resolver.resolve(name)
                result = step.execute()
                self.run.output[name] = result
                if self.run.session_name:
                    self.save_state(name)
        except Exception as e:
            execution_time = time.monotonic() - start_time
            instrumentation.instrument("stepwise.step.error", {
                'step_name': name,
                'resource_type': resource_type,
                'error': type(e).__name__,
                'message': str(e),
                'execution_time': execution_time,
            })
            logger.error(f"Step '{name}' failed: {e}")
            raise

        execution_time = time.monotonic() - start_time
        instrumentation.instrument("stepwise.step.complete", {
            'step_name': name,
            'resource_type': resource_type,
            'success': True,
            'execution_time': execution_time,
            'result_size': len(str(result)),
        })
        return result

    def _execute_command(self, name: str) -> str:
        if not COMMAND_PATTERN.match(name.strip()):
            raise ValueError(f"Missing closing parentheses: {name}")

        result = self.step_executor.execute_command(name, strip_command(name.strip()))
        output = result.output

        self.run.transcript.add('user', command_transcript_entry(name, output))
        self.run.transcript.add('assistant', COMMAND_ACKNOWLEDGEMENT)
        self.run.output[name] = output
        return output

    def save_state(self, step_name: str) -> None:
        """Snapshot the run context taken after step_name."""
        self.state_repository.save_state(self.run, step_name)
