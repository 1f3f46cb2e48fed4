"""
Workflow runner.
Builds one run per target, handles replay and writes the final output.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .. import instrumentation
from ..providers import ProviderChatClient, ProviderRegistry
from ..resources import for_target
from ..session import SessionManager
from ..state import FileStateRepository
from ..variables import build_bindings
from .configuration import WorkflowConfiguration
from .executor import WorkflowExecutor
from .prompts import PromptLoader
from .replay import ReplayController
from .run import WorkflowRun

logger = logging.getLogger(__name__)


def subject_prompt(subject_file: str) -> str:
    return "\n".join([
        "# SUT (Subject Under Test)",
        f"# {subject_file}",
        Path(subject_file).read_text(),
    ])


class WorkflowRunner:
    """
    Runs a workflow against each of its targets.

    Targets come from, in order of precedence: the 'each' command output
    (one per line), the files given on the command line, the configured
    target, or a single targetless run.
    """

    def __init__(
        self,
        configuration: WorkflowConfiguration,
        files: Optional[List[str]] = None,
        options: Optional[Dict[str, Any]] = None,
        chat_client: Any = None,
        state_repository: Optional[FileStateRepository] = None,
        stdout=None
    ):
        """
        Initialize runner.

        Args:
            configuration: Loaded workflow configuration
            files: Target files from the command line
            options: output, subject, replay, session_name
            chat_client: Chat client (default: provider client from the configuration)
            state_repository: Snapshot storage (default: rooted at the current directory)
            stdout: Stream for the final output when no output file is set
        """
        self.configuration = configuration
        self.files = [f.strip() for f in (files or []) if f and f.strip()]
        self.options = options or {}
        self.chat_client = chat_client or ProviderChatClient(
            provider=configuration.provider,
            registry=ProviderRegistry.from_workflow(configuration.providers),
            tools=configuration.tools,
        )
        self.state_repository = state_repository or FileStateRepository(SessionManager())
        self.replay_controller = ReplayController(self.state_repository)
        self.stdout = stdout or sys.stdout

    def resolve_targets(self) -> List[Optional[str]]:
        """Targets to run against; [None] for a single targetless run."""
        if self.configuration.each:
            if self.files:
                logger.warning(f"Overriding files with each parameter: {self.configuration.each}")
            output = self.configuration.step_executor.capture(self.configuration.each)
            return [line.strip() for line in output.splitlines() if line.strip()]

        if self.files:
            return list(self.files)

        targets = self.configuration.targets()
        return targets or [None]

    def run(self) -> List[WorkflowRun]:
        """
        Execute the workflow for every target.

        Raises:
            Whatever a step raises; remaining targets are not run
        """
        start_time = time.monotonic()
        instrumentation.instrument("stepwise.workflow.start", {
            'workflow_path': str(self.configuration.workflow_path),
            'name': self.configuration.name,
            'options': dict(self.options),
        })
        logger.info(f"Loading configuration from: {self.configuration.workflow_path}")

        runs: List[WorkflowRun] = []
        try:
            for target in self.resolve_targets():
                if target is not None:
                    logger.info(f"Running workflow for file: {target}")
                runs.append(self.run_target(target))
        except Exception:
            instrumentation.instrument("stepwise.workflow.complete", {
                'name': self.configuration.name,
                'success': False,
                'execution_time': time.monotonic() - start_time,
            })
            raise

        instrumentation.instrument("stepwise.workflow.complete", {
            'name': self.configuration.name,
            'success': True,
            'execution_time': time.monotonic() - start_time,
        })
        return runs

    def build_run(self, target: Optional[str]) -> WorkflowRun:
        """Create the run context for one target, seeding its transcript."""
        run = WorkflowRun(
            file=target,
            name=self.configuration.name,
            context_path=self.configuration.context_path,
            session_name=self.options.get('session_name') or self.configuration.session_name,
            resource=for_target(target) if target else None,
            chat_client=self.chat_client,
            tools=self.configuration.tools,
        )
        run.output_file = self.options.get('output')
        run.subject_file = self.options.get('subject')

        system_prompt = PromptLoader(run.name, self.configuration.context_path, target).load(build_bindings(run))
        if system_prompt:
            run.transcript.add('system', system_prompt)
        if run.subject_file:
            run.transcript.add('user', subject_prompt(run.subject_file))

        return run

    def run_target(self, target: Optional[str]) -> WorkflowRun:
        run = self.build_run(target)
        steps = list(self.configuration.steps)

        replay = self.options.get('replay')
        if replay:
            steps = self.replay_controller.prepare(run, steps, replay)

        executor = WorkflowExecutor(
            run,
            self.configuration,
            step_executor=self.configuration.step_executor,
            state_repository=self.state_repository,
        )
        executor.execute_steps(steps)

        logger.info(f"Workflow {run.name} complete")
        final_output = run.final_output_text
        if run.session_name:
            self.state_repository.save_final_output(run, final_output)
        self.write_final_output(run, final_output)
        return run

    def write_final_output(self, run: WorkflowRun, final_output: str) -> None:
        if run.output_file:
            Path(run.output_file).write_text(final_output)
            logger.info(f"Results saved to {run.output_file}")
        else:
            print(final_output, file=self.stdout)
