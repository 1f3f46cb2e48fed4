"""
Replay from a named step.

Restores the run context from the snapshot written just before the target
step and returns the slice of the step list to execute.
"""

import logging
import re
from typing import Any, List, Optional, Sequence, Tuple

from ..exceptions import ReplayArgumentError
from ..state import FileStateRepository
from .nodes import find_step_index

logger = logging.getLogger(__name__)

TIMESTAMP_PATTERN = re.compile(r'^\d{8}_\d{6}_\d{3}$')


def parse_replay_argument(argument: str) -> Tuple[Optional[str], str]:
    """
    Split a replay argument into (timestamp, step name).

    Accepts 'step_name' or 'YYYYMMDD_HHMMSS_LLL:step_name'.

    Raises:
        ReplayArgumentError: On an empty step name or a malformed timestamp
    """
    if ":" in argument:
        timestamp, step_name = argument.split(":", 1)
        if not TIMESTAMP_PATTERN.match(timestamp):
            raise ReplayArgumentError(
                f"Invalid timestamp format: {timestamp}. Expected YYYYMMDD_HHMMSS_LLL"
            )
    else:
        timestamp, step_name = None, argument

    if not step_name:
        raise ReplayArgumentError(f"Replay argument names no step: {argument!r}")

    return timestamp, step_name


class ReplayController:
    """Prepares a run to resume from a step."""

    def __init__(self, state_repository: Optional[FileStateRepository] = None):
        self.state_repository = state_repository or FileStateRepository()

    def prepare(self, run: Any, steps: Sequence[Any], argument: str) -> List[Any]:
        """
        Restore run context and truncate the step list for replay.

        Args:
            run: WorkflowRun to restore into
            steps: Declared top-level steps
            argument: Replay argument ('step' or 'timestamp:step')

        Returns:
            Steps to execute: from the target step on, or all steps when the
            target is not declared or no unscoped snapshot precedes it

        Raises:
            ReplayArgumentError: If the argument is malformed
        """
        timestamp, step_name = parse_replay_argument(argument)

        step_index = find_step_index(steps, step_name)
        if step_index is None:
            logger.warning(f"Step {step_name} not found in workflow, running from the beginning")
            return list(steps)

        logger.info(f"Replaying from step: {step_name}" + (f" (session: {timestamp})" if timestamp else ""))

        state_data = self.state_repository.load_state_before_step(run, step_name, timestamp=timestamp)
        if state_data:
            run.restore(state_data)
        elif step_index > 0 and timestamp is None:
            logger.warning(f"No snapshot found before {step_name}, running from the beginning")
            return list(steps)
        elif step_index > 0:
            logger.warning(f"Could not find suitable state data in session {timestamp} to replay {step_name}")

        return list(steps[step_index:])
