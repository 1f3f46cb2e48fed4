"""Execute command implementation."""

import logging
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict

from stepwise import instrumentation
from stepwise.loader import WorkflowLoader
from stepwise.exceptions import (
    ChatCompletionError,
    ReplayArgumentError,
    StepResolutionError,
    UnknownStepError,
    WorkflowValidationError,
)
from stepwise.workflow.configuration import WorkflowConfiguration
from stepwise.workflow.replay import parse_replay_argument
from stepwise.workflow.runner import WorkflowRunner


logger = logging.getLogger(__name__)


def configure_logging(args: Namespace) -> None:
    """Set the root log level from --log-level / --verbose / --quiet."""
    level_name = 'warning' if args.log_level == 'warn' else args.log_level
    log_level = getattr(logging, level_name.upper())
    if args.quiet:
        log_level = logging.ERROR
    elif args.verbose:
        log_level = logging.DEBUG

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_options(args: Namespace) -> Dict[str, Any]:
    options = {
        'output': args.output,
        'subject': args.subject,
        'replay': args.replay,
        'session_name': args.session_name,
    }
    return {key: value for key, value in options.items() if value}


def execute_workflow(args: Namespace) -> int:
    """
    Run a workflow file against its targets.

    Returns:
        0 on success, 1 on runtime failure, 2 on validation or replay-argument errors
    """
    configure_logging(args)
    if args.verbose:
        instrumentation.log_events()

    workflow_path = Path(args.workflow).resolve()
    if not workflow_path.exists():
        logger.error(f"Workflow file not found: {workflow_path}")
        return 1

    try:
        if args.replay:
            parse_replay_argument(args.replay)

        logger.info(f"Loading workflow: {workflow_path}")
        workflow = WorkflowLoader().load(workflow_path)
        configuration = WorkflowConfiguration(workflow_path, workflow, target=args.target)

        runner = WorkflowRunner(configuration, files=args.files, options=build_options(args))

        if args.dry_run:
            targets = runner.resolve_targets()
            logger.info(f"[DRY RUN] Workflow '{configuration.name}' is valid: "
                        f"{len(configuration.steps)} step(s), {len(targets)} target(s)")
            return 0

        runner.run()
        return 0

    except WorkflowValidationError as e:
        for error in e.errors:
            logger.error(f"Validation error: {error.message}")
        return e.exit_code
    except ReplayArgumentError as e:
        logger.error(f"Invalid replay argument: {e}")
        return ReplayArgumentError.exit_code
    except (StepResolutionError, UnknownStepError) as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except ChatCompletionError as e:
        logger.error(f"Chat completion failed: {e}")
        return 1
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return 2
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1
