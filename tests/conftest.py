"""Shared fixtures for stepwise tests."""

import textwrap
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import yaml

from stepwise.session import SessionManager
from stepwise.state import FileStateRepository
from stepwise.workflow.configuration import WorkflowConfiguration
from stepwise.workflow.run import WorkflowRun


class FakeChatClient:
    """Chat client returning canned responses and recording every call."""

    def __init__(self, responses: Optional[List[Any]] = None, default: Any = "ok"):
        self.responses = list(responses or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    def chat_completion(self, model, transcript, loop=True, json=False, params=None):
        self.calls.append({
            'model': model,
            'loop': loop,
            'json': json,
            'params': params,
            'transcript': transcript.snapshot(),
        })
        response = self.responses.pop(0) if self.responses else self.default
        transcript.add('assistant', str(response))
        return response


@pytest.fixture
def chat_client():
    return FakeChatClient()


@pytest.fixture
def workflow_dir(tmp_path):
    """Workflow directory with a sibling shared/ directory."""
    path = tmp_path / "workflow"
    path.mkdir()
    (tmp_path / "shared").mkdir()
    return path


@pytest.fixture
def state_repository(tmp_path):
    return FileStateRepository(SessionManager(tmp_path))


def write_workflow(workflow_dir: Path, config: Dict[str, Any], name: str = "workflow.yml") -> Path:
    path = workflow_dir / name
    with open(path, 'w') as f:
        yaml.dump(config, f)
    return path


def write_script_step(directory: Path, step_name: str, class_name: str, body: str) -> Path:
    """Write a scripted step module defining class_name(BaseStep)."""
    path = directory / f"{step_name}.py"
    source = "from stepwise.workflow.steps import BaseStep\n\n\n"
    source += f"class {class_name}(BaseStep):\n"
    source += textwrap.indent(textwrap.dedent(body).strip() + "\n", "    ")
    path.write_text(source)
    return path


def make_configuration(workflow_dir: Path, config: Dict[str, Any]) -> WorkflowConfiguration:
    path = write_workflow(workflow_dir, config)
    return WorkflowConfiguration(path, config)


def make_run(workflow_dir: Path, chat_client: Any = None, **kwargs) -> WorkflowRun:
    kwargs.setdefault('name', 'workflow')
    return WorkflowRun(context_path=workflow_dir, chat_client=chat_client, **kwargs)
