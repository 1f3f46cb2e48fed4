"""Tests for workflow configuration and target processing."""

import os

from stepwise.workflow.configuration import WorkflowConfiguration
from stepwise.workflow.nodes import Assignment, Leaf, Parallel

from conftest import write_workflow


def configure(workflow_dir, config, target=None):
    path = write_workflow(workflow_dir, config, name="review.yml")
    return WorkflowConfiguration(path, config, target=target)


class TestWorkflowConfiguration:

    def test_defaults(self, workflow_dir):
        configuration = configure(workflow_dir, {"steps": ["a"]})

        assert configuration.name == "review"
        assert configuration.session_name == "review"
        assert configuration.provider == "claude"
        assert configuration.model is None
        assert configuration.tools == []
        assert not configuration.has_target
        assert configuration.targets() == []

    def test_explicit_settings(self, workflow_dir):
        configuration = configure(workflow_dir, {
            "name": "Code Review",
            "session_name": "nightly",
            "model": "anthropic:claude-3-7-sonnet",
            "tools": ["Read"],
            "steps": ["a"],
        })

        assert configuration.name == "Code Review"
        assert configuration.session_name == "nightly"
        assert configuration.model == "anthropic:claude-3-7-sonnet"
        assert configuration.tools == ["Read"]

    def test_steps_are_parsed(self, workflow_dir):
        configuration = configure(workflow_dir, {"steps": ["a", {"b": "c"}, ["d", "e"]]})

        assert configuration.raw_steps == ["a", {"b": "c"}, ["d", "e"]]
        assert configuration.steps == [
            Leaf("a"),
            Assignment("b", Leaf("c")),
            Parallel((Leaf("d"), Leaf("e"))),
        ]
        assert configuration.find_step_index("e") == 2

    def test_context_path(self, workflow_dir):
        assert configure(workflow_dir, {"steps": ["a"]}).context_path == workflow_dir.resolve()

    def test_step_config(self, workflow_dir):
        configuration = configure(workflow_dir, {"steps": ["a"], "a": {"json": True}})

        assert configuration.get_step_config("a") == {"json": True}
        assert configuration.get_step_config("missing") == {}
        assert configuration.get_step_config("steps") == {}


class TestTargetProcessing:

    def test_plain_path_becomes_absolute(self, workflow_dir):
        configuration = configure(workflow_dir, {"steps": ["a"], "target": "src/app.py"})
        assert configuration.target == os.path.abspath("src/app.py")

    def test_glob_expands_sorted(self, tmp_path, workflow_dir):
        (tmp_path / "b.py").write_text("")
        (tmp_path / "a.py").write_text("")

        configuration = configure(workflow_dir, {"steps": ["a"], "target": f"{tmp_path}/*.py"})

        assert configuration.targets() == [str(tmp_path / "a.py"), str(tmp_path / "b.py")]

    def test_unmatched_glob_kept(self, tmp_path, workflow_dir):
        pattern = f"{tmp_path}/*.none"
        assert configure(workflow_dir, {"steps": ["a"], "target": pattern}).target == pattern

    def test_command_target(self, workflow_dir):
        configuration = configure(workflow_dir, {"steps": ["a"], "target": "$(echo one.py; echo two.py)"})
        assert configuration.targets() == ["one.py", "two.py"]

    def test_url_target_kept(self, workflow_dir):
        configuration = configure(workflow_dir, {"steps": ["a"], "target": "https://example.com/api"})
        assert configuration.target == "https://example.com/api"

    def test_override_wins(self, workflow_dir):
        configuration = configure(workflow_dir, {"steps": ["a"], "target": "ignored.py"}, target="https://x.org/y")
        assert configuration.target == "https://x.org/y"
