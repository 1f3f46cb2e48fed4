"""Tests for workflow YAML loading and validation."""

import pytest
import tempfile
import yaml
from pathlib import Path

from stepwise.loader import WorkflowLoader, load_workflow
from stepwise.exceptions import WorkflowValidationError


class TestLoaderValidation:
    """Test strict validation in the loader."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.workspace = Path(self.temp_dir)
        self.loader = WorkflowLoader()

    def write_workflow(self, content: dict) -> Path:
        """Helper to write workflow YAML."""
        path = self.workspace / "workflow.yml"
        with open(path, 'w') as f:
            yaml.dump(content, f)
        return path

    def assert_invalid(self, workflow: dict, fragment: str):
        path = self.write_workflow(workflow)

        with pytest.raises(WorkflowValidationError) as exc_info:
            self.loader.load(path)

        assert exc_info.value.exit_code == 2
        assert any(fragment in err.message for err in exc_info.value.errors), \
            [err.message for err in exc_info.value.errors]

    def test_valid_workflow_round_trips(self):
        workflow = {
            "name": "review",
            "model": "anthropic:claude-3-7-sonnet",
            "tools": ["Read", "Grep"],
            "steps": [
                "analyze",
                {"lines": "$(wc -l {{ file }})"},
                ["lint", {"types": "check_types"}],
                {"group": ["first", "second"]},
            ],
            "analyze": {"print_response": True, "params": {"max_tokens": 100}},
        }
        path = self.write_workflow(workflow)

        assert self.loader.load(path) == workflow

    def test_steps_required(self):
        self.assert_invalid({"name": "test"}, "'steps' field is required")

    def test_steps_must_be_list(self):
        self.assert_invalid({"steps": "analyze"}, "'steps' must be a list")

    def test_unknown_step_type(self):
        self.assert_invalid({"steps": [42]}, "steps[0]: unknown step type int")

    def test_named_step_with_two_keys(self):
        self.assert_invalid({"steps": [{"a": "x", "b": "y"}]}, "exactly one key")

    def test_empty_parallel_group(self):
        self.assert_invalid({"steps": ["a", []]}, "steps[1]: parallel group must not be empty")

    def test_unclosed_command(self):
        self.assert_invalid({"steps": ["$(echo hi"]}, "missing closing parenthesis")

    def test_nested_errors_report_path(self):
        self.assert_invalid({"steps": [{"group": ["ok", 3]}]}, "steps[0].group[1]")

    def test_string_fields(self):
        self.assert_invalid({"steps": ["a"], "model": 3}, "'model' must be a string")

    def test_tools_must_be_names(self):
        self.assert_invalid({"steps": ["a"], "tools": ["Read", ""]}, "'tools[1]' must be a non-empty string")

    def test_unknown_provider(self):
        self.assert_invalid({"steps": ["a"], "provider": "nope"}, "Unknown provider 'nope'")

    def test_declared_provider_is_accepted(self):
        workflow = {
            "steps": ["a"],
            "provider": "local",
            "providers": {"local": {"command": ["llm", "${PROMPT}"]}},
        }
        path = self.write_workflow(workflow)

        assert self.loader.load(path)['provider'] == "local"

    def test_stdin_provider_rejects_prompt_placeholder(self):
        workflow = {
            "steps": ["a"],
            "providers": {"bad": {"command": ["llm", "${PROMPT}"], "input_mode": "stdin"}},
        }
        self.assert_invalid(workflow, "${PROMPT} not allowed in stdin mode")

    def test_provider_requires_command(self):
        self.assert_invalid({"steps": ["a"], "providers": {"bad": {}}}, "missing required 'command'")

    def test_step_table_unknown_field(self):
        self.assert_invalid({"steps": ["a"], "a": {"temperature": 1}}, "unknown field 'temperature'")

    def test_step_table_field_type(self):
        self.assert_invalid({"steps": ["a"], "a": {"json": "yes"}}, "'json' must be bool")

    def test_step_table_must_be_dict(self):
        self.assert_invalid({"steps": ["a"], "a": "fast"}, "must be a dictionary")

    def test_errors_accumulate(self):
        path = self.write_workflow({"steps": [1, 2], "model": 3})

        with pytest.raises(WorkflowValidationError) as exc_info:
            self.loader.load(path)

        assert len(exc_info.value.errors) == 3

    def test_non_mapping_document(self):
        path = self.workspace / "workflow.yml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(WorkflowValidationError) as exc_info:
            self.loader.load(path)

        assert "must be a YAML object" in exc_info.value.errors[0].message

    def test_missing_file(self):
        with pytest.raises(WorkflowValidationError) as exc_info:
            self.loader.load(self.workspace / "absent.yml")

        assert "Failed to load workflow" in exc_info.value.errors[0].message

    def test_on_off_stay_strings(self):
        path = self.workspace / "workflow.yml"
        path.write_text("steps:\n  - on\n  - off\n")

        assert load_workflow(path)['steps'] == ["on", "off"]
