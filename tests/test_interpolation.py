"""Tests for {{expression}} interpolation against run bindings."""

import logging

import pytest

from stepwise.resources import Resource
from stepwise.variables import Interpolator, build_bindings
from stepwise.workflow.run import WorkflowRun


class TestInterpolator:
    """Expression substitution in step text."""

    def setup_method(self):
        self.interpolator = Interpolator()
        self.run = WorkflowRun(file="src/app.py", name="review", session_name="nightly")
        self.run.output["analyze"] = "looks good"
        self.run.output["step name"] = "spaced"
        self.bindings = build_bindings(self.run)

    def test_text_without_expressions_is_unchanged(self):
        text = "analyze the code"
        assert self.interpolator.interpolate(text, self.bindings) is text

    def test_non_string_passes_through(self):
        assert self.interpolator.interpolate(42, self.bindings) == 42
        assert self.interpolator.interpolate(None, self.bindings) is None

    def test_output_attribute_access(self):
        result = self.interpolator.interpolate("echo {{ output.analyze }}", self.bindings)
        assert result == "echo looks good"

    def test_output_subscript_access(self):
        result = self.interpolator.interpolate('{{ output["step name"] }}', self.bindings)
        assert result == "spaced"

    def test_run_attributes(self):
        text = "{{file}} {{ workflow }} {{ session_name }}"
        assert self.interpolator.interpolate(text, self.bindings) == "src/app.py review nightly"

    def test_multiple_expressions_in_one_string(self):
        text = "$(wc -l {{ file }}) # {{ output.analyze | upper }}"
        assert self.interpolator.interpolate(text, self.bindings) == "$(wc -l src/app.py) # LOOKS GOOD"

    def test_booleans_render_lowercase(self):
        assert self.interpolator.interpolate("{{ 1 == 1 }}", self.bindings) == "true"

    def test_undefined_name_keeps_placeholder_and_logs(self, caplog):
        with caplog.at_level(logging.ERROR):
            result = self.interpolator.interpolate("run {{ missing_var }} now", self.bindings)

        assert result == "run {{ missing_var }} now"
        assert "Error interpolating {{missing_var}}" in caplog.text
        assert "not defined in the workflow context" in caplog.text

    def test_missing_output_key_keeps_placeholder(self):
        result = self.interpolator.interpolate("{{ output.nope }}", self.bindings)
        assert result == "{{ output.nope }}"

    def test_syntax_error_keeps_placeholder(self):
        result = self.interpolator.interpolate("{{ output. }}", self.bindings)
        assert result == "{{ output. }}"

    def test_one_failure_does_not_block_other_expressions(self):
        result = self.interpolator.interpolate("{{ missing }}/{{ file }}", self.bindings)
        assert result == "{{ missing }}/src/app.py"

    def test_interpolation_is_idempotent_once_resolved(self):
        once = self.interpolator.interpolate("{{ output.analyze }}", self.bindings)
        assert self.interpolator.interpolate(once, self.bindings) == once

    def test_bindings_see_live_output(self):
        bindings = build_bindings(self.run)
        self.run.output["later"] = "added after binding"
        assert self.interpolator.interpolate("{{ output.later }}", bindings) == "added after binding"


class TestBuildBindings:
    """Names exposed to expressions."""

    def test_bindings_cover_run_attributes(self, tmp_path):
        resource = Resource("src/app.py", "file")
        run = WorkflowRun(file="src/app.py", name="review", context_path=tmp_path,
                          session_name="s", resource=resource)
        run.append_to_final_output("first")
        run.append_to_final_output("second")

        bindings = build_bindings(run)

        assert bindings['file'] == "src/app.py"
        assert bindings['resource'] is resource
        assert bindings['workflow'] == "review"
        assert bindings['session_name'] == "s"
        assert bindings['final_output'] == "first\nsecond"
        assert bindings['context'] == str(tmp_path)
        assert bindings['output'] is run.output
        assert bindings['transcript'] is run.transcript

    @pytest.mark.parametrize("expression,expected", [
        ("{{ resource.kind }}", "file"),
        ("{{ resource.name }}", "src/app.py"),
    ])
    def test_resource_attributes(self, expression, expected):
        run = WorkflowRun(file="src/app.py", resource=Resource("src/app.py", "file"))
        assert Interpolator().interpolate(expression, build_bindings(run)) == expected
