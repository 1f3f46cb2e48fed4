"""Tests for step snapshots and final output persistence."""

import json
import logging
from unittest.mock import patch

import pytest

from stepwise.session import SessionManager
from stepwise.state import FileStateRepository, format_step_filename, parse_step_filename
from stepwise.workflow.run import WorkflowRun


def make_run(**kwargs):
    kwargs.setdefault('file', "src/app.py")
    kwargs.setdefault('name', "review")
    kwargs.setdefault('session_name', "Nightly Review")
    return WorkflowRun(**kwargs)


def record_steps(repository, run, step_names):
    """Simulate steps finishing one after another, snapshotting each."""
    for step_name in step_names:
        run.output[step_name] = f"result of {step_name}"
        run.transcript.add('user', f"prompt for {step_name}")
        run.append_to_final_output(f"printed by {step_name}")
        repository.save_state(run, step_name, run.state_data(step_name))


class TestSaveState:
    """Snapshot writes."""

    def test_files_are_numbered_contiguously(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()

        record_steps(repository, run, ["step_a", "step_b", "step_c"])

        session_dir = repository.session_manager.find_session_directory(run.session_name, run.file)
        names = sorted(path.name for path in session_dir.glob("step_*.json"))
        assert names == [
            "step_000_step_a.json",
            "step_001_step_b.json",
            "step_002_step_c.json",
        ]

    def test_timestamp_minted_once(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()
        assert run.session_timestamp is None

        record_steps(repository, run, ["one"])
        timestamp = run.session_timestamp
        record_steps(repository, run, ["two"])

        assert timestamp is not None
        assert run.session_timestamp == timestamp

    def test_record_contents(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()

        record_steps(repository, run, ["first", "second"])
        path = repository.find_step_files(
            repository.session_manager.find_session_directory(run.session_name, run.file)
        )[-1]
        data = json.loads(path.read_text())

        assert data['step_name'] == "second"
        assert data['order'] == 1
        assert data['output'] == {"first": "result of first", "second": "result of second"}
        assert data['execution_order'] == ["first", "second"]
        assert data['final_output'] == ["printed by first", "printed by second"]
        assert len(data['transcript']) == 2

    def test_context_captured_under_lock(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()
        run.output["first"] = "result of first"
        seen = []
        capture_state = run.state_data

        def locked_state_data(step_name):
            seen.append(repository._state_lock.locked())
            return capture_state(step_name)

        run.state_data = locked_state_data
        path = repository.save_state(run, "first")

        assert seen == [True]
        assert json.loads(path.read_text())['output'] == {"first": "result of first"}

    def test_repeated_step_name_keeps_numbering(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()

        record_steps(repository, run, ["lint", "fix", "lint"])

        session_dir = repository.session_manager.find_session_directory(run.session_name, run.file)
        orders = [parse_step_filename(path.name)[0] for path in repository.find_step_files(session_dir)]
        assert orders == [0, 1, 2]

    def test_gitignore_written(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()

        record_steps(repository, run, ["one"])

        identity = repository.session_manager.session_identity_path(run.session_name, run.file)
        assert (identity / ".gitignore").read_text().strip() == "*"

    def test_step_name_with_slash_is_encoded(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()

        path = repository.save_state(run, "$(cat a/b)", run.state_data("$(cat a/b)"))

        assert path.name == "step_000_$(cat a_b).json"
        assert path.exists()

    def test_write_failure_is_swallowed(self, tmp_path, caplog):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()

        with patch.object(SessionManager, 'ensure_session_directory', side_effect=OSError("disk full")):
            with caplog.at_level(logging.ERROR):
                assert repository.save_state(run, "step", run.state_data("step")) is None

        assert "Failed to save state for step step: disk full" in caplog.text


class TestLoadStateBeforeStep:
    """Replay lookups."""

    @pytest.fixture
    def repository(self, tmp_path):
        return FileStateRepository(SessionManager(tmp_path))

    @pytest.fixture
    def recorded(self, repository):
        run = make_run()
        record_steps(repository, run, ["step_a", "step_b", "step_c"])
        return run

    def test_returns_snapshot_of_previous_step(self, repository, recorded):
        state = repository.load_state_before_step(make_run(), "step_c", timestamp=recorded.session_timestamp)

        assert state['step_name'] == "step_b"
        assert list(state['output']) == ["step_a", "step_b"]

    def test_round_trip_reproduces_run_context(self, repository, recorded):
        restored = make_run()
        state = repository.load_state_before_step(restored, "step_c", timestamp=recorded.session_timestamp)
        restored.restore(state)

        snapshot = json.loads(json.dumps(recorded.state_data("step_b")))
        assert restored.output.snapshot() == {k: v for k, v in snapshot['output'].items() if k != "step_c"}
        assert restored.transcript.snapshot() == snapshot['transcript'][:2]
        assert restored.final_output.snapshot() == snapshot['final_output'][:2]

    def test_first_step_has_no_previous_state(self, repository, recorded):
        assert repository.load_state_before_step(make_run(), "step_a") is None

    def test_absent_step_is_not_found(self, repository, recorded):
        assert repository.load_state_before_step(make_run(), "nonexistent") is None

    def test_no_special_case_step_names(self, repository, recorded):
        assert repository.load_state_before_step(make_run(), "format_result") is None

    def test_missing_session(self, repository):
        assert repository.load_state_before_step(make_run(session_name="never ran"), "step_b") is None

    def test_missing_timestamp_directory(self, repository, recorded):
        state = repository.load_state_before_step(make_run(), "step_b", timestamp="19990101_000000_000")
        assert state is None

    def test_latest_session_copied_into_new_timestamp(self, repository, recorded):
        replaying = make_run()

        state = repository.load_state_before_step(replaying, "step_c")

        assert state['step_name'] == "step_b"
        assert replaying.session_timestamp is not None
        assert replaying.session_timestamp > recorded.session_timestamp
        new_dir = repository.session_manager.find_session_directory(
            replaying.session_name, replaying.file, replaying.session_timestamp
        )
        assert sorted(path.name for path in new_dir.glob("step_*.json")) == [
            "step_000_step_a.json",
            "step_001_step_b.json",
        ]

    def test_copied_history_continues_numbering(self, repository, recorded):
        replaying = make_run()
        repository.load_state_before_step(replaying, "step_c")

        path = repository.save_state(replaying, "step_c", replaying.state_data("step_c"))

        assert path.name == "step_002_step_c.json"

    def test_explicit_timestamp_does_not_copy(self, repository, recorded):
        replaying = make_run()

        repository.load_state_before_step(replaying, "step_c", timestamp=recorded.session_timestamp)

        assert replaying.session_timestamp is None


class TestSaveFinalOutput:
    """final_output.txt handling."""

    def test_writes_into_timestamp_directory(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()
        record_steps(repository, run, ["one"])

        path = repository.save_final_output(run, "all done")

        assert path.name == "final_output.txt"
        assert path.parent.name == run.session_timestamp
        assert path.read_text() == "all done"

    def test_empty_content_is_a_no_op(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()

        assert repository.save_final_output(run, "") is None
        assert not (tmp_path / ".stepwise").exists()

    def test_failure_returns_none(self, tmp_path):
        repository = FileStateRepository(SessionManager(tmp_path))
        run = make_run()

        with patch.object(SessionManager, 'ensure_session_directory', side_effect=PermissionError("denied")):
            assert repository.save_final_output(run, "text") is None


def test_filename_helpers():
    assert format_step_filename(7, "analyze") == "step_007_analyze.json"
    assert parse_step_filename("step_012_fix_bugs.json") == (12, "fix_bugs")
    assert parse_step_filename("final_output.txt") is None
