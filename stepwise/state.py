"""State snapshots for crash recovery and replay.

Persists the run context after each resolved step, one JSON file per step,
with atomic writes (temp file + rename).
"""

import json
import logging
import re
import shutil
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .session import SessionManager

logger = logging.getLogger(__name__)

STEP_FILE_PATTERN = re.compile(r'^step_(\d+)_(.*)\.json$', re.DOTALL)
MAX_STEP_NAME_LENGTH = 200
FINAL_OUTPUT_FILE = "final_output.txt"


def safe_step_name(step_name: str) -> str:
    """Step name as encoded in a snapshot filename."""
    name = re.sub(r'[/\\\x00]', '_', step_name)
    return name[:MAX_STEP_NAME_LENGTH]


def format_step_filename(order: int, step_name: str) -> str:
    return f"step_{order:03d}_{safe_step_name(step_name)}.json"


def parse_step_filename(filename: str) -> Optional[tuple]:
    """Return (order, encoded step name) for a snapshot filename, else None."""
    match = STEP_FILE_PATTERN.match(filename)
    if not match:
        return None
    return int(match.group(1)), match.group(2)


class FileStateRepository:
    """Reads and writes step snapshots under the session directories."""

    def __init__(self, session_manager: Optional[SessionManager] = None):
        """
        Initialize repository.

        Args:
            session_manager: Session layout (default: rooted at the current directory)
        """
        self.session_manager = session_manager or SessionManager()
        self._state_lock = threading.Lock()

    def save_state(
        self,
        run: Any,
        step_name: str,
        state_data: Optional[Dict[str, Any]] = None
    ) -> Optional[Path]:
        """
        Persist the snapshot taken after step_name.

        The run context (unless state_data is given) is captured and the
        sequence order assigned under the same lock, so a higher order never
        holds an older context. The order is one more than the highest
        snapshot number already present for the run's session timestamp.
        Write failures are logged and swallowed.

        Returns:
            Path of the written snapshot, or None on failure
        """
        try:
            with self._state_lock:
                if run.session_timestamp is None:
                    self.session_manager.create_new_session(run)

                session_dir = self.session_manager.ensure_session_directory(
                    run, run.session_timestamp
                )
                order = self._next_order(session_dir)
                record = dict(state_data if state_data is not None else run.state_data(step_name))
                record['order'] = order

                step_file = session_dir / format_step_filename(order, step_name)
                self._write_json(step_file, record)
                return step_file
        except Exception as e:
            logger.error(f"Failed to save state for step {step_name}: {e}")
            return None

    def load_state_before_step(
        self,
        run: Any,
        step_name: str,
        timestamp: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Load the snapshot written immediately before step_name.

        Args:
            run: Workflow run (session name and target select the session)
            step_name: Step to replay from
            timestamp: Session timestamp to read; None selects the latest

        Returns:
            The snapshot record, or None if step_name is absent or first
        """
        session_dir = self.session_manager.find_session_directory(
            run.session_name, run.file, timestamp
        )
        if session_dir is None:
            return None

        step_files = self.find_step_files(session_dir)
        if not step_files:
            return None

        target_index = self._find_step_before(step_files, step_name)
        if target_index is None:
            logger.warning(f"No suitable state found for step {step_name} - no prior steps found in session.")
            return None
        if target_index < 0:
            logger.warning(f"No state before step {step_name} (it may be the first step)")
            return None

        state_file = step_files[target_index]
        state_data = self._load_state_file(state_file)
        logger.info(
            f"Found state from step: {parse_step_filename(state_file.name)[1]} "
            f"(will replay from here to {step_name})"
        )

        if timestamp is None and run.session_timestamp is None:
            self._copy_states_to_new_session(run, session_dir, step_files[:target_index + 1])

        return state_data

    def save_final_output(self, run: Any, content: str) -> Optional[Path]:
        """
        Write final_output.txt into the run's session timestamp directory.

        Returns:
            Path written, or None when content is empty or writing fails
        """
        if not content:
            return None

        try:
            with self._state_lock:
                if run.session_timestamp is None:
                    self.session_manager.create_new_session(run)
                session_dir = self.session_manager.ensure_session_directory(
                    run, run.session_timestamp
                )
            output_file = session_dir / FINAL_OUTPUT_FILE
            output_file.write_text(content)
            logger.info(f"Final output saved to: {output_file}")
            return output_file
        except Exception as e:
            logger.error(f"Failed to save final output: {e}")
            return None

    def find_step_files(self, session_dir: Path) -> List[Path]:
        """Snapshot files of a session directory ordered by sequence number."""
        step_files = []
        for path in session_dir.glob("step_*_*.json"):
            parsed = parse_step_filename(path.name)
            if parsed is not None:
                step_files.append((parsed[0], path))
        return [path for _, path in sorted(step_files, key=lambda item: item[0])]

    def _find_step_before(self, step_files: List[Path], step_name: str) -> Optional[int]:
        encoded = safe_step_name(step_name)
        for index, path in enumerate(step_files):
            if parse_step_filename(path.name)[1] == encoded:
                return index - 1
        return None

    def _next_order(self, session_dir: Path) -> int:
        orders = [
            parsed[0]
            for parsed in (parse_step_filename(path.name) for path in session_dir.glob("step_*_*.json"))
            if parsed is not None
        ]
        return max(orders) + 1 if orders else 0

    def _load_state_file(self, state_file: Path) -> Dict[str, Any]:
        with open(state_file, 'r') as f:
            return json.load(f)

    def _write_json(self, path: Path, data: Dict[str, Any]) -> None:
        """Write JSON atomically (temp file + rename)."""
        temp_file = path.with_name(path.name + '.tmp')
        with open(temp_file, 'w') as f:
            json.dump(data, f, indent=2, default=str)
        temp_file.replace(path)

    def _copy_states_to_new_session(self, run: Any, source_dir: Path, state_files: List[Path]) -> None:
        self.session_manager.create_new_session(run)
        target_dir = self.session_manager.ensure_session_directory(run, run.session_timestamp)
        if target_dir == source_dir:
            return

        for state_file in state_files:
            shutil.copy2(state_file, target_dir / state_file.name)
        logger.debug(f"Copied {len(state_files)} snapshot(s) into session {run.session_timestamp}")
