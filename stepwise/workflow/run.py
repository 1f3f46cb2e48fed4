"""
Run context for a single workflow execution.

Holds the output mapping, transcript and final-output accumulator shared by
every step (and every parallel branch) of one run.
"""

import logging
import threading
import time
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .. import instrumentation
from ..resources import Resource

logger = logging.getLogger(__name__)


class SharedOutput(MutableMapping):
    """Insertion-ordered step output mapping guarded by a lock."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = dict(initial or {})

    def __getitem__(self, key: str) -> Any:
        with self._lock:
            return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        with self._lock:
            # Re-insert so iteration order follows completion order
            self._data.pop(key, None)
            self._data[key] = value

    def __delitem__(self, key: str) -> None:
        with self._lock:
            del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:
        return f"SharedOutput({self.snapshot()!r})"

    def snapshot(self) -> Dict[str, Any]:
        """Return a shallow copy of the current mapping."""
        with self._lock:
            return dict(self._data)

    def replace(self, mapping: Dict[str, Any]) -> None:
        """Replace the whole mapping (used when restoring a snapshot)."""
        with self._lock:
            self._data = dict(mapping)


class SharedList:
    """Append-only list guarded by a lock, replaceable as a whole."""

    def __init__(self, initial: Optional[List[Any]] = None):
        self._lock = threading.Lock()
        self._items: List[Any] = list(initial or [])

    def append(self, item: Any) -> None:
        with self._lock:
            self._items.append(item)

    def snapshot(self) -> List[Any]:
        with self._lock:
            return list(self._items)

    def replace(self, items: List[Any]) -> None:
        with self._lock:
            self._items = list(items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __getitem__(self, index):
        with self._lock:
            return self._items[index]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.snapshot()!r})"


class Transcript(SharedList):
    """Conversation turns exchanged with the model, as {'role', 'content'} dicts."""

    def add(self, role: str, content: str) -> None:
        self.append({'role': role, 'content': content})


class WorkflowRun:
    """
    Mutable state of one workflow execution against one target.

    Steps receive the run explicitly; nothing is looked up globally.
    """

    def __init__(
        self,
        file: Optional[str] = None,
        name: str = "workflow",
        context_path: Optional[Path] = None,
        session_name: Optional[str] = None,
        resource: Optional[Resource] = None,
        chat_client: Any = None,
        tools: Optional[List[str]] = None
    ):
        """
        Initialize run context.

        Args:
            file: Target the run operates on (None for targetless runs)
            name: Workflow name
            context_path: Directory holding the workflow file
            session_name: Session name for state snapshots (None disables them)
            resource: Resource detected for the target
            chat_client: Client implementing chat_completion()
            tools: Tool names declared by the workflow
        """
        self.file = file
        self.name = name
        self.context_path = Path(context_path) if context_path else None
        self.session_name = session_name
        self.session_timestamp: Optional[str] = None
        self.resource = resource
        self.chat_client = chat_client
        self.tools = list(tools or [])

        self.output_file: Optional[str] = None
        self.subject_file: Optional[str] = None

        self.output = SharedOutput()
        self.transcript = Transcript()
        self.final_output = SharedList()

    def append_to_final_output(self, message: Any) -> None:
        """Append a text block to the human-readable report."""
        self.final_output.append(message)

    @property
    def final_output_text(self) -> str:
        return "\n".join(str(block) for block in self.final_output.snapshot())

    @property
    def resource_kind(self) -> Optional[str]:
        return self.resource.kind if self.resource is not None else None

    def chat_completion(
        self,
        model: str,
        loop: bool = True,
        json: bool = False,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Send the transcript to the chat client.

        Returns:
            Text, list of text fragments (looping clients) or parsed JSON
        """
        if self.chat_client is None:
            raise RuntimeError("No chat client configured for this workflow run")

        params = params or {}
        instrumentation.instrument("stepwise.chat_completion.start", {
            'model': model,
            'parameters': params,
        })
        start_time = time.monotonic()
        try:
            response = self.chat_client.chat_completion(
                model=model,
                transcript=self.transcript,
                loop=loop,
                json=json,
                params=params
            )
        except Exception as e:
            instrumentation.instrument("stepwise.chat_completion.error", {
                'model': model,
                'error': type(e).__name__,
                'message': str(e),
                'execution_time': time.monotonic() - start_time,
            })
            raise

        instrumentation.instrument("stepwise.chat_completion.complete", {
            'model': model,
            'parameters': params,
            'execution_time': time.monotonic() - start_time,
            'response_size': len(str(response)),
        })
        return response

    def restore(self, state_data: Dict[str, Any]) -> None:
        """
        Replace run context with a persisted snapshot.

        Args:
            state_data: Snapshot record as written by the state repository
        """
        self.output.replace(state_data.get('output') or {})
        self.transcript.replace(state_data.get('transcript') or [])

        final_output = state_data.get('final_output') or []
        if isinstance(final_output, str):
            final_output = [final_output]
        self.final_output.replace(final_output)

        logger.info(f"Restored state from step: {state_data.get('step_name')}")

    def state_data(self, step_name: str) -> Dict[str, Any]:
        """Capture run context for a snapshot taken after step_name."""
        output = self.output.snapshot()
        return {
            'step_name': step_name,
            'transcript': self.transcript.snapshot(),
            'output': output,
            'final_output': self.final_output.snapshot(),
            'execution_order': list(output.keys()),
        }
