"""
Executable step units.

A step is constructed with the run it belongs to and its resolution
directory, configured by the resolver, then run with execute().
"""

import inspect
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from ..variables import build_bindings
from .prompts import PromptLoader, render_template

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "anthropic:claude-3-7-sonnet"
OUTPUT_TEMPLATE = "output.txt"


def underscore(class_name: str) -> str:
    """'AnalyzeCode' -> 'analyze_code'"""
    name = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', class_name)
    name = re.sub(r'([a-z\d])([A-Z])', r'\1_\2', name)
    return name.replace('-', '_').lower()


def camelize(step_name: str) -> str:
    """'analyze_code' -> 'AnalyzeCode'"""
    return ''.join(part[:1].upper() + part[1:] for part in re.split(r'[_\-\s]+', step_name) if part)


class BaseStep:
    """
    Sidecar-prompt step.

    Sends the prompt found in its resolution directory to the model and
    renders an optional output.txt template into the final output.
    Scripted steps subclass this and override execute().
    """

    def __init__(
        self,
        workflow: Any,
        model: str = DEFAULT_MODEL,
        name: Optional[str] = None,
        context_path: Optional[Path] = None
    ):
        """
        Initialize step.

        Args:
            workflow: The WorkflowRun this step executes in
            model: Model identifier passed to the chat client
            name: Step name (default: underscored class name)
            context_path: Resolution directory (default: directory of the class source)
        """
        self.workflow = workflow
        self.model = model
        self.name = name or underscore(type(self).__name__)
        self.context_path = Path(context_path) if context_path else self._determine_context_path()
        self.print_response = False
        self.loop = True
        self.json = False
        self.params: Dict[str, Any] = {}
        self.resource = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, model={self.model!r})"

    @property
    def transcript(self):
        return self.workflow.transcript

    def execute(self) -> Any:
        self.prompt(self.read_sidecar_prompt())
        return self.chat_completion(
            print_response=self.print_response,
            loop=self.loop,
            json=self.json,
            params=self.params
        )

    def prompt(self, text: Optional[str]) -> None:
        """Append a user turn to the transcript."""
        if text is None:
            return
        self.transcript.add('user', text)

    def append_to_final_output(self, message: Any) -> None:
        self.workflow.append_to_final_output(message)

    def chat_completion(
        self,
        print_response: bool = False,
        loop: bool = True,
        json: bool = False,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Ask the model for a response to the current transcript.

        List responses (one entry per loop turn) are joined with newlines
        after dropping blank entries.

        Returns:
            Response text, or the parsed object in JSON mode
        """
        response = self.workflow.chat_completion(
            model=self.model,
            loop=loop,
            json=json,
            params=params or {}
        )

        if isinstance(response, list):
            response = "\n".join(str(part) for part in response if part is not None and str(part).strip())

        if print_response:
            self.append_to_final_output(_as_text(response))

        self.process_sidecar_output(response)
        return response

    def bindings(self) -> Dict[str, Any]:
        """Names visible to this step's prompt and output templates."""
        bindings = build_bindings(self.workflow)
        bindings['step'] = self
        bindings['run'] = self.workflow
        return bindings

    def read_sidecar_prompt(self) -> Optional[str]:
        loader = PromptLoader(self.name, self.context_path, self.workflow.file)
        return loader.load(self.bindings())

    def process_sidecar_output(self, response: Any) -> None:
        """Render output.txt from the resolution directory, if present."""
        output_path = self.context_path / OUTPUT_TEMPLATE
        if not output_path.is_file():
            return

        bindings = self.bindings()
        bindings['response'] = response
        self.append_to_final_output(render_template(output_path.read_text(), bindings))

    def _determine_context_path(self) -> Path:
        try:
            return Path(inspect.getfile(type(self))).resolve().parent
        except (TypeError, OSError):
            return Path.cwd()


class PromptStep(BaseStep):
    """Inline prompt: the step name itself is sent to the model."""

    def execute(self) -> Any:
        self.prompt(self.name)
        return self.chat_completion(
            print_response=True,
            loop=False,
            json=self.json,
            params=self.params
        )


def _as_text(response: Any) -> str:
    if isinstance(response, (dict, list)):
        return json.dumps(response, indent=2)
    return str(response)
