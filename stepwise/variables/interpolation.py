"""
Template interpolation for step names and commands.
Handles {{expression}} resolution against the live run bindings.
"""

import logging
import re
from typing import Any, Dict, Mapping

from jinja2 import Environment, StrictUndefined

logger = logging.getLogger(__name__)


class Interpolator:
    """
    Resolves {{expression}} placeholders in step text.

    Expressions are Jinja2 expressions evaluated against the run bindings:
    - output: {{ output.step_name }} or {{ output["step name"] }}
    - file, resource, session_name, final_output, transcript, workflow, context

    Unknown names fail strictly; a failing expression is logged and left in
    place so interpolation never aborts a run.
    """

    EXPRESSION_PATTERN = re.compile(r'\{\{([^}]+)\}\}')

    def __init__(self):
        """Initialize the interpolator."""
        self._env = Environment(undefined=StrictUndefined, autoescape=False)

    def interpolate(self, text: Any, bindings: Mapping[str, Any]) -> Any:
        """
        Substitute every {{expression}} in text.

        Args:
            text: Step text; non-strings pass through unchanged
            bindings: Names visible to expressions

        Returns:
            Text with expressions replaced by their string values
        """
        if not isinstance(text, str) or '{{' not in text or '}}' not in text:
            return text

        def replace_expression(match):
            expression = match.group(1).strip()
            try:
                return self._to_text(self.evaluate(expression, bindings))
            except Exception as e:
                logger.error(
                    f"Error interpolating {{{{{expression}}}}}: {e}. "
                    f"This variable is not defined in the workflow context. "
                    f"Please define it before using it in a step name."
                )
                return match.group(0)

        return self.EXPRESSION_PATTERN.sub(replace_expression, text)

    def evaluate(self, expression: str, bindings: Mapping[str, Any]) -> Any:
        """
        Evaluate a single expression.

        Raises:
            jinja2.TemplateError: On syntax errors or undefined names
        """
        compiled = self._env.compile_expression(expression, undefined_to_none=False)
        return compiled(**dict(bindings))

    def _to_text(self, value: Any) -> str:
        # str() on a StrictUndefined raises UndefinedError
        if isinstance(value, bool):
            return 'true' if value else 'false'
        return str(value)


def build_bindings(run: Any) -> Dict[str, Any]:
    """Build the expression namespace exposed by a workflow run."""
    return {
        'output': run.output,
        'file': run.file,
        'resource': run.resource,
        'session_name': run.session_name,
        'final_output': run.final_output_text,
        'transcript': run.transcript,
        'workflow': run.name,
        'context': str(run.context_path) if run.context_path else None,
    }
