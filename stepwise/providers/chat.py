"""
Chat client backed by a provider CLI.

The transcript is rendered into a single prompt, handed to the provider
command, and the provider's stdout becomes the assistant turn.
"""

import json as jsonlib
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import ChatCompletionError
from .executor import ProviderExecutor
from .registry import ProviderRegistry
from .types import ProviderParams

logger = logging.getLogger(__name__)

JSON_FENCE_PATTERN = re.compile(r'^```(?:json)?\s*\n(.*)\n```\s*$', re.DOTALL)


def provider_model(model: Optional[str]) -> Optional[str]:
    """'anthropic:claude-3-7-sonnet' -> 'claude-3-7-sonnet'"""
    if not model:
        return None
    return model.split(":", 1)[-1]


def render_transcript(transcript: Iterable[Dict[str, Any]]) -> str:
    """Render transcript turns as '[role]' sections separated by blank lines."""
    sections = []
    for turn in transcript:
        content = turn.get('content')
        if content is None:
            continue
        sections.append(f"[{turn.get('role', 'user')}]\n{content}")
    return "\n\n".join(sections)


def parse_json_response(text: str) -> Any:
    """
    Parse a JSON response, tolerating a surrounding ``` fence.

    Raises:
        ChatCompletionError: If the text is not valid JSON
    """
    candidate = text.strip()
    fenced = JSON_FENCE_PATTERN.match(candidate)
    if fenced:
        candidate = fenced.group(1)
    try:
        return jsonlib.loads(candidate)
    except ValueError as e:
        raise ChatCompletionError(f"Provider response is not valid JSON: {e}")


class ProviderChatClient:
    """Chat client that runs one provider invocation per completion."""

    def __init__(
        self,
        provider: str = "claude",
        registry: Optional[ProviderRegistry] = None,
        tools: Optional[List[str]] = None,
        workspace: Optional[Path] = None,
        timeout_sec: Optional[int] = None
    ):
        """
        Initialize chat client.

        Args:
            provider: Provider template name
            registry: Registry holding workflow-declared providers
            tools: Tool names exposed as the ${tools} placeholder
            workspace: Working directory for the provider process
            timeout_sec: Per-invocation timeout
        """
        self.provider = provider
        self.executor = ProviderExecutor(workspace, registry or ProviderRegistry())
        self.tools = list(tools or [])
        self.timeout_sec = timeout_sec

    def chat_completion(
        self,
        model: Optional[str],
        transcript: Any,
        loop: bool = True,
        json: bool = False,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Complete the transcript with the provider.

        Provider CLIs run their own agent loop, so loop only affects logging.
        The raw response text is appended to the transcript as an assistant turn.

        Returns:
            Response text, or the parsed JSON value when json is True

        Raises:
            ChatCompletionError: On preparation failure, non-zero exit or invalid JSON
        """
        step_params = dict(params or {})
        model_name = provider_model(model)
        if model_name and 'model' not in step_params:
            step_params['model'] = model_name

        prompt = render_transcript(transcript)
        context = {'tools': ",".join(self.tools)}

        invocation, error = self.executor.prepare_invocation(
            self.provider,
            ProviderParams(params=step_params),
            context=context,
            prompt_content=prompt,
            timeout_sec=self.timeout_sec
        )
        if error:
            raise ChatCompletionError(error['message'])

        logger.debug(f"Chat completion via {self.provider} (model={step_params.get('model')}, loop={loop})")
        result = self.executor.execute(invocation)
        if result.exit_code != 0:
            stderr = result.stderr.decode('utf-8', errors='replace').strip()
            raise ChatCompletionError(
                f"Provider '{self.provider}' exited with status {result.exit_code}: {stderr}",
                exit_code=result.exit_code
            )

        text = result.text.strip()
        response = parse_json_response(text) if json else text
        transcript.add('assistant', text)
        return response
