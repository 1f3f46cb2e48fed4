"""
Sidecar prompt loading.

A workflow or step directory may hold markdown prompts specialised by the
target file extension. Search order inside the directory:

1. <name>.<ext>.md, then prompt.<ext>.md, for each target extension
2. {<name>,prompt}.<ext1>+<ext2>.md combined-extension prompts
3. <name>.md, then prompt.md

Prompts containing Jinja2 markup are rendered against the caller's bindings.
"""

import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional

from jinja2 import Environment, StrictUndefined

logger = logging.getLogger(__name__)

_environment = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)


def render_template(content: str, bindings: Mapping[str, Any]) -> str:
    """Render Jinja2 template text with the given bindings."""
    return _environment.from_string(content).render(**dict(bindings))


def needs_rendering(content: str) -> bool:
    return '{{' in content or '{%' in content


class PromptLoader:
    """Finds and renders the sidecar prompt for a workflow or step."""

    def __init__(self, name: str, context_path: Path, target_file: Optional[str] = None):
        """
        Initialize loader.

        Args:
            name: Workflow or step name
            context_path: Directory searched for prompt files
            target_file: Target the run operates on (selects specialised prompts)
        """
        self.name = name
        self.context_path = Path(context_path)
        self.target_file = target_file

    def load(self, bindings: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        """
        Read and render the prompt.

        Returns:
            Prompt text, or None if no prompt file exists
        """
        path = self.find_prompt_path()
        if path is None:
            logger.info(f"Prompt file for {self.name} not found in {self.context_path}")
            return None

        content = path.read_text()
        if needs_rendering(content):
            content = render_template(content, bindings or {})
        return content

    def find_prompt_path(self) -> Optional[Path]:
        extensions = self.extract_file_extensions()

        for ext in extensions:
            for base_name in (self.name, "prompt"):
                path = self.context_path / f"{base_name}.{ext}.md"
                if path.is_file():
                    return path

        for base_name in (self.name, "prompt"):
            for combined_path in sorted(self.context_path.glob(f"{base_name}.*+*.md")):
                combined_exts = combined_path.name[:-len(".md")].split(".", 1)[1].split("+")
                if set(extensions) & set(combined_exts):
                    return combined_path

        for base_name in (self.name, "prompt"):
            path = self.context_path / f"{base_name}.md"
            if path.is_file():
                return path

        return None

    def extract_file_extensions(self) -> List[str]:
        """
        Extensions of the target file used to pick a specialised prompt.

        A markdown target named like 'notes.ts+tsx.md' yields ['ts', 'tsx'].
        """
        if not self.target_file:
            return []

        basename = Path(self.target_file).name
        if basename.endswith(".md") and basename.count(".") > 1:
            without_md = basename[:-len(".md")]
            parts = without_md.split(".", 1)
            return parts[1].split("+") if len(parts) > 1 else []

        suffix = Path(self.target_file).suffix
        return [suffix[1:]] if suffix else []
