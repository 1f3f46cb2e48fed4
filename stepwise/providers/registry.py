"""
Provider registry for chat provider templates.

Built-in templates cover the claude, gemini and codex CLIs; workflows may
declare their own under the 'providers' key, which shadow built-ins.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from .types import ProviderTemplate, InputMode


logger = logging.getLogger(__name__)


BUILTIN_PROVIDERS = {
    "claude": ProviderTemplate(
        name="claude",
        command=["claude", "-p", "${PROMPT}", "--model", "${model}"],
        defaults={"model": "claude-sonnet-4-20250514"},
        input_mode=InputMode.ARGV
    ),
    "gemini": ProviderTemplate(
        name="gemini",
        command=["gemini", "-p", "${PROMPT}"],
        defaults={},
        input_mode=InputMode.ARGV
    ),
    "codex": ProviderTemplate(
        name="codex",
        command=["codex", "exec", "--model", "${model}"],
        defaults={"model": "gpt-5"},
        input_mode=InputMode.STDIN
    ),
}


class ProviderRegistry:
    """Lookup of provider templates by name."""

    def __init__(self):
        self._providers: Dict[str, ProviderTemplate] = {}

    @classmethod
    def from_workflow(cls, providers_config: Optional[Dict[str, Dict]]) -> "ProviderRegistry":
        """
        Build a registry holding the workflow's providers.

        Raises:
            ValueError: If any declared provider is invalid
        """
        registry = cls()
        errors = registry.register_from_workflow(providers_config or {})
        if errors:
            raise ValueError(f"Provider registration errors: {'; '.join(errors)}")
        return registry

    def register(self, provider: ProviderTemplate) -> None:
        """
        Register a provider template.

        Raises:
            ValueError: If provider is invalid
        """
        errors = provider.validate()
        if errors:
            raise ValueError(f"Invalid provider template: {'; '.join(errors)}")

        self._providers[provider.name] = provider
        logger.debug(f"Registered provider: {provider.name}")

    def register_from_workflow(self, providers_config: Dict[str, Dict]) -> List[str]:
        """
        Register providers declared in a workflow.

        Returns:
            List of validation errors (empty if all valid)
        """
        errors = []

        for name, config in providers_config.items():
            try:
                provider = ProviderTemplate(
                    name=name,
                    command=list(config.get("command", [])),
                    defaults=dict(config.get("defaults", {})),
                    input_mode=InputMode(config.get("input_mode", "argv"))
                )
            except (ValueError, TypeError, AttributeError) as e:
                errors.append(f"Error registering provider '{name}': {e}")
                continue

            validation_errors = provider.validate()
            if validation_errors:
                errors.extend(validation_errors)
            else:
                self.register(provider)

        return errors

    def get(self, name: str) -> Optional[ProviderTemplate]:
        """Workflow provider by name, else the built-in one, else None."""
        return self._providers.get(name) or BUILTIN_PROVIDERS.get(name)

    def exists(self, name: str) -> bool:
        return self.get(name) is not None

    def list_providers(self) -> List[str]:
        return sorted(set(self._providers) | set(BUILTIN_PROVIDERS))

    def merge_params(self, provider_name: str, step_params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Merge provider defaults with step parameters (step wins, nested dicts merge).
        """
        provider = self.get(provider_name)
        if not provider:
            return dict(step_params or {})

        merged = copy.deepcopy(provider.defaults)
        if step_params:
            merged = _deep_merge(merged, step_params)
        return merged


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
