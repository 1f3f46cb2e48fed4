"""
Chat providers.

Provider templates, their registry and executor, and the chat client that
drives them from a workflow transcript.
"""

from .types import (
    ProviderTemplate,
    ProviderParams,
    ProviderInvocation,
    InputMode,
)
from .registry import ProviderRegistry
from .executor import ProviderExecutor, ProviderExecutionResult
from .chat import ProviderChatClient


__all__ = [
    "ProviderTemplate",
    "ProviderParams",
    "ProviderInvocation",
    "InputMode",
    "ProviderRegistry",
    "ProviderExecutor",
    "ProviderExecutionResult",
    "ProviderChatClient",
]
