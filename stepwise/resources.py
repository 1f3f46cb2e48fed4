"""Target resource detection.

A resource tags the target a workflow runs against so that step events can
report what kind of thing is being processed.
"""

import json
import os
from dataclasses import dataclass
from glob import glob
from typing import Optional
from urllib.parse import urlparse


RESOURCE_KINDS = ("file", "directory", "url", "api", "command", "none", "unknown")


@dataclass(frozen=True)
class Resource:
    """Target of a workflow run."""
    target: Optional[str]
    kind: str = "unknown"

    @property
    def name(self) -> str:
        if self.kind == "none":
            return "Targetless Resource"
        return self.target or "Unnamed Resource"


def detect_kind(target: Optional[str]) -> str:
    """Determine the resource kind of a target string."""
    if target is None or not target.strip():
        return "none"

    if target.startswith("$(") and target.endswith(")"):
        return "command"

    if target.startswith(("http://", "https://", "ftp://")):
        return "url"

    parsed = urlparse(target)
    if parsed.scheme and parsed.netloc:
        return "url"

    if os.path.isdir(target):
        return "directory"

    if "*" in target or "?" in target:
        matches = glob(target)
        if not matches:
            return "none"
        if all(os.path.isdir(path) for path in matches):
            return "directory"
        return "file"

    if os.path.exists(target):
        return "file"

    try:
        config = json.loads(target)
    except ValueError:
        config = None
    if isinstance(config, dict) and "url" in config and "options" in config:
        return "api"

    return "file"


def for_target(target: Optional[str]) -> Resource:
    """Build the resource for a target."""
    return Resource(target=target, kind=detect_kind(target))
