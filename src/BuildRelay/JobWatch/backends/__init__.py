"""Remote build service backends.

Each backend implements :class:`~BuildRelay.JobWatch.backends.base.JobBackend`.
:func:`build_backend` selects one by service name and binds it to settings.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

import httpx

from ..errors import ConfigurationError
from ..settings import JobWatchSettings
from .base import HttpJobBackend, JobBackend
from .codemagic import CodemagicBackend, map_codemagic_status, strip_subaction_commands
from .github import PLATFORM_PRESETS, GitHubDispatchBackend, map_github_run, workflow_inputs


class Service(str, Enum):
    """Remote services a job can be sent to."""

    CODEMAGIC = "codemagic"
    GITHUB = "github"


def build_backend(
    service: Service | str,
    settings: JobWatchSettings,
    client: Optional[httpx.Client] = None,
) -> JobBackend:
    """Instantiate the backend for ``service`` using its settings section."""

    try:
        service = Service(service)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown service: {service!r}") from exc
    if service is Service.CODEMAGIC:
        return CodemagicBackend(settings.codemagic, client)
    return GitHubDispatchBackend(settings.github, client)


__all__ = [
    "Service",
    "build_backend",
    "JobBackend",
    "HttpJobBackend",
    "CodemagicBackend",
    "GitHubDispatchBackend",
    "PLATFORM_PRESETS",
    "map_codemagic_status",
    "map_github_run",
    "strip_subaction_commands",
    "workflow_inputs",
]
