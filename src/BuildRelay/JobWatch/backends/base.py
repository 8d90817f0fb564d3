"""Backend protocol and the shared HTTP plumbing used by concrete services.

A backend speaks one remote build API. It turns a :class:`JobRequest` into a
:class:`JobHandle` and a handle into a :class:`StatusReport`, translating
transport failures and HTTP status codes into the job-watch error taxonomy:

==================================  ==================
Situation                           Raised
==================================  ==================
trigger: transport error / non-2xx  ``TriggerError``
trigger: no job id in response      ``TriggerError``
poll: 404 / 410                     ``NotFound``
poll: transport error / non-2xx     ``PollError``
poll: body not a JSON object        ``PollError``
==================================  ==================
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol, Type, runtime_checkable

import httpx

from ..errors import JobWatchError, NotFound, PollError, TriggerError
from ..models import JobHandle, JobRequest, StatusReport
from ..network import NOT_FOUND_STATUS_CODES, get_http_client

logger = logging.getLogger(__name__)

_BODY_SNIPPET_CHARS = 200


@runtime_checkable
class JobBackend(Protocol):
    """Adapter for one remote build service."""

    name: str

    def trigger(self, request: JobRequest) -> JobHandle:
        """Submit ``request`` and return the handle of the created job."""

    def poll(self, handle: JobHandle) -> StatusReport:
        """Return the current status of the job behind ``handle``."""


class HttpJobBackend:
    """Base class for backends reached over HTTPS with JSON payloads."""

    name = "http"

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self._client = client

    @property
    def client(self) -> httpx.Client:
        return self._client if self._client is not None else get_http_client()

    def _headers(self) -> Dict[str, str]:
        return {}

    def _send_trigger(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise TriggerError(f"{self.name}: job submission failed: {exc}") from exc

        if response.is_error:
            raise TriggerError(
                f"{self.name}: job submission rejected with HTTP {response.status_code}: "
                f"{_snippet(response)}",
                status_code=response.status_code,
            )
        return response

    def _send_poll(self, url: str, handle: JobHandle) -> Mapping[str, Any]:
        try:
            response = self.client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise PollError(f"{self.name}: status query failed: {exc}", handle=handle) from exc

        if response.status_code in NOT_FOUND_STATUS_CODES:
            raise NotFound(
                f"{self.name}: job {handle.job_id} is unknown to the remote service",
                handle=handle,
                status_code=response.status_code,
            )
        if response.is_error:
            raise PollError(
                f"{self.name}: status query returned HTTP {response.status_code}: "
                f"{_snippet(response)}",
                handle=handle,
                status_code=response.status_code,
            )
        return json_object(response, PollError, service=self.name, handle=handle)


def json_object(
    response: httpx.Response,
    error_cls: Type[JobWatchError],
    *,
    service: str,
    handle: Optional[JobHandle] = None,
) -> Mapping[str, Any]:
    """Decode ``response`` as a JSON object or raise ``error_cls``."""

    try:
        payload = response.json()
    except ValueError as exc:
        raise error_cls(
            f"{service}: response is not valid JSON: {_snippet(response)}",
            handle=handle,
            status_code=response.status_code,
        ) from exc
    if not isinstance(payload, Mapping):
        raise error_cls(
            f"{service}: expected a JSON object, got {type(payload).__name__}",
            handle=handle,
            status_code=response.status_code,
        )
    return payload


def _snippet(response: httpx.Response) -> str:
    text = response.text.strip().replace("\n", " ")
    if len(text) > _BODY_SNIPPET_CHARS:
        return text[:_BODY_SNIPPET_CHARS] + "..."
    return text or "<empty body>"


__all__ = ["JobBackend", "HttpJobBackend", "json_object"]
