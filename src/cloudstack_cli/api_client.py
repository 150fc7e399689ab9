"""Remote API gateway for the CloudStack control plane.

The resolver and the orchestrator only depend on the narrow
``CloudStackGateway`` protocol:

- list(entity_type, filters) -> list of entities
- submit(action, params) -> job id
- poll_job(job_id) -> JobStatusReport

``CloudStackClient`` implements it over the signed HTTP query API using
``requests``. A session is kept per thread so the client can be shared by
the orchestrator's worker threads.

Security:
- Secret key never leaves this module
- API key and signature are masked in every logged message
"""

import base64
import hashlib
import hmac
import logging
import threading
from typing import Any, Protocol
from urllib.parse import quote

import requests

from cloudstack_cli.errors import RemoteAPIError, TransportError
from cloudstack_cli.models import Entity, JobStatus, JobStatusReport
from cloudstack_cli.retry_handler import (
    _safe_error_message,
    retry_with_exponential_backoff,
    should_retry_http_error,
)

logger = logging.getLogger(__name__)


class CloudStackGateway(Protocol):
    """Narrow contract the core consumes from the control plane."""

    def list(self, entity_type: str, filters: dict[str, Any]) -> list[Entity]: ...

    def submit(self, action: str, params: dict[str, Any]) -> str: ...

    def poll_job(self, job_id: str) -> JobStatusReport: ...


# entity type -> (list command, key of the entity list in the response)
ENTITY_COMMANDS: dict[str, tuple[str, str]] = {
    "zone": ("listZones", "zone"),
    "project": ("listProjects", "project"),
    "account": ("listAccounts", "account"),
    "domain": ("listDomains", "domain"),
    "template": ("listTemplates", "template"),
    "iso": ("listIsos", "iso"),
    "service_offering": ("listServiceOfferings", "serviceoffering"),
    "disk_offering": ("listDiskOfferings", "diskoffering"),
    "network": ("listNetworks", "network"),
    "host": ("listHosts", "host"),
    "cluster": ("listClusters", "cluster"),
    "snapshot": ("listSnapshots", "snapshot"),
    "virtual_machine": ("listVirtualMachines", "virtualmachine"),
}

# queryAsyncJobResult jobstatus codes
_JOB_STATUS_CODES = {
    0: JobStatus.PENDING,
    1: JobStatus.SUCCEEDED,
    2: JobStatus.FAILED,
}


def to_api_params(params: dict[str, Any]) -> dict[str, str]:
    """Flatten option-style params into query API parameters.

    ``project_id`` becomes ``projectid``; lists of scalars are joined with
    commas; lists of mappings become ``key[i].field`` entries; None values
    are dropped.
    """
    flat: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        api_key = key.replace("_", "").lower()
        if isinstance(value, bool):
            flat[api_key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            if value and all(isinstance(item, dict) for item in value):
                for index, item in enumerate(value):
                    for sub_key, sub_value in item.items():
                        flat[f"{api_key}[{index}].{sub_key.replace('_', '').lower()}"] = str(
                            sub_value
                        )
            elif value:
                flat[api_key] = ",".join(str(item) for item in value)
        else:
            flat[api_key] = str(value)
    return flat


def sign_request(params: dict[str, str], secret_key: str) -> str:
    """Compute the request signature over sorted, lower-cased query params."""
    query = "&".join(
        f"{key}={quote(str(params[key]), safe='*')}"
        for key in sorted(params, key=str.lower)
    )
    digest = hmac.new(secret_key.encode(), query.lower().encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


class CloudStackClient:
    """HTTP client for the CloudStack query API."""

    DEFAULT_TIMEOUT = 60

    def __init__(self, url: str, api_key: str, secret_key: str, timeout: int | None = None):
        """Initialize client.

        Args:
            url: API endpoint (e.g. https://cloud.example.com/client/api)
            api_key: API key of the operator
            secret_key: Secret key used to sign requests
            timeout: Per-request timeout in seconds
        """
        self.url = url
        self.api_key = api_key
        self._secret_key = secret_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def request(self, command: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one signed API command and return the unwrapped response body.

        Raises:
            TransportError: On connection errors, timeouts and retryable HTTP codes
            RemoteAPIError: When the control plane rejects the request
        """
        query = to_api_params(params or {})
        query.update({"command": command, "apiKey": self.api_key, "response": "json"})
        query["signature"] = sign_request(query, self._secret_key)

        logger.debug(f"API call: {command} ({len(query) - 4} parameters)")

        try:
            response = self._session().get(self.url, params=query, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"{command}: {_safe_error_message(e)}") from e

        if should_retry_http_error(response.status_code):
            raise TransportError(f"{command}: HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteAPIError(
                f"{command}: invalid JSON response (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from e

        payload = body.get(f"{command.lower()}response", {})
        if response.status_code >= 400 or "errortext" in payload:
            raise RemoteAPIError(
                f"{command}: {payload.get('errortext', f'HTTP {response.status_code}')}",
                status_code=response.status_code,
                error_code=payload.get("errorcode"),
            )
        return payload

    @retry_with_exponential_backoff(max_attempts=3, initial_delay=1.0)
    def list(self, entity_type: str, filters: dict[str, Any]) -> list[Entity]:
        """List catalog entities of a kind.

        Args:
            entity_type: One of ENTITY_COMMANDS
            filters: Filters in option form (``project_id``, ``name``, ...)

        Returns:
            Entities in the order the control plane returned them
        """
        if entity_type not in ENTITY_COMMANDS:
            raise ValueError(f"Unknown entity type: {entity_type}")
        command, key = ENTITY_COMMANDS[entity_type]
        payload = self.request(command, filters)
        return list(payload.get(key, []))

    def submit(self, action: str, params: dict[str, Any]) -> str:
        """Submit an asynchronous command and return its job id."""
        payload = self.request(action, params)
        job_id = payload.get("jobid")
        if not job_id:
            raise RemoteAPIError(f"{action}: response carried no job id")
        logger.debug(f"{action} accepted as job {job_id}")
        return str(job_id)

    def poll_job(self, job_id: str) -> JobStatusReport:
        """Query the status of an asynchronous job."""
        payload = self.request("queryAsyncJobResult", {"job_id": job_id})
        status = _JOB_STATUS_CODES.get(int(payload.get("jobstatus", 0)), JobStatus.PENDING)
        result = payload.get("jobresult")
        error_text = None
        if status is JobStatus.FAILED and isinstance(result, dict):
            error_text = result.get("errortext")
        return JobStatusReport(
            status=status,
            result=result if isinstance(result, dict) else None,
            progress=payload.get("jobprocstatus"),
            error_text=error_text,
        )


__all__ = [
    "CloudStackClient",
    "CloudStackGateway",
    "ENTITY_COMMANDS",
    "sign_request",
    "to_api_params",
]
