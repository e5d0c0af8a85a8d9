"""HTTP upload of deployment archives to an agent."""

from __future__ import annotations

from typing import Optional

import httpx

from pushdeploy.core.exceptions import DeploymentRejectedError, TransportError

UPLOAD_FIELD = "deployment"
UPLOAD_FILENAME = "deployment.zip"
DEFAULT_TIMEOUT = 300.0


def deploy_url(server_url: str) -> str:
    return server_url.rstrip("/") + "/deploy"


def send_deployment(
    server_url: str,
    archive: bytes,
    api_key: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    client: Optional[httpx.Client] = None,
) -> str:
    """Upload ``archive`` to the agent at ``server_url``. One attempt, no retry.

    Returns:
        The agent's confirmation message

    Raises:
        DeploymentRejectedError: The agent answered with a non-200 status
        TransportError: The request could not be completed
    """
    files = {UPLOAD_FIELD: (UPLOAD_FILENAME, archive, "application/zip")}
    headers = {"Authorization": f"Bearer {api_key}"}

    owns_client = client is None
    http = client or httpx.Client(timeout=httpx.Timeout(timeout))
    try:
        resp = http.post(deploy_url(server_url), files=files, headers=headers)
    except httpx.HTTPError as exc:
        raise TransportError(f"Failed to send deployment: {exc}") from exc
    finally:
        if owns_client:
            http.close()

    if resp.status_code != 200:
        raise DeploymentRejectedError(resp.status_code, resp.text)
    return resp.text
