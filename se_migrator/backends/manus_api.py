from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .base_backend import BackendUnavailableError

# Define common HTTP status codes that warrant a retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class ManusApiClient:
    """Thin async client for the Manus task API."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.manus.ai",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(30.0),
            follow_redirects=True,
        )
        if not api_key:
            logger.warning("MANUS_API_KEY is not set; delegated extraction will not work.")

    @property
    def _auth_headers(self) -> Dict[str, str]:
        # Only sent to the Manus API, never to attachment hosts
        return {"API_KEY": self.api_key or "", "Content-Type": "application/json"}

    @retry(
        stop=stop_after_attempt(4),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.RequestError),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        return await self.client.request(method, url, headers=headers, json=json_data)

    async def _make_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Makes a request, retrying transport errors, and maps failures to BackendUnavailableError."""
        logger.debug(f"Manus request {method} {url}")
        try:
            response = await self._send(method, url, headers=headers, json_data=json_data)
        except (httpx.RequestError, RetryError) as e:
            logger.error(f"Manus API unreachable at {url}: {e}")
            raise BackendUnavailableError("Task API is unreachable") from e

        if response.status_code in {401, 403}:
            logger.warning(f"Manus API rejected the API key ({response.status_code}).")
            raise BackendUnavailableError(
                f"Task API authentication failed ({response.status_code})"
            )
        if response.status_code >= 400:
            level = "WARNING" if response.status_code in RETRYABLE_STATUS_CODES else "ERROR"
            logger.log(level, f"Manus API error {response.status_code} for {url}: {response.text[:200]}")
            raise BackendUnavailableError(f"Task API error: {response.status_code}")
        return response

    async def create_task(self, prompt: str, mode: str = "quality") -> Dict[str, Any]:
        response = await self._make_request(
            "POST",
            f"{self.base_url}/v1/tasks",
            headers=self._auth_headers,
            json_data={"prompt": prompt, "mode": mode, "hide_in_task_list": True},
        )
        data = response.json()
        if not data.get("task_id"):
            raise BackendUnavailableError("Failed to create data extraction task")
        logger.info(f"Created extraction task {data['task_id']} ({data.get('task_url')}).")
        return data

    async def register_webhook(self, url: str) -> Optional[str]:
        response = await self._make_request(
            "POST",
            f"{self.base_url}/v1/webhooks",
            headers=self._auth_headers,
            json_data={"webhook": {"url": url}},
        )
        return response.json().get("webhook_id")

    async def get_task(self, task_id: str) -> Dict[str, Any]:
        response = await self._make_request(
            "GET", f"{self.base_url}/v1/tasks/{task_id}", headers=self._auth_headers
        )
        return response.json()

    async def fetch_json(self, url: str) -> Any:
        response = await self._make_request("GET", url)
        return response.json()

    async def close(self):
        await self.client.aclose()
        logger.info("Closed Manus API client.")


def task_detail_from_status(task: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Normalize a task status document into the webhook's `task_detail` shape.

    Returns None while the task is still running.
    """
    status = (task.get("status") or "").lower()
    stop_reason = task.get("stop_reason")
    if status in ("pending", "running", "queued") and not stop_reason:
        return None
    if not status and not stop_reason:
        return None

    message = task.get("message") or ""
    attachments: List[Dict[str, Any]] = list(task.get("attachments") or [])
    for entry in task.get("output") or []:
        for part in entry.get("content") or []:
            if part.get("type") == "output_text" and part.get("text"):
                message = f"{message}\n{part['text']}" if message else part["text"]
            elif part.get("type") == "output_file":
                attachments.append(
                    {
                        "file_name": part.get("fileName") or part.get("file_name"),
                        "url": part.get("fileUrl") or part.get("url"),
                    }
                )

    if not stop_reason:
        stop_reason = "finish" if status in ("completed", "finished", "stopped") else status
    return {
        "task_id": task.get("id") or task.get("task_id"),
        "message": message,
        "attachments": attachments,
        "stop_reason": stop_reason,
    }
