import time
from typing import Callable, Literal

import httpx
from loguru import logger

from ..core.config import Settings, settings
from .errors import DocumentParseError, InvoicerError

JobStatus = Literal["SUCCESS", "PENDING", "ERROR"]

REDIRECT_STATUSES = (302, 303, 307)


class DocumentParser:
    """
    LlamaParse client: upload a document, poll the job, fetch its markdown.

    Polling is a fixed number of attempts at a fixed interval; there is no
    cancellation beyond that ceiling.
    """

    def __init__(
        self,
        api_key: str,
        project_id: str | None = None,
        base_url: str = "https://api.cloud.llamaindex.ai",
        poll_attempts: int = 60,
        poll_interval: float = 2.0,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key.strip()
        self.project_id = (project_id or "").strip()
        self.base_url = base_url.strip().rstrip("/")
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self._http = http_client or httpx.Client(timeout=60)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg: Settings = settings, **kwargs) -> "DocumentParser":
        if not cfg.llamaparse_api_key:
            raise InvoicerError("LLAMAPARSE_API_KEY is not configured")
        return cls(
            api_key=cfg.llamaparse_api_key,
            project_id=cfg.llamaparse_project_id,
            base_url=cfg.llamaparse_base_url,
            poll_attempts=cfg.parse_poll_attempts,
            poll_interval=cfg.parse_poll_interval_seconds,
            **kwargs,
        )

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}

    @staticmethod
    def _json_body(response: httpx.Response, what: str) -> dict:
        try:
            body = response.json()
        except ValueError as e:
            raise DocumentParseError(f"{what} returned a non-JSON body: {response.text[:200]}") from e
        if not isinstance(body, dict):
            raise DocumentParseError(f"{what} returned unexpected JSON: {response.text[:200]}")
        return body

    def upload(self, content: bytes, filename: str) -> str:
        """Start a parse job and return its id."""
        logger.info("Uploading document for parsing", filename=filename, size_bytes=len(content))
        try:
            response = self._http.post(
                f"{self.base_url}/api/v1/parsing/upload",
                headers=self._auth_headers(),
                files={"file": (filename, content)},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DocumentParseError(f"Upload of {filename} failed: {e}") from e

        job_id = self._json_body(response, f"Upload of {filename}").get("id")
        if not job_id:
            raise DocumentParseError(f"Upload of {filename} returned no job id")
        logger.info("Parse job created", filename=filename, job_id=job_id)
        return job_id

    def poll_status(self, job_id: str) -> JobStatus:
        try:
            response = self._http.get(
                f"{self.base_url}/api/v1/parsing/job/{job_id}",
                headers=self._auth_headers(),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DocumentParseError(f"Polling job {job_id} failed: {e}") from e

        status = self._json_body(response, f"Polling job {job_id}").get("status", "PENDING")
        return status if status in ("SUCCESS", "ERROR") else "PENDING"

    def wait_for_job(self, job_id: str) -> None:
        """Block until the job succeeds; raise on ERROR or when polling runs out."""
        for attempt in range(self.poll_attempts):
            status = self.poll_status(job_id)
            logger.debug("Parse job status", job_id=job_id, status=status, attempt=attempt + 1)
            if status == "SUCCESS":
                return
            if status == "ERROR":
                raise DocumentParseError(f"Parse job {job_id} failed")
            if attempt + 1 < self.poll_attempts:
                self._sleep(self.poll_interval)
        raise DocumentParseError(
            f"Parse job {job_id} did not finish after {self.poll_attempts} polls"
        )

    def fetch_result(self, job_id: str) -> str:
        """
        Return the job's markdown.

        The API may answer with a redirect to a presigned URL, which is
        followed without the Authorization header.
        """
        headers = {"Authorization": f"Bearer {self.api_key}", "Accept": "text/markdown"}
        if self.project_id:
            headers["X-Project-ID"] = self.project_id

        try:
            response = self._http.get(
                f"{self.base_url}/api/v1/parsing/job/{job_id}/result/markdown",
                headers=headers,
                follow_redirects=False,
            )
            if response.status_code in REDIRECT_STATUSES and response.headers.get("location"):
                response = self._http.get(
                    response.headers["location"],
                    headers={"Accept": "text/markdown"},
                    follow_redirects=True,
                )
        except httpx.HTTPError as e:
            raise DocumentParseError(f"Fetching result of job {job_id} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            content_type = response.headers.get("content-type", "")
            raise DocumentParseError(
                f"Result fetch failed: {response.status_code} {content_type} {response.text[:500]}"
            )
        return response.text

    def parse(self, content: bytes, filename: str) -> str:
        """Upload, wait and fetch in one call."""
        job_id = self.upload(content, filename)
        self.wait_for_job(job_id)
        return self.fetch_result(job_id)

    def close(self) -> None:
        self._http.close()
