"""
Prediction client: submit một job generate ảnh rồi poll tới khi service
trả về trạng thái cuối (succeeded / failed).

Mặc định giữ đúng hành vi UI vẫn dùng: nghỉ cố định 1 giây giữa các lần
check status, không giới hạn số lần / thời gian, mọi status khác
succeeded/failed đều là "poll tiếp". Không đọc biến môi trường nào;
muốn giới hạn thì truyền tham số khi tạo client.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import quote

import httpx

from .errors import (
    JobFailedError,
    PollingError,
    PollTimeoutError,
    PredictionCancelledError,
    PredictionError,
    SubmissionError,
    UnknownError,
    ValidationError,
)
from .inflight import InFlightRegistry
from .model import KNOWN_STATUSES, STATUS_FAILED, JobRecord, PredictionRequest
from .prompt_builder import build_full_prompt
from .utils import Backoff, CancellationToken, fixed_backoff, request_fingerprint

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8000"
POLL_INTERVAL = 1.0  # giây, cố định
DEFAULT_TIMEOUT = 60.0

MISSING_CREDENTIAL_MESSAGE = "Please enter the API key"
SUBMISSION_FAILED_MESSAGE = "Failed to generate image"
POLLING_FAILED_MESSAGE = "Failed to check prediction status"
JOB_FAILED_MESSAGE = "Image generation failed"
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"

Sleep = Callable[[float], Awaitable[Any]]


def extract_error_message(response: httpx.Response, default: str) -> str:
    """
    Lấy field "error" trong body nếu có, không thì dùng message mặc định.
    """
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


class PredictionClient:
    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        *,
        backoff: Optional[Backoff] = None,
        max_wait: Optional[float] = None,
        max_attempts: Optional[int] = None,
        unknown_status_limit: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
        registry: Optional[InFlightRegistry] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.backoff = backoff or fixed_backoff(POLL_INTERVAL)
        self.max_wait = max_wait
        self.max_attempts = max_attempts
        self.unknown_status_limit = unknown_status_limit
        self.timeout = timeout if timeout is not None else DEFAULT_TIMEOUT
        self.transport = transport
        self._sleep = sleep or asyncio.sleep
        self.registry = registry

    @property
    def submission_url(self) -> str:
        return f"{self.base_url}/api/predictions"

    def status_url(self, job_id: str) -> str:
        return f"{self.submission_url}/{quote(job_id, safe='')}"

    def _headers(self) -> Dict[str, str]:
        # httpx tự set Content-Type khi gửi body json
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        # mỗi request một connection, không dùng lại giữa các lần poll
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.request(method, url, headers=self._headers(), **kwargs)

    async def generate(
        self,
        user_prompt: str,
        style: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> JobRecord:
        """
        Submit (prompt, style) và poll tới khi job succeeded / failed.

        Trả về JobRecord đã succeeded; caller lấy `record.result`
        (phần tử CUỐI của output). Mọi lỗi đều là PredictionError.
        """
        if not self.api_key:
            raise ValidationError(MISSING_CREDENTIAL_MESSAGE)

        full_prompt = build_full_prompt(user_prompt, style)

        if self.registry is None:
            return await self._run(full_prompt, cancel_token)

        # job chung không mang token của caller nào; mỗi caller tự theo dõi token của mình
        self._check_cancelled(cancel_token)
        key = request_fingerprint(full_prompt, self.api_key, self.base_url)
        task = self.registry.join(key, lambda: self._run(full_prompt, None))
        try:
            return await self._wait_shared(task, cancel_token)
        finally:
            self.registry.leave(key, task)

    async def _wait_shared(
        self,
        task: "asyncio.Task[JobRecord]",
        cancel_token: Optional[CancellationToken],
    ) -> JobRecord:
        if cancel_token is None:
            return await asyncio.shield(task)

        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        self._check_cancelled(cancel_token)
        return task.result()

    async def _run(self, full_prompt: str, cancel_token: Optional[CancellationToken]) -> JobRecord:
        try:
            return await self._drive(full_prompt, cancel_token)
        except PredictionError as e:
            logger.warning("Prediction aborted: %s", e.message)
            raise
        except Exception as e:
            logger.exception("Unexpected error while generating image")
            raise UnknownError(UNKNOWN_ERROR_MESSAGE) from e

    async def _drive(self, full_prompt: str, cancel_token: Optional[CancellationToken]) -> JobRecord:
        self._check_cancelled(cancel_token)
        prediction = await self.submit(full_prompt)
        # id nhận lúc submit là id của job suốt vòng đời
        job_id = prediction.id
        logger.info("Submitted job %s, status=%s", job_id, prediction.status)

        if not job_id and not prediction.is_terminal:
            logger.error("Submission response has no job id")
            raise UnknownError(UNKNOWN_ERROR_MESSAGE)

        attempts = 0
        waited = 0.0
        unknown_streak = 0

        while not prediction.is_terminal:
            self._check_cancelled(cancel_token)

            attempts += 1
            if self.max_attempts is not None and attempts > self.max_attempts:
                raise PollTimeoutError(
                    f"Job {job_id} did not finish after {self.max_attempts} status checks"
                )

            delay = self.backoff(attempts)
            if self.max_wait is not None and waited + delay > self.max_wait:
                raise PollTimeoutError(
                    f"Job {job_id} did not finish within {self.max_wait:g} seconds"
                )

            await self._sleep(delay)
            waited += delay
            self._check_cancelled(cancel_token)

            previous_status = prediction.status
            prediction = await self.fetch_status(job_id)
            if prediction.status != previous_status:
                logger.info("Job %s: %s -> %s", job_id, previous_status, prediction.status)

            if prediction.status in KNOWN_STATUSES:
                unknown_streak = 0
                continue

            unknown_streak += 1
            logger.warning("Job %s reported unrecognized status %r", job_id, prediction.status)
            if self.unknown_status_limit is not None and unknown_streak >= self.unknown_status_limit:
                raise PollingError(
                    f"Job {job_id} reported unrecognized status {prediction.status!r} "
                    f"{unknown_streak} times in a row"
                )

        if prediction.status == STATUS_FAILED:
            raise JobFailedError(JOB_FAILED_MESSAGE)

        logger.info("Job %s succeeded with %d output(s)", job_id, len(prediction.output or []))
        return prediction

    async def submit(self, full_prompt: str) -> JobRecord:
        body = PredictionRequest(prompt=full_prompt, api_key=self.api_key)
        r = await self._request(
            "POST",
            self.submission_url,
            json=body.model_dump(by_alias=True),
        )
        if not r.is_success:
            logger.error("Submission endpoint returned %s", r.status_code)
            raise SubmissionError(
                extract_error_message(r, SUBMISSION_FAILED_MESSAGE),
                status_code=r.status_code,
            )
        return JobRecord.model_validate(r.json())

    async def fetch_status(self, job_id: str) -> JobRecord:
        r = await self._request("GET", self.status_url(job_id))
        if not r.is_success:
            logger.error("Status endpoint returned %s for job %s", r.status_code, job_id)
            raise PollingError(
                extract_error_message(r, POLLING_FAILED_MESSAGE),
                status_code=r.status_code,
            )
        return JobRecord.model_validate(r.json())

    @staticmethod
    def _check_cancelled(cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is not None and cancel_token.cancelled:
            raise PredictionCancelledError("Image generation was cancelled")


async def generate_image(user_prompt: str, style: str, api_key: str, **options: Any) -> JobRecord:
    """Một lần gọi = một job. `options` được chuyển thẳng vào PredictionClient."""
    cancel_token = options.pop("cancel_token", None)
    client = PredictionClient(api_key, **options)
    return await client.generate(user_prompt, style, cancel_token=cancel_token)
