import asyncio
import hashlib
from typing import Callable, Optional

# attempt (bắt đầu từ 1) -> số giây chờ trước lần check status đó
Backoff = Callable[[int], float]


def fixed_backoff(interval: float = 1.0) -> Backoff:
    def _delay(attempt: int) -> float:
        return interval

    return _delay


def exponential_backoff(
    base: float = 1.0,
    factor: float = 2.0,
    max_delay: Optional[float] = None,
) -> Backoff:
    """
    base, base*factor, base*factor^2, ... (chặn trên bởi max_delay nếu có).
    """

    def _delay(attempt: int) -> float:
        delay = base * (factor ** max(attempt - 1, 0))
        if max_delay is not None:
            delay = min(delay, max_delay)
        return delay

    return _delay


class CancellationToken:
    """
    Cờ hủy cooperative: client kiểm tra ở đầu mỗi vòng poll.
    Request đang chạy và sleep hiện tại không bị ngắt.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def wait(self) -> None:
        """Chờ tới khi cancel() được gọi."""
        if self._event is None:
            self._event = asyncio.Event()
        if self._cancelled:
            self._event.set()
        await self._event.wait()


def request_fingerprint(full_prompt: str, credential: str, base_url: str = "") -> str:
    # chỉ hash của credential đi vào digest, không lưu credential
    digest = hashlib.sha256()
    digest.update(base_url.encode("utf-8"))
    digest.update(b"\0")
    digest.update(hashlib.sha256(credential.encode("utf-8")).digest())
    digest.update(full_prompt.encode("utf-8"))
    return digest.hexdigest()


def mask_credential(credential: str) -> str:
    if len(credential) <= 4:
        return "****"
    return f"{credential[:2]}...{credential[-2:]}"
