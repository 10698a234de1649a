# backend/model.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Any

STATUS_STARTING = "starting"
STATUS_PROCESSING = "processing"
STATUS_SUCCEEDED = "succeeded"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = frozenset({STATUS_SUCCEEDED, STATUS_FAILED})
KNOWN_STATUSES = frozenset({STATUS_STARTING, STATUS_PROCESSING}) | TERMINAL_STATUSES


class PredictionRequest(BaseModel):
    """Body của POST /api/predictions."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: str
    api_key: Optional[str] = Field(default=None, alias="apiKey")


class JobRecord(BaseModel):
    """
    Job generate ảnh như service báo tại một thời điểm.
    Tên status do service quy định; chỉ succeeded/failed là trạng thái cuối.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: Optional[str] = None
    status: str
    output: Optional[List[str]] = None
    error: Optional[Any] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def result(self) -> Optional[str]:
        # output mới nhất thay thế các bản trước đó
        if not self.output:
            return None
        return self.output[-1]


class ErrorBody(BaseModel):
    error: str
