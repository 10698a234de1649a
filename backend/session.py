# backend/session.py

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import PredictionError
from .prediction_client import (
    MISSING_CREDENTIAL_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
    PredictionClient,
)
from .model import JobRecord
from .utils import mask_credential

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "design of cartoon fox character"
DEFAULT_STYLE = "print on demand style"


@dataclass
class GenerationSession:
    """
    State của form trên UI: input gần nhất, cờ loading,
    lỗi gần nhất (tối đa 1) và ảnh kết quả gần nhất.
    """

    prompt: str = DEFAULT_PROMPT
    style: str = DEFAULT_STYLE
    api_key: str = ""
    loading: bool = False
    error: Optional[str] = None
    image: Optional[str] = None
    client_options: Dict[str, Any] = field(default_factory=dict)

    async def submit(self) -> Optional[JobRecord]:
        if not self.api_key:
            self.error = MISSING_CREDENTIAL_MESSAGE
            return None

        self.loading = True
        self.error = None
        self.image = None

        try:
            logger.info("Generating image with key %s", mask_credential(self.api_key))
            client = PredictionClient(self.api_key, **self.client_options)
            prediction = await client.generate(self.prompt, self.style)
            self.image = prediction.result
            return prediction
        except PredictionError as e:
            logger.error("Error generating image: %s", e.message)
            self.error = e.message
        except Exception:
            logger.exception("Error generating image")
            self.error = UNKNOWN_ERROR_MESSAGE
        finally:
            self.loading = False
        return None
