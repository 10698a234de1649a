# backend/app.py

import logging
from typing import Any, AsyncIterator, Optional
from urllib.parse import quote

import httpx
from fastapi import Depends, FastAPI, Header
from fastapi.responses import JSONResponse

from config.settings import configure_logging, settings
from .model import ErrorBody, JobRecord, PredictionRequest

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Print-on-demand Image Service")


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT) as client:
        yield client


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorBody(error=message).model_dump())


def _upstream_error(r: httpx.Response, default: str) -> JSONResponse:
    """
    Upstream (Replicate) trả lỗi dạng {"detail": ...}; client của mình
    chỉ đọc field "error" nên phải map lại.
    """
    message = default
    try:
        body = r.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("detail") or body.get("error") or default
    logger.error("Upstream returned %s: %s", r.status_code, message)
    return _error(r.status_code, str(message))


def _job_response(r: httpx.Response, status_code: int) -> JSONResponse:
    try:
        body = r.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        logger.error("Upstream returned a non-object body")
        return _error(502, "Invalid response from upstream service")

    # một số model trả output là 1 string thay vì list
    if isinstance(body.get("output"), str):
        body["output"] = [body["output"]]

    try:
        record = JobRecord.model_validate(body)
    except ValueError:
        # pydantic.ValidationError cũng là ValueError
        logger.exception("Invalid job record from upstream")
        return _error(502, "Invalid response from upstream service")
    return JSONResponse(status_code=status_code, content=record.model_dump(mode="json"))


async def _forward(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    token: str,
    **kwargs: Any,
) -> Optional[httpx.Response]:
    try:
        return await client.request(
            method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
        )
    except httpx.HTTPError as e:
        logger.error("Upstream request %s %s failed: %s", method, url, e)
        return None


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/predictions", status_code=201, response_model=JobRecord)
async def create_prediction(
    req: PredictionRequest,
    authorization: Optional[str] = Header(default=None),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    token = _bearer_token(authorization) or req.api_key
    if not token:
        return _error(401, "Missing API key")

    base = settings.UPSTREAM_API_URL.rstrip("/")
    url = f"{base}/models/{settings.UPSTREAM_MODEL}/predictions"
    r = await _forward(client, "POST", url, token, json={"input": {"prompt": req.prompt}})
    if r is None:
        return _error(502, "Upstream service unavailable")
    if not r.is_success:
        return _upstream_error(r, "Failed to create prediction")

    response = _job_response(r, 201)
    logger.info("Created prediction (upstream status %s)", r.status_code)
    return response


@app.get("/api/predictions/{prediction_id:path}", response_model=JobRecord)
async def get_prediction(
    prediction_id: str,
    authorization: Optional[str] = Header(default=None),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    token = _bearer_token(authorization)
    if not token:
        return _error(401, "Missing API key")

    base = settings.UPSTREAM_API_URL.rstrip("/")
    url = f"{base}/predictions/{quote(prediction_id, safe='')}"
    r = await _forward(client, "GET", url, token)
    if r is None:
        return _error(502, "Upstream service unavailable")
    if not r.is_success:
        return _upstream_error(r, "Failed to fetch prediction")

    return _job_response(r, 200)
