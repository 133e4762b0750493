from __future__ import annotations
import logging
from typing import AsyncIterator

import httpx
from fastapi import APIRouter, Depends, Response

from ..deadline import Deadline
from ..models import GenerationRequest, GenerationResponse
from ..pipeline import generate_worksheet
from ..settings import Settings, get_settings


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["worksheets"])

GEN_VERSION_HEADER = "x-gen-version"


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    # One client per request, released on every exit path
    client = httpx.AsyncClient()
    try:
        yield client
    finally:
        await client.aclose()


@router.post("/generate", response_model=GenerationResponse)
async def generate(
    req: GenerationRequest,
    response: Response,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    deadline = Deadline.after_ms(settings.budget_ms)
    result = await generate_worksheet(req, settings=settings, http_client=client, deadline=deadline)
    response.headers[GEN_VERSION_HEADER] = result.path.value
    logger.info("Worksheet generated via %s (%d ms left)", result.path.value, deadline.remaining_ms())
    return result.response
