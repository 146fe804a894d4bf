from __future__ import annotations

import logging
import math
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_retry_service, require_admin_key
from app.api.models import RetryJobsRequest, RetryJobsResponse
from app.services.job_retry import JobRetryService, RetryRateLimitedError, RetryRequest

router = APIRouter(dependencies=[Depends(require_admin_key)])
logger = logging.getLogger(__name__)


@router.post("/retry-jobs", response_model=RetryJobsResponse)
async def retry_jobs(payload: RetryJobsRequest, service: Annotated[JobRetryService, Depends(get_retry_service)]) -> RetryJobsResponse:
  """Reset matching failed jobs to pending and delete the ones that can never succeed."""
  request = RetryRequest(job_id=payload.job_id, user_id=payload.user_id, chapter_id=payload.chapter_id)
  try:
    result = await service.retry_jobs(request)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
  except RetryRateLimitedError as exc:
    raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc), headers={"Retry-After": str(math.ceil(exc.reset_in_seconds))}) from exc

  logger.info("Retry request job_id=%s user_id=%s chapter_id=%s retried=%d skipped=%d deleted=%d", payload.job_id, payload.user_id, payload.chapter_id, len(result.retried_jobs), len(result.skipped_jobs), len(result.deleted_jobs))
  return RetryJobsResponse(success=result.success, retried_jobs=result.retried_jobs, skipped_jobs=result.skipped_jobs, deleted_jobs=result.deleted_jobs, errors=result.errors)
