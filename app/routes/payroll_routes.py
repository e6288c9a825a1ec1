"""
Bulk payroll routes: upload, job listing, job detail, cancel and export.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response

from app.dependencies import get_upload_service
from app.errors import ValidationError
from app.middleware.auth import Identity, get_current_identity
from app.services.upload_service import UploadService

router = APIRouter(prefix="/bulk-payroll", tags=["bulk-payroll"])
logger = logging.getLogger("app.payroll_routes")


@router.post("/upload", status_code=202)
async def upload_payroll(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    service: UploadService = Depends(get_upload_service),
) -> JSONResponse:
    """
    Upload a CSV file (multipart ``file``) or JSON ``{"rows": [...]}`` and queue a payroll job.

    Returns:
        Upload result with job id, row counts and the first rejected rows
    """
    content_type = request.headers.get("content-type", "")
    logger.info(f"Bulk payroll upload requested by {identity.user_id} ({content_type.split(';')[0]})")

    if "multipart/form-data" in content_type:
        form = await request.form()
        file = form.get("file")
        if file is None or isinstance(file, str):
            raise ValidationError("No file provided", details={"field": "file"})

        content = await file.read()
        max_size = service.config.max_file_size_bytes
        if len(content) > max_size:
            raise ValidationError(f"File size exceeds limit of {max_size // (1024 * 1024)}MB")

        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("File must be UTF-8 encoded CSV")

        result = service.upload_csv(text, identity.user_id)

    elif "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")
        if not isinstance(body, dict):
            raise ValidationError("Invalid request body: expected an object with rows")
        result = service.upload_rows(body.get("rows"), identity.user_id)

    else:
        raise ValidationError("Unsupported content type. Use multipart/form-data or application/json")

    return JSONResponse(status_code=202, content=result)


@router.get("/jobs")
async def list_jobs(
    page: int = Query(1),
    limit: int = Query(20),
    identity: Identity = Depends(get_current_identity),
    service: UploadService = Depends(get_upload_service),
) -> Dict[str, Any]:
    """
    List the caller's payroll jobs, newest first.
    """
    return service.list_jobs(identity.user_id, page=page, limit=limit)


@router.get("/jobs/{job_id}")
async def get_job_details(
    job_id: str,
    identity: Identity = Depends(get_current_identity),
    service: UploadService = Depends(get_upload_service),
) -> Dict[str, Any]:
    """
    Get a job with its rows ordered by row index.
    """
    return service.get_job_detail(job_id, identity.user_id)


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(
    job_id: str,
    identity: Identity = Depends(get_current_identity),
    service: UploadService = Depends(get_upload_service),
) -> Dict[str, Any]:
    """
    Cancel a queued or processing job.
    """
    logger.info(f"Cancel requested for job {job_id} by {identity.user_id}")
    return service.cancel_job(job_id, identity.user_id)


@router.get("/jobs/{job_id}/rows.csv")
async def export_rows(
    job_id: str,
    status: Optional[str] = Query(None),
    identity: Identity = Depends(get_current_identity),
    service: UploadService = Depends(get_upload_service),
) -> Response:
    """
    Download the input of the job's rows as CSV, optionally filtered by row status.
    """
    csv_text = service.export_rows_csv(job_id, identity.user_id, status=status)
    filename = f"payroll-{job_id}-{(status or 'all').lower()}.csv"
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
