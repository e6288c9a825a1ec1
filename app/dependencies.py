"""
FastAPI dependencies for objects opened at application startup.
"""
from fastapi import Request

from app.services.job_repository import JobRepository
from app.services.upload_service import UploadService


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


def get_repository(request: Request) -> JobRepository:
    return request.app.state.repository
