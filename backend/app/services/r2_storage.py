"""Cloudflare R2 storage service for course PDFs."""

import asyncio
import logging
from functools import lru_cache
from io import BytesIO

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError, EndpointConnectionError

from app.core.config import settings

logger = logging.getLogger(__name__)

# Presigned links are handed to customers by email
PDF_URL_EXPIRY_SECONDS = 7 * 24 * 3600


class R2StorageError(Exception):
    """Raised when R2 storage operation fails."""

    pass


class R2StorageService:
    """Service for uploading files to Cloudflare R2 storage."""

    def __init__(self):
        """Initialize R2 storage service with boto3 client."""
        self._client = None

    @property
    def is_configured(self) -> bool:
        return bool(
            settings.R2_ENDPOINT_URL
            and settings.R2_ACCESS_KEY_ID
            and settings.R2_SECRET_ACCESS_KEY
            and settings.R2_BUCKET_COURSES
        )

    @property
    def client(self):
        """Get or create boto3 S3 client for R2."""
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.R2_ENDPOINT_URL,
                aws_access_key_id=settings.R2_ACCESS_KEY_ID,
                aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
                config=Config(signature_version="s3v4"),
                region_name="auto",  # R2 uses 'auto' region
            )
        return self._client

    @staticmethod
    def course_pdf_path(user_id: int, course_id: int, generation: int) -> str:
        """Path format: courses/{user_id}/{course_id}/v{generation}.pdf"""
        return f"courses/{user_id}/{course_id}/v{generation}.pdf"

    async def upload_pdf(
        self,
        pdf_bytes: bytes,
        user_id: int,
        course_id: int,
        generation: int,
        max_retries: int = 3,
    ) -> tuple[str, str]:
        """
        Upload a course PDF with retry logic.

        Args:
            pdf_bytes: Rendered PDF
            user_id: Course owner
            course_id: Course ID
            generation: Course generation the PDF was rendered from
            max_retries: Maximum number of retry attempts

        Returns:
            Tuple of (r2_path, url). The URL is public when R2_PUBLIC_URL is
            set, otherwise a presigned link valid for seven days.

        Raises:
            R2StorageError: If upload fails after all retries
        """
        bucket_name = settings.R2_BUCKET_COURSES
        r2_path = self.course_pdf_path(user_id, course_id, generation)

        last_error = None
        for attempt in range(max_retries):
            try:
                # Fresh BytesIO for each attempt
                file_obj = BytesIO(pdf_bytes)

                await asyncio.get_running_loop().run_in_executor(
                    None,
                    lambda: self.client.upload_fileobj(
                        file_obj,
                        bucket_name,
                        r2_path,
                        ExtraArgs={"ContentType": "application/pdf"},
                    ),
                )
                break

            except (ClientError, EndpointConnectionError) as e:
                last_error = e
                if attempt < max_retries - 1:
                    # Exponential backoff: 1s, 2s, 4s
                    await asyncio.sleep(2**attempt)
                    continue
                raise R2StorageError(
                    f"Failed to upload PDF to R2 after {max_retries} attempts: {last_error}"
                )

        if settings.R2_PUBLIC_URL:
            url = f"{settings.R2_PUBLIC_URL.rstrip('/')}/{r2_path}"
        else:
            url = await self.generate_presigned_url(bucket_name, r2_path, PDF_URL_EXPIRY_SECONDS)

        logger.info(f"Uploaded {len(pdf_bytes)} bytes to {bucket_name}/{r2_path}")
        return r2_path, url

    async def generate_presigned_url(
        self, bucket_name: str, r2_path: str, expiry_seconds: int = 3600
    ) -> str:
        """
        Generate pre-signed URL for temporary file access.

        Raises:
            R2StorageError: If URL generation fails
        """
        try:
            return await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.client.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": bucket_name, "Key": r2_path},
                    ExpiresIn=expiry_seconds,
                ),
            )
        except ClientError as e:
            raise R2StorageError(f"Failed to generate pre-signed URL: {str(e)}")


@lru_cache
def get_r2_service() -> R2StorageService:
    """
    Get R2 storage service instance (cached).

    Returns:
        R2StorageService instance
    """
    return R2StorageService()
