import logging
import os
import re
import uuid
from urllib.parse import unquote

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, UploadFile

logger = logging.getLogger("campusvibe.storage")

ALLOWED_CONTENT_TYPES = ["image/png", "image/jpeg", "image/jpg"]
ALLOWED_EXTENSIONS = ["png", "jpg", "jpeg"]
UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]+")


def _safe_name(filename: str) -> str:
    stem, dot, ext = unquote(filename or "").lower().rpartition(".")
    if not dot:
        stem, ext = ext, ""
    stem = UNSAFE_CHARS.sub("_", stem.replace(" ", "")).strip("_")[:50] or "proof"
    ext = re.sub(r"[^a-z0-9]", "", ext)
    return f"{stem}.{ext}" if ext else stem


def validate_image(file: UploadFile) -> None:
    content_type = (file.content_type or "").lower()
    if content_type not in ALLOWED_CONTENT_TYPES:
        logger.error(f"Invalid file type uploaded: {file.content_type}")
        raise HTTPException(status_code=400, detail="Only PNG and JPEG images are allowed.")

    file_extension = file.filename.split('.')[-1].lower() if file.filename and '.' in file.filename else ''
    if file_extension not in ALLOWED_EXTENSIONS:
        logger.error(f"Invalid file extension: {file_extension}")
        raise HTTPException(status_code=400, detail="Only PNG and JPEG images are allowed.")


def proof_object_key(ticket_uuid: str, filename: str) -> str:
    """payment-proofs/<ticket>/<random>_<name>, the name reduced to lowercase [a-z0-9_-]."""
    return f"payment-proofs/{ticket_uuid}/{uuid.uuid4().hex}_{_safe_name(filename)}"


def get_r2_client():
    access_key = os.getenv("CF_ACCESS_KEY_ID")
    secret_key = os.getenv("CF_SECRET_ACCESS_KEY")
    endpoint_url = os.getenv("CLOUDFLARE_R2_ENDPOINT")
    if not all([access_key, secret_key, endpoint_url]):
        logger.error("Missing R2 credentials or endpoint")
        raise HTTPException(status_code=503, detail="File storage is not configured")
    return boto3.client(
        's3',
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        config=Config(signature_version='s3v4'),
        region_name='auto'
    )


def public_url(object_key: str) -> str:
    base_url = os.getenv("CLOUDFLARE_PUBLIC_URL") or os.getenv("CLOUDFLARE_R2_ENDPOINT", "")
    return f"{base_url.rstrip('/')}/{object_key}"


def upload_to_r2(file: UploadFile, object_key: str, client=None) -> str:
    """Upload an image to the R2 bucket and return its stable URL."""
    validate_image(file)
    bucket_name = os.getenv("CLOUDFLARE_R2_BUCKET")
    if not bucket_name:
        logger.error("CLOUDFLARE_R2_BUCKET environment variable is not set")
        raise HTTPException(status_code=503, detail="File storage is not configured")

    client = client or get_r2_client()
    try:
        logger.info(f"Uploading file to R2: {object_key}")
        client.upload_fileobj(file.file, bucket_name, object_key, ExtraArgs={"ContentType": file.content_type})
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Error uploading file to R2: {str(e)}")
        raise HTTPException(status_code=502, detail="Error uploading file")

    file_url = public_url(object_key)
    logger.info(f"File uploaded successfully: {file_url}")
    return file_url
