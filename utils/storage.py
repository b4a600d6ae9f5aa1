import logging

import boto3
from botocore.config import Config as BotoConfig
from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "s3"


def storage_configured() -> bool:
    return bool(current_app.config.get("S3_BUCKET"))


def get_s3_client():
    """Returns the app's S3 client, built on first use; None when no bucket is configured."""
    if not storage_configured():
        return None

    client = current_app.extensions.get(EXTENSION_KEY)
    if client is None:
        cfg = current_app.config
        kwargs = {"region_name": cfg.get("AWS_REGION")}
        # without explicit keys boto3 falls back to its own credential chain
        if cfg.get("AWS_ACCESS_KEY_ID") and cfg.get("AWS_SECRET_ACCESS_KEY"):
            kwargs["aws_access_key_id"] = cfg["AWS_ACCESS_KEY_ID"]
            kwargs["aws_secret_access_key"] = cfg["AWS_SECRET_ACCESS_KEY"]
        client = boto3.client("s3", config=BotoConfig(signature_version="s3v4"), **kwargs)
        current_app.extensions[EXTENSION_KEY] = client
        logger.info("S3 client initialized for bucket %s", cfg["S3_BUCKET"])
    return client


def public_url(key: str) -> str:
    bucket = current_app.config["S3_BUCKET"]
    region = current_app.config.get("AWS_REGION")
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"
