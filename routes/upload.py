import logging
import re
import time
import uuid

from botocore.exceptions import BotoCoreError, ClientError
from flask import Blueprint, current_app, g, jsonify, request

from models.user import STUDENT, TEACHER
from security.rbac import require_roles
from utils.storage import get_s3_client, public_url

logger = logging.getLogger(__name__)

upload_bp = Blueprint("upload", __name__, url_prefix="/api/upload")

DEFAULT_AUDIO_EXT = "webm"
AUDIO_CONTENT_TYPES = {
    "webm": "audio/webm",
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "wav": "audio/wav",
}
_EXT_RE = re.compile(r"[^a-z0-9]")


def _clean_ext(value) -> str:
    ext = _EXT_RE.sub("", str(value or "").lower())[:10]
    return ext or DEFAULT_AUDIO_EXT


def _audio_key(user_id: int, ext: str) -> str:
    return f"audio/{user_id}/{int(time.time() * 1000)}-{uuid.uuid4().hex}.{ext}"


def content_type_for(ext: str) -> str:
    return AUDIO_CONTENT_TYPES.get(ext, "application/octet-stream")


def _storage_unavailable():
    return jsonify(error="Object storage not configured"), 503


@upload_bp.post("/audio")
@require_roles(STUDENT, TEACHER)
def upload_audio():
    """Stores a recorded voice note and returns its public URL."""
    audio = request.files.get("file")
    if audio is None or not audio.filename:
        return jsonify(error="file required"), 400

    s3 = get_s3_client()
    if s3 is None:
        return _storage_unavailable()

    ext = _clean_ext(audio.filename.rsplit(".", 1)[-1] if "." in audio.filename else None)
    key = _audio_key(g.user.id, ext)
    try:
        s3.put_object(
            Bucket=current_app.config["S3_BUCKET"],
            Key=key,
            Body=audio.read(),
            ContentType=audio.mimetype or content_type_for(ext),
            ACL="public-read",
        )
    except (BotoCoreError, ClientError):
        logger.exception("Audio upload to %s failed", key)
        return jsonify(error="Upload failed"), 502

    logger.info("User %s uploaded audio %s", g.user.id, key)
    return jsonify(url=public_url(key)), 201


@upload_bp.get("/presign/audio")
@require_roles(STUDENT, TEACHER)
def presign_audio():
    """Presigned PUT so the browser can send a recording straight to the bucket."""
    s3 = get_s3_client()
    if s3 is None:
        return _storage_unavailable()

    ext = _clean_ext(request.args.get("ext"))
    key = _audio_key(g.user.id, ext)
    try:
        upload_url = s3.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": current_app.config["S3_BUCKET"],
                "Key": key,
                "ContentType": content_type_for(ext),
            },
            ExpiresIn=current_app.config.get("PRESIGN_EXPIRES_SECONDS", 300),
        )
    except (BotoCoreError, ClientError):
        logger.exception("Presigning %s failed", key)
        return jsonify(error="Presign failed"), 502

    return jsonify(uploadUrl=upload_url, key=key, publicUrl=public_url(key)), 200
