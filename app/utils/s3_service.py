import os
import logging
import boto3

logger = logging.getLogger(__name__)

BUCKET = os.getenv("R2_BUCKET")
FOLDER = "uploads"
URL = f"https://{os.getenv('CLOUDFLARE_ACCOUNT_ID')}.r2.cloudflarestorage.com"

_s3 = None


def get_s3_client():
    global _s3

    if _s3 is None:
        _s3 = boto3.client(
            service_name="s3",
            endpoint_url=URL,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            region_name="auto",
        )

    return _s3


def generate_signed_url(key: str, expires_in=3600):
    try:
        return get_s3_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": BUCKET, "Key": key},
                ExpiresIn=expires_in
            )
    except Exception:
        logger.warning("Error generating signed URL for %s", key, exc_info=True)
        return None


def resolve_attachment_url(url: str) -> str:
    """
    Attachments uploaded to the bucket are stored by key ("uploads/...") and
    handed out as presigned URLs. Anything else is returned untouched.
    """
    if not BUCKET or not url.startswith(f"{FOLDER}/"):
        return url

    return generate_signed_url(url) or url
