import os
import uuid
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class S3Config:
    endpoint_url: str
    access_key_id: str
    secret_access_key: str
    bucket: str
    region: str
    use_ssl: bool
    public_base_url: str


def get_s3_config() -> Optional[S3Config]:
    endpoint = (os.environ.get("S3_ENDPOINT_URL") or "").strip()
    access = (os.environ.get("S3_ACCESS_KEY_ID") or "").strip()
    secret = (os.environ.get("S3_SECRET_ACCESS_KEY") or "").strip()
    bucket = (os.environ.get("S3_BUCKET") or "").strip()
    region = (os.environ.get("S3_REGION") or "us-east-1").strip() or "us-east-1"
    use_ssl_raw = (os.environ.get("S3_USE_SSL") or "").strip().lower()
    use_ssl = use_ssl_raw not in {"0", "false", "no"}
    public_base = (os.environ.get("S3_PUBLIC_BASE_URL") or "").strip().rstrip("/")

    if not endpoint or not access or not secret or not bucket:
        return None
    return S3Config(
        endpoint_url=endpoint,
        access_key_id=access,
        secret_access_key=secret,
        bucket=bucket,
        region=region,
        use_ssl=use_ssl,
        public_base_url=public_base or f"{endpoint.rstrip('/')}/{bucket}",
    )


def s3_enabled() -> bool:
    return get_s3_config() is not None


def _client(cfg: S3Config):
    # Lazy import keeps boto3 off the import path of every router.
    import boto3
    from botocore.config import Config

    # Force v4 signatures so MinIO works consistently.
    bc = Config(signature_version="s3v4", s3={"addressing_style": "path"})
    return boto3.client(
        "s3",
        endpoint_url=cfg.endpoint_url,
        aws_access_key_id=cfg.access_key_id,
        aws_secret_access_key=cfg.secret_access_key,
        region_name=cfg.region,
        use_ssl=cfg.use_ssl,
        config=bc,
    )


_IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def product_image_key(content_type: str) -> str:
    ext = _IMAGE_EXTENSIONS.get((content_type or "").strip().lower(), "")
    return f"products/{uuid.uuid4().hex}{ext}"


def public_url(cfg: S3Config, key: str) -> str:
    return f"{cfg.public_base_url}/{key}"


def upload_product_image(*, data: bytes, content_type: str) -> str:
    """
    Push a product image to the media bucket and return its public URL
    (the value stored in `products.image`).
    """
    cfg = get_s3_config()
    if not cfg:
        raise RuntimeError("S3 not configured")
    key = product_image_key(content_type)
    c = _client(cfg)
    c.put_object(
        Bucket=cfg.bucket,
        Key=key,
        Body=data or b"",
        ContentType=content_type or "application/octet-stream",
    )
    return public_url(cfg, key)
