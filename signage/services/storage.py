import hashlib
import os
import time

from fastapi import UploadFile

STORAGE_DIR = os.getenv("SIGNAGE_STORAGE_DIR", "storage")
MEDIA_SUBDIR = "media"
MAX_IMAGE_BYTES = int(os.getenv("SIGNAGE_MAX_IMAGE_BYTES", str(15 * 1024 * 1024)))
MAX_VIDEO_BYTES = int(os.getenv("SIGNAGE_MAX_VIDEO_BYTES", str(250 * 1024 * 1024)))
ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".webm", ".mkv", ".mov"}


def media_dir() -> str:
    return os.path.join(STORAGE_DIR, MEDIA_SUBDIR)


def ensure_storage() -> None:
    os.makedirs(media_dir(), exist_ok=True)


def normalized_media_type(raw: str | None) -> str:
    media_type = (raw or "").strip().lower()
    if media_type not in {"image", "video"}:
        raise ValueError("Unsupported media type. Use image or video.")
    return media_type


def _validate_extension(media_type: str, filename: str) -> str:
    _, ext = os.path.splitext(filename.lower())
    if media_type == "image" and ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValueError("Unsupported image format. Use JPG/JPEG/PNG/WEBP.")
    if media_type == "video" and ext not in ALLOWED_VIDEO_EXTENSIONS:
        raise ValueError("Unsupported video format. Use MP4/WEBM/MKV/MOV.")
    return ext


def save_file(file: UploadFile, declared_type: str) -> tuple[str, int, str]:
    """Store an upload and return (public URL path, size in bytes, sha256)."""
    media_type = normalized_media_type(declared_type)
    content = file.file.read()
    if not content:
        raise ValueError("Empty files cannot be uploaded.")
    filename = os.path.basename((file.filename or "upload.bin").strip()) or "upload.bin"
    ext = _validate_extension(media_type, filename)
    size = len(content)
    if media_type == "image" and size > MAX_IMAGE_BYTES:
        raise ValueError(f"Image exceeds the {MAX_IMAGE_BYTES // (1024 * 1024)} MB limit.")
    if media_type == "video" and size > MAX_VIDEO_BYTES:
        raise ValueError(f"Video exceeds the {MAX_VIDEO_BYTES // (1024 * 1024)} MB limit.")
    checksum = hashlib.sha256(content).hexdigest()

    ensure_storage()
    safe_name, _ = os.path.splitext(filename)
    safe_name = "".join(ch for ch in safe_name if ch.isalnum() or ch in {"-", "_", " "}).strip() or "media"
    stamped_filename = f"{safe_name}-{int(time.time() * 1000)}{ext}"
    with open(os.path.join(media_dir(), stamped_filename), "wb") as f:
        f.write(content)
    return f"/storage/{MEDIA_SUBDIR}/{stamped_filename}", size, checksum


def delete_file(url_path: str) -> None:
    prefix = "/storage/"
    if not url_path.startswith(prefix):
        return
    path = os.path.join(STORAGE_DIR, *url_path[len(prefix):].split("/"))
    if os.path.isfile(path):
        os.remove(path)
