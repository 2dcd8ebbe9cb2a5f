import os
import time
from pathlib import Path
import mimetypes

MEDIA_DIR = Path(os.getenv("MEDIA_DIR", "/app/delivery_proofs"))
ALLOWED_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".heic"}


def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def ext_from_mime_or_name(mime: str | None, filename: str | None) -> str:
    if filename:
        suf = Path(filename).suffix.lower()
        if suf in ALLOWED_EXTS:
            return suf
    if mime:
        ext = (mimetypes.guess_extension(mime) or "").lower()
        if ext == ".jpe":
            ext = ".jpg"
        if ext in ALLOWED_EXTS:
            return ext
    return ".jpg"


def is_image(mime: str | None, filename: str | None) -> bool:
    if mime and mime.startswith("image/"):
        return True
    return bool(filename) and Path(filename).suffix.lower() in ALLOWED_EXTS


def proof_local_path(order_id: str, ext: str = ".jpg", media_dir: Path | None = None) -> Path:
    """Where a captured proof photo is kept until it is uploaded."""
    base = (media_dir or MEDIA_DIR) / "orders" / str(order_id)
    ensure_dir(base)
    return base / f"{int(time.time() * 1000)}{ext}"


def proof_storage_path(order_id: str, ext: str = ".jpg") -> str:
    """Object path inside the proofs bucket, same layout the mobile app uses."""
    return f"orders/{order_id}/deliveries/{int(time.time() * 1000)}{ext}"


def content_type_for(path: str | Path) -> str:
    return mimetypes.guess_type(str(path))[0] or "image/jpeg"
