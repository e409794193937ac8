import io
import logging
import mimetypes

from PIL import Image, UnidentifiedImageError

from errors import ValidationRejected
from validator import UploadCandidate

logger = logging.getLogger(__name__)

UNREADABLE_REASON = "The file could not be read as an image."

REENCODE_FORMATS = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
}

WRITABLE_MODES = {
    "PNG": ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"),
    "JPEG": ("L", "RGB"),
    "WEBP": ("RGB", "RGBA"),
}


def candidate_from_storage(storage):
    """Normalize a werkzeug FileStorage (file picker or drop zone) to an UploadCandidate."""
    filename = storage.filename or ""
    media_type = storage.mimetype or ""
    if not media_type or media_type == "application/octet-stream":
        media_type = mimetypes.guess_type(filename)[0] or media_type
    return UploadCandidate(data=storage.read(), media_type=media_type, filename=filename)


def prepare_image(candidate, max_edge):
    """Decode an accepted upload and shrink it if its long edge exceeds max_edge.

    Returns (bytes, media_type) ready for the synthesizer. The media type is
    the one Pillow detected, not the one the browser declared.
    """
    try:
        img = Image.open(io.BytesIO(candidate.data))
        img.load()
        media_type = Image.MIME.get(img.format, candidate.media_type)

        w, h = img.size
        if max(w, h) <= max_edge:
            return candidate.data, media_type

        scale = max_edge / max(w, h)
        size = (max(1, round(w * scale)), max(1, round(h * scale)))
        fmt = img.format if img.format in REENCODE_FORMATS else "PNG"
        resized = img.resize(size, Image.LANCZOS)
        if resized.mode not in WRITABLE_MODES[fmt]:
            resized = resized.convert("RGBA" if "A" in resized.mode and fmt != "JPEG" else "RGB")

        buf = io.BytesIO()
        resized.save(buf, format=fmt)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning("Rejected unreadable upload %r: %s", candidate.filename, e)
        raise ValidationRejected(UNREADABLE_REASON) from e

    logger.info("Downscaled %r from %sx%s to %sx%s", candidate.filename, w, h, *size)
    return buf.getvalue(), REENCODE_FORMATS[fmt]
