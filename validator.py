"""Classification of uploaded files before anything is sent to the backend."""

from dataclasses import dataclass

ACCEPTED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".fig")
DESIGN_FILE_EXTENSIONS = (".fig",)

REJECT_REASON = "Please upload an image file (PNG, JPG, WebP)."


@dataclass(frozen=True)
class UploadCandidate:
    data: bytes
    media_type: str
    filename: str


@dataclass(frozen=True)
class Accepted:
    candidate: UploadCandidate


@dataclass(frozen=True)
class UnsupportedDesignFile:
    filename: str


@dataclass(frozen=True)
class Rejected:
    reason: str


def classify(candidate):
    """Return Accepted, UnsupportedDesignFile or Rejected for an upload.

    Design-tool project files are checked first: they never reach the
    synthesizer, whatever media type the browser declared for them.
    """
    name = (candidate.filename or "").lower()
    if name.endswith(DESIGN_FILE_EXTENSIONS):
        return UnsupportedDesignFile(candidate.filename)

    if (candidate.media_type or "").lower().startswith("image/"):
        return Accepted(candidate)

    return Rejected(REJECT_REASON)
