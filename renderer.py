"""Sandboxed preview of the current artifact.

The artifact runs with scripts enabled (the Tailwind CDN runtime needs them)
but in an opaque origin: no access to the studio's cookies, storage or DOM,
and no top-level navigation. The restriction is applied twice, on the frame
element and on the served document, so opening /preview directly is sandboxed
as well.
"""

from dataclasses import dataclass

SANDBOX_POLICY = "allow-scripts"

PREVIEW_PATH = "/preview"

EMPTY_DOCUMENT = """<!DOCTYPE html>
<html lang="en"><head><meta charset="UTF-8"><title>Preview</title></head>
<body style="font-family:sans-serif;color:#71717a;display:flex;align-items:center;justify-content:center;height:100vh;margin:0">
<p>Upload a design to see the preview.</p>
</body></html>
"""


@dataclass(frozen=True)
class SandboxView:
    version: int
    document: str

    @property
    def url(self):
        return f"{PREVIEW_PATH}?v={self.version}"

    @property
    def headers(self):
        return {
            "Content-Security-Policy": f"sandbox {SANDBOX_POLICY}",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "no-referrer",
            "Cache-Control": "no-store",
        }


def render(artifact, version=0):
    """Project an artifact into a complete document for a fresh sandboxed frame."""
    return SandboxView(version=version, document=artifact if artifact else EMPTY_DOCUMENT)
