from typing import Literal, Optional

MimeClass = Literal["image", "video"]

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm", ".mkv")


def detect_media_type(
    content_type: Optional[str],
    filename: Optional[str] = None,
) -> Optional[MimeClass]:
    """
    Coarse MIME class of a file: "image", "video" or None for anything else.
    The declared content type wins; the extension is only a fallback.
    """
    ct = (content_type or "").lower()
    if ct.startswith("image/"):
        return "image"
    if ct.startswith("video/"):
        return "video"

    name = (filename or "").lower()
    if name.endswith(IMAGE_EXTENSIONS):
        return "image"
    if name.endswith(VIDEO_EXTENSIONS):
        return "video"

    return None
