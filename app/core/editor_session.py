"""
Author-side editing session for one post.

`EditorSession` holds the form state (text fields, roles, channels, focus
point, thumbnail) around a `MediaTokenRegistry`. `PostEditor` owns at most
one session at a time and drives submission.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Literal, Optional

from app.core import preferences as prefs_keys
from app.core.media_tokens import (
    LocalFile,
    MediaTokenRegistry,
    NullPreviews,
    PreviewProvider,
    RemoteMedia,
    RemoteToken,
    Token,
)
from app.core.media_types import detect_media_type
from app.core.preferences import InMemoryPreferences, PreferencesStore
from app.schemas.post_schema import FocusPoint, PostOut, PostSubmission, dedupe_ids

logger = logging.getLogger(__name__)

EditorMode = Literal["create", "edit"]


class SubmissionRejected(Exception):
    """Raised by a submit handler when the backend refused the update."""


# ==========================================================
# THUMBNAIL
# ==========================================================
class ThumbnailSelection:
    """Cover thumbnail, kept apart from the ordered media set."""

    def __init__(self, has_existing: bool = False, previews: Optional[PreviewProvider] = None):
        self.has_existing = has_existing
        self.picked: Optional[LocalFile] = None
        self._cleared = False
        self._previews = previews or NullPreviews()
        self._preview = None

    @property
    def clear_thumbnail(self) -> bool:
        return self._cleared and self.picked is None

    @property
    def preview(self):
        return self._preview

    def pick(self, file: LocalFile) -> bool:
        if detect_media_type(file.content_type, file.filename) != "image":
            return False

        self._release()
        self.picked = file
        self._preview = self._previews.acquire(file)
        return True

    def remove(self) -> None:
        if self.picked is not None:
            self._release()
            self.picked = None
        elif self.has_existing:
            self._cleared = True

    def _release(self) -> None:
        handle, self._preview = self._preview, None
        if handle is not None:
            self._previews.release(handle)

    def release(self) -> None:
        self._release()


# ==========================================================
# SUBMISSION BUNDLE
# ==========================================================
@dataclass
class SubmissionBundle:
    payload: PostSubmission
    files: list[LocalFile]
    thumbnail: Optional[LocalFile] = None
    post_key: Optional[str] = None

    def form_fields(self) -> dict:
        return {"payload": self.payload.model_dump_json(exclude_none=True)}

    def multipart_files(self) -> list:
        parts = [
            ("images", (f.filename, f.data, f.content_type or "application/octet-stream"))
            for f in self.files
        ]
        if self.thumbnail is not None:
            t = self.thumbnail
            parts.append(("thumbnail", (t.filename, t.data, t.content_type or "application/octet-stream")))
        return parts


# ==========================================================
# SESSION
# ==========================================================
class EditorSession:
    def __init__(
        self,
        mode: EditorMode,
        previews: Optional[PreviewProvider] = None,
        post_key: Optional[str] = None,
        has_thumbnail: bool = False,
    ):
        self.mode = mode
        self.post_key = post_key
        self.registry = MediaTokenRegistry(previews=previews)
        self.thumbnail = ThumbnailSelection(has_existing=has_thumbnail, previews=previews)

        self.title = ""
        self.description = ""
        self.allowed_role_ids: list[str] = []
        self.channel_ids: list[str] = []
        self.focus = FocusPoint()
        self.post_date: datetime = datetime.now(timezone.utc)
        self.closed = False

    # -----------------------------
    # Opening
    # -----------------------------
    @classmethod
    def for_create(
        cls,
        prefs: Optional[PreferencesStore] = None,
        previews: Optional[PreviewProvider] = None,
    ) -> "EditorSession":
        session = cls("create", previews=previews)
        if prefs is not None:
            session.allowed_role_ids = dedupe_ids(prefs.get(prefs_keys.LAST_ROLE_IDS, []))
            session.channel_ids = dedupe_ids(prefs.get(prefs_keys.LAST_CHANNEL_IDS, []))
        return session

    @classmethod
    def for_edit(
        cls,
        post: PostOut,
        previews: Optional[PreviewProvider] = None,
    ) -> "EditorSession":
        media = sorted(post.media, key=lambda m: m.position)
        session = cls(
            "edit",
            previews=previews,
            post_key=post.post_key,
            has_thumbnail=bool(media and media[0].has_thumbnail),
        )
        session.title = post.title
        session.description = post.description
        session.allowed_role_ids = list(post.allowed_role_ids)
        session.channel_ids = list(post.channel_ids)
        session.focus = FocusPoint(x=post.focus_point.x, y=post.focus_point.y)
        session.post_date = post.timestamp

        session.registry.seed_remote(
            RemoteMedia(
                token=RemoteToken(m.id),
                remote_id=m.id,
                mime_class="video" if m.media_type == "video" else "image",
                has_thumbnail=m.has_thumbnail,
            )
            for m in media
        )
        return session

    # -----------------------------
    # Media operations
    # -----------------------------
    @property
    def order(self):
        return self.registry.order

    def add_files(self, files: Iterable[LocalFile]) -> list[Token]:
        return self.registry.add_local(files)

    def remove(self, token: Token) -> None:
        self.registry.remove(token)

    def move_adjacent(self, token: Token, direction: int) -> None:
        self.order.move_adjacent(token, direction)

    def move_before(self, source: Token, target: Token) -> None:
        self.order.move_before(source, target)

    def cover(self):
        live = self.order.live_tokens(self.registry)
        if not live:
            return None
        return self.registry.get(live[0])

    @property
    def focus_picking_enabled(self) -> bool:
        cover = self.cover()
        return cover is None or cover.mime_class != "video"

    def set_focus(self, x: float, y: float) -> bool:
        if not self.focus_picking_enabled:
            return False
        self.focus = FocusPoint(x=x, y=y)
        return True

    def effective_count(self) -> int:
        return self.order.effective_count(self.registry)

    # -----------------------------
    # Submission
    # -----------------------------
    @property
    def can_submit(self) -> bool:
        if self.closed:
            return False
        if self.mode == "create":
            return self.registry.local_added_count > 0
        return self.effective_count() > 0

    def build_submission(self) -> SubmissionBundle:
        """Snapshot of the current state; the session itself is untouched."""
        payload = PostSubmission(
            title=self.title,
            description=self.description,
            allowed_role_ids=self.allowed_role_ids,
            channel_ids=self.channel_ids,
            canonical_order=self.order.to_canonical_encoding(self.registry),
            removed_remote_ids=(
                self.registry.removed_remote_ids if self.mode == "edit" else None
            ),
            clear_thumbnail=self.thumbnail.clear_thumbnail,
            focus_point=self.focus,
            post_date=self.post_date,
        )
        return SubmissionBundle(
            payload=payload,
            files=self.order.ordered_local_files(self.registry),
            thumbnail=self.thumbnail.picked,
            post_key=self.post_key,
        )

    def close(self) -> None:
        if self.closed:
            return
        self.registry.reset()
        self.thumbnail.release()
        self.closed = True


# ==========================================================
# EDITOR (one session at a time)
# ==========================================================
class PostEditor:
    def __init__(
        self,
        prefs: Optional[PreferencesStore] = None,
        previews: Optional[PreviewProvider] = None,
    ):
        self.prefs = prefs if prefs is not None else InMemoryPreferences()
        self.previews = previews
        self.session: Optional[EditorSession] = None

    @property
    def panel_open(self) -> bool:
        return bool(self.prefs.get(prefs_keys.PANEL_OPEN, False))

    @panel_open.setter
    def panel_open(self, value: bool) -> None:
        self.prefs.set(prefs_keys.PANEL_OPEN, bool(value))

    def _replace(self, session: EditorSession) -> EditorSession:
        if self.session is not None:
            self.session.close()
        self.session = session
        return session

    def open_create(self) -> EditorSession:
        return self._replace(EditorSession.for_create(self.prefs, previews=self.previews))

    def open_edit(self, post: PostOut) -> EditorSession:
        return self._replace(EditorSession.for_edit(post, previews=self.previews))

    def cancel(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    def submit(self, handler: Callable[[SubmissionBundle], Optional[bool]]) -> bool:
        """
        Hand the current snapshot to `handler`. A rejection (handler returns
        False or raises SubmissionRejected) keeps every bit of editing
        state; success tears the session down.
        """
        session = self.session
        if session is None or not session.can_submit:
            return False

        bundle = session.build_submission()
        try:
            accepted = handler(bundle)
        except SubmissionRejected as e:
            logger.warning("Submission rejected: %s", e)
            return False

        if accepted is False:
            logger.warning("Submission rejected for post %s", session.post_key or "(new)")
            return False

        self.prefs.set(prefs_keys.LAST_ROLE_IDS, list(bundle.payload.allowed_role_ids))
        self.prefs.set(prefs_keys.LAST_CHANNEL_IDS, list(bundle.payload.channel_ids))

        session.close()
        if self.session is session:
            self.session = None
        return True
