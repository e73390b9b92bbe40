"""
Media token reconciliation.

A post being edited holds a mix of media that already lives on the server
("remote") and files the author just picked ("local"). Every item gets a
token that identifies it for the rest of the editing session; the
`OrderSequence` holds those tokens in display order and turns them into the
canonical order the backend applies.
"""

import logging
import secrets
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Union

from app.core.media_types import MimeClass, detect_media_type
from app.schemas.post_schema import EncodedRef, LocalOrderRef, RemoteOrderRef

logger = logging.getLogger(__name__)


# ==========================================================
# TOKENS
# ==========================================================
@dataclass(frozen=True)
class RemoteToken:
    remote_id: int

    def __str__(self) -> str:
        return f"e:{self.remote_id}"


@dataclass(frozen=True)
class LocalToken:
    key: str

    def __str__(self) -> str:
        return f"n:{self.key}"


Token = Union[RemoteToken, LocalToken]


# ==========================================================
# MEDIA ITEMS
# ==========================================================
@dataclass
class LocalFile:
    """A file picked on the author's machine, not uploaded yet."""

    filename: str
    content_type: Optional[str] = None
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class LocalMedia:
    token: LocalToken
    file: LocalFile
    mime_class: MimeClass
    origin: str = field(default="local", init=False)


@dataclass
class RemoteMedia:
    token: RemoteToken
    remote_id: int
    mime_class: MimeClass
    has_thumbnail: bool = False
    origin: str = field(default="remote", init=False)


MediaItem = Union[LocalMedia, RemoteMedia]


# ==========================================================
# PREVIEWS
# ==========================================================
class PreviewProvider(Protocol):
    def acquire(self, file: LocalFile): ...

    def release(self, handle) -> None: ...


class NullPreviews:
    """No preview resources at all (headless use)."""

    def acquire(self, file: LocalFile):
        return None

    def release(self, handle) -> None:
        return None


# ==========================================================
# ORDER SEQUENCE
# ==========================================================
class OrderSequence:
    """Ordered, duplicate-free list of tokens. Every operation is total."""

    def __init__(self, tokens: Iterable[Token] = ()):
        self._tokens: list[Token] = []
        self.append(tokens)

    def __iter__(self):
        return iter(list(self._tokens))

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, token) -> bool:
        return token in self._tokens

    @property
    def tokens(self) -> list[Token]:
        return list(self._tokens)

    def append(self, tokens: Iterable[Token]) -> None:
        for token in tokens:
            if token in self._tokens:
                continue
            self._tokens.append(token)

    def remove(self, token: Token) -> None:
        if token in self._tokens:
            self._tokens.remove(token)

    def clear(self) -> None:
        self._tokens.clear()

    def move_adjacent(self, token: Token, direction: int) -> None:
        if direction not in (-1, 1) or token not in self._tokens:
            return

        i = self._tokens.index(token)
        j = i + direction
        if j < 0 or j >= len(self._tokens):
            return

        self._tokens[i], self._tokens[j] = self._tokens[j], self._tokens[i]

    def move_before(self, source: Token, target: Token) -> None:
        if source == target:
            return
        if source not in self._tokens or target not in self._tokens:
            return

        self._tokens.remove(source)
        self._tokens.insert(self._tokens.index(target), source)

    # -----------------------------
    # Derived views
    # -----------------------------
    def live_tokens(self, registry: "MediaTokenRegistry") -> list[Token]:
        return [t for t in self._tokens if registry.is_live(t)]

    def effective_count(self, registry: "MediaTokenRegistry") -> int:
        return len(self.live_tokens(registry))

    def to_canonical_encoding(self, registry: "MediaTokenRegistry") -> list[EncodedRef]:
        """
        Remote items are referenced by their stored id; local files by their
        position inside the upload batch, which is the live local files in
        final order. Batch indices are recomputed on every call.
        """
        encoded: list[EncodedRef] = []
        batch_index = 0

        for token in self.live_tokens(registry):
            if isinstance(token, RemoteToken):
                encoded.append(RemoteOrderRef(id=token.remote_id))
            else:
                encoded.append(LocalOrderRef(batch_index=batch_index))
                batch_index += 1

        return encoded

    def ordered_local_files(self, registry: "MediaTokenRegistry") -> list[LocalFile]:
        files = []
        for token in self.live_tokens(registry):
            item = registry.get(token)
            if isinstance(item, LocalMedia):
                files.append(item.file)
        return files


# ==========================================================
# REGISTRY
# ==========================================================
class MediaTokenRegistry:
    """
    Owns every candidate media item of one editing session together with
    the order they ship in. A token is either in both the registry and
    `order`, or in neither.
    """

    def __init__(
        self,
        order: Optional[OrderSequence] = None,
        previews: Optional[PreviewProvider] = None,
    ):
        self.order = order if order is not None else OrderSequence()
        self._previews = previews or NullPreviews()

        self._items: dict[Token, MediaItem] = {}
        self._preview_handles: dict[LocalToken, object] = {}
        self._issued_keys: set[str] = set()
        self._removed_remote_ids: list[int] = []
        self.local_added_count = 0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def removed_remote_ids(self) -> list[int]:
        return list(self._removed_remote_ids)

    def get(self, token: Token) -> Optional[MediaItem]:
        return self._items.get(token)

    def is_live(self, token: Token) -> bool:
        return token in self._items

    def preview(self, token: LocalToken):
        return self._preview_handles.get(token)

    # -----------------------------
    # Seeding (edit mode)
    # -----------------------------
    def seed_remote(self, items: Iterable[RemoteMedia]) -> list[RemoteToken]:
        tokens = []
        for item in items:
            if item.token in self._items:
                continue
            self._items[item.token] = item
            tokens.append(item.token)

        self.order.append(tokens)
        return tokens

    # -----------------------------
    # Local files
    # -----------------------------
    def _mint_key(self) -> str:
        while True:
            key = secrets.token_hex(6)
            if key not in self._issued_keys:
                self._issued_keys.add(key)
                return key

    def add_local(self, files: Iterable[LocalFile]) -> list[LocalToken]:
        tokens = []

        for f in files:
            mime_class = detect_media_type(f.content_type, f.filename)
            if mime_class is None:
                logger.debug("Skipping non-media file %s (%s)", f.filename, f.content_type)
                continue

            token = LocalToken(self._mint_key())
            handle = self._previews.acquire(f)

            self._items[token] = LocalMedia(token=token, file=f, mime_class=mime_class)
            self._preview_handles[token] = handle
            self.order.append([token])
            self.local_added_count += 1
            tokens.append(token)

        return tokens

    def remove_local(self, token: Token) -> None:
        item = self._items.get(token)
        if not isinstance(item, LocalMedia):
            return

        del self._items[token]
        self.order.remove(token)
        self._release_preview(token)

    # -----------------------------
    # Remote items
    # -----------------------------
    def mark_remote_removed(self, token: Token) -> None:
        item = self._items.get(token)
        if not isinstance(item, RemoteMedia):
            return

        del self._items[token]
        self.order.remove(token)
        if item.remote_id not in self._removed_remote_ids:
            self._removed_remote_ids.append(item.remote_id)

    def remove(self, token: Token) -> None:
        if isinstance(token, RemoteToken):
            self.mark_remote_removed(token)
        else:
            self.remove_local(token)

    # -----------------------------
    # Teardown
    # -----------------------------
    def _release_preview(self, token: LocalToken) -> None:
        if token not in self._preview_handles:
            return
        handle = self._preview_handles.pop(token)
        if handle is not None:
            self._previews.release(handle)

    def reset(self) -> None:
        for token in list(self._preview_handles):
            self._release_preview(token)

        self.order.clear()
        self._items.clear()
        self._removed_remote_ids.clear()
        self.local_added_count = 0
