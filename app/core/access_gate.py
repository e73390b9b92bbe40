from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass(frozen=True)
class ViewerContext:
    """Who is looking, as resolved by the identity provider."""

    id: Optional[str] = None
    is_author: bool = False
    role_ids: frozenset = field(default_factory=frozenset)


ANONYMOUS = ViewerContext()


def can_access(post, viewer_role_ids: Iterable[str], viewer: ViewerContext) -> bool:
    """
    True if the viewer may see/download the full asset of `post`.

    Authors always see their own posts. Everybody else needs at least one
    role in common with `post.allowed_role_ids`; a post with no allowed
    roles is closed to every non-author.
    """
    if viewer.is_author and viewer.id is not None and viewer.id == post.author_id:
        return True

    allowed = set(post.allowed_role_ids or ())
    if not allowed:
        return False

    return not allowed.isdisjoint(viewer_role_ids or ())


def viewer_can_access(post, viewer: ViewerContext) -> bool:
    return can_access(post, viewer.role_ids, viewer)
