from dataclasses import dataclass
from typing import Iterable, Literal, Sequence

from app.schemas.post_schema import EncodedRef, RemoteOrderRef


@dataclass(frozen=True)
class MediaSlot:
    """One entry of the final media list: an existing row or an upload."""

    kind: Literal["remote", "local"]
    ref: int  # media id for "remote", batch index for "local"


def resolve_final_media(
    existing_ids: Sequence[int],
    removed_ids: Iterable[int],
    new_count: int,
    canonical_order: Sequence[EncodedRef],
) -> list[MediaSlot]:
    """
    Apply a canonical order to a post's stored media plus `new_count`
    uploads. References that point nowhere, at removed media, or at
    something already placed are skipped. Whatever survives but was not
    referenced is appended afterwards: existing media in stored order,
    then uploads in batch order.
    """
    removed = set(removed_ids or ())
    known = set(existing_ids)

    final: list[MediaSlot] = []
    used_existing: set[int] = set()
    used_new: set[int] = set()

    for ref in canonical_order:
        if isinstance(ref, RemoteOrderRef):
            if ref.id not in known or ref.id in removed or ref.id in used_existing:
                continue
            used_existing.add(ref.id)
            final.append(MediaSlot("remote", ref.id))
        else:
            idx = ref.batch_index
            if idx < 0 or idx >= new_count or idx in used_new:
                continue
            used_new.add(idx)
            final.append(MediaSlot("local", idx))

    for media_id in existing_ids:
        if media_id in removed or media_id in used_existing:
            continue
        final.append(MediaSlot("remote", media_id))

    for idx in range(new_count):
        if idx in used_new:
            continue
        final.append(MediaSlot("local", idx))

    return final
