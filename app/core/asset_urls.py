from app.utils.urls import absolute_media_url


def full_media_url(media_id: int) -> str:
    return absolute_media_url(f"/posts/media/{media_id}")


def thumbnail_url(media_id: int) -> str:
    return absolute_media_url(f"/posts/media/{media_id}/thumb")


def resolve_media_url(media, unlocked: bool) -> str:
    """
    URL a viewer should load for one media item: the asset itself when
    unlocked, the thumbnail/placeholder endpoint otherwise.
    """
    if unlocked:
        return full_media_url(media.id)
    return thumbnail_url(media.id)
