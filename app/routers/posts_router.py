# app/routers/posts_router.py

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session, selectinload

from app.auth import get_viewer, require_author
from app.core.access_gate import ViewerContext, viewer_can_access
from app.core.asset_urls import resolve_media_url, thumbnail_url
from app.core.media_order import resolve_final_media
from app.core.media_types import detect_media_type
from app.database import get_db
from app.models.post import Post
from app.models.post_allowed_role import PostAllowedRole
from app.models.post_media import PostMedia
from app.schemas.post_schema import FocusPoint, PostMediaOut, PostOut, PostSubmission
from app.storage import (
    delete_file,
    get_file_size,
    resolve_local_path,
    save_file,
    validate_file_size,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["Posts"])


# --------------------------------------------------
# HELPERS
# --------------------------------------------------

def parse_submission(payload: str) -> PostSubmission:
    try:
        return PostSubmission.model_validate_json(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid payload: {e.error_count()} error(s)")


def load_post(db: Session, post_key: str) -> Post:
    post = (
        db.query(Post)
        .options(selectinload(Post.media), selectinload(Post.allowed_roles))
        .filter(Post.post_key == post_key)
        .first()
    )
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


def require_owner(post: Post, viewer: ViewerContext):
    if post.author_id != viewer.id:
        raise HTTPException(status_code=403, detail="Only the author can change this post")


def _utc_naive(dt: Optional[datetime]) -> datetime:
    if dt is None:
        return datetime.utcnow()
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _validate_uploads(files: List[UploadFile]) -> list[tuple[UploadFile, str]]:
    uploads = []
    for f in files:
        media_type = detect_media_type(f.content_type, f.filename)
        if media_type is None:
            raise HTTPException(status_code=400, detail="Only image/video supported")

        ok, err = validate_file_size(f, media_type)
        if not ok:
            raise HTTPException(status_code=413, detail=err)

        uploads.append((f, media_type))
    return uploads


def _media_folder(post: Post) -> str:
    return f"posts/{post.post_key}/media"


def _store_upload(
    post: Post,
    upload: UploadFile,
    media_type: str,
    position: int,
    saved: list[str],
) -> PostMedia:
    size = get_file_size(upload)
    path = save_file(_media_folder(post), upload)
    saved.append(path)

    return PostMedia(
        position=position,
        media_type=media_type,
        file_path=path,
        content_type=upload.content_type,
        filename=upload.filename,
        file_size=size,
    )


def _set_allowed_roles(post: Post, role_ids: list[str]):
    wanted = set(role_ids)

    for row in list(post.allowed_roles):
        if row.role_id not in wanted:
            post.allowed_roles.remove(row)

    have = {row.role_id for row in post.allowed_roles}
    for role_id in role_ids:
        if role_id not in have:
            post.allowed_roles.append(PostAllowedRole(role_id=role_id))


def _apply_scalars(post: Post, submission: PostSubmission):
    post.title = submission.title
    post.description = submission.description
    post.channel_ids = list(submission.channel_ids)
    post.focus_x = submission.focus_point.x
    post.focus_y = submission.focus_point.y
    _set_allowed_roles(post, submission.allowed_role_ids)


def _validate_thumbnail(thumbnail: Optional[UploadFile]):
    if thumbnail is None:
        return
    if detect_media_type(thumbnail.content_type, thumbnail.filename) != "image":
        raise HTTPException(status_code=400, detail="Thumbnail must be an image")


def _apply_thumbnail(
    cover: PostMedia,
    post: Post,
    thumbnail: Optional[UploadFile],
    clear_thumbnail: bool,
    saved: list[str],
    stale: list[str],
):
    """Files are only collected here; deletion waits for the commit."""
    if thumbnail is not None:
        if cover.thumbnail_path:
            stale.append(cover.thumbnail_path)
        cover.thumbnail_path = save_file(f"posts/{post.post_key}/thumb", thumbnail)
        saved.append(cover.thumbnail_path)

    elif clear_thumbnail and cover.thumbnail_path:
        stale.append(cover.thumbnail_path)
        cover.thumbnail_path = None


def _discard_files(paths: list[str]):
    for path in paths:
        delete_file(path)


def serialize_media(media: PostMedia, unlocked: bool) -> PostMediaOut:
    return PostMediaOut(
        id=media.id,
        position=media.position,
        media_type=media.media_type,
        content_type=media.content_type,
        filename=media.filename,
        file_size=media.file_size or 0,
        has_thumbnail=media.has_thumbnail,
        url=resolve_media_url(media, unlocked),
        thumbnail_url=thumbnail_url(media.id),
        locked=not unlocked,
    )


def serialize_post(post: Post, viewer: ViewerContext) -> PostOut:
    unlocked = viewer_can_access(post, viewer)

    return PostOut(
        id=post.id,
        post_key=post.post_key,
        author_id=post.author_id,
        author_name=post.author.username if post.author else None,
        title=post.title,
        description=post.description,
        allowed_role_ids=post.allowed_role_ids,
        channel_ids=list(post.channel_ids or []),
        focus_point=FocusPoint(x=post.focus_x, y=post.focus_y),
        timestamp=post.timestamp,
        created_at=post.created_at,
        updated_at=post.updated_at,
        media=[serialize_media(m, unlocked) for m in post.media],
        can_access=unlocked,
        can_edit=viewer.is_author and viewer.id == post.author_id,
    )


# --------------------------------------------------
# LIST POSTS
# --------------------------------------------------

@router.get("", response_model=list[PostOut])
def list_posts(
    page: int = 1,
    limit: int = 10,
    sort: Optional[str] = None,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(get_viewer),
):
    if page < 1:
        page = 1
    if limit < 1 or limit > 100:
        limit = 10

    order = Post.timestamp.asc() if sort == "oldest" else Post.timestamp.desc()

    posts = (
        db.query(Post)
        .options(selectinload(Post.media), selectinload(Post.allowed_roles))
        .order_by(order, Post.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return [serialize_post(p, viewer) for p in posts]


# --------------------------------------------------
# MEDIA (gated)
# --------------------------------------------------

def _load_media(db: Session, media_id: int) -> PostMedia:
    media = db.query(PostMedia).filter(PostMedia.id == media_id).first()
    if not media:
        raise HTTPException(status_code=404, detail="Media not found")
    return media


def _file_response(path: str, content_type: Optional[str], filename: Optional[str], disposition: str):
    fs_path = resolve_local_path(path)
    if fs_path is None or not fs_path.exists():
        raise HTTPException(status_code=404, detail="Media file missing")

    return FileResponse(
        fs_path,
        media_type=content_type or "application/octet-stream",
        filename=filename or fs_path.name,
        content_disposition_type=disposition,
        headers={"Cache-Control": "private, max-age=86400"},
    )


@router.get("/media/{media_id}")
def get_media(
    media_id: int,
    download: int = 0,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(get_viewer),
):
    media = _load_media(db, media_id)
    post = media.post

    if not viewer_can_access(post, viewer):
        logger.warning("Access denied for media %s of post %s (viewer %s)", media.id, post.post_key, viewer.id)
        logger.debug(
            "Denied roles: viewer=%s allowed=%s",
            sorted(viewer.role_ids),
            post.allowed_role_ids,
        )
        raise HTTPException(status_code=403, detail="Access denied")

    disposition = "attachment" if download == 1 else "inline"
    return _file_response(media.file_path, media.content_type, media.filename, disposition)


@router.get("/media/{media_id}/thumb")
def get_media_thumbnail(
    media_id: int,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(get_viewer),
):
    media = _load_media(db, media_id)

    if media.thumbnail_path:
        return _file_response(media.thumbnail_path, None, None, "inline")

    # No dedicated thumbnail: only an unlocked viewer may fall back to the asset
    if media.media_type == "image" and viewer_can_access(media.post, viewer):
        return _file_response(media.file_path, media.content_type, media.filename, "inline")

    raise HTTPException(status_code=404, detail="No preview available")


# --------------------------------------------------
# GET POST
# --------------------------------------------------

@router.get("/{post_key}", response_model=PostOut)
def get_post(
    post_key: str,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(get_viewer),
):
    return serialize_post(load_post(db, post_key), viewer)


# --------------------------------------------------
# CREATE POST
# --------------------------------------------------

@router.post("", response_model=PostOut)
def create_post(
    payload: str = Form(...),
    images: Optional[List[UploadFile]] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_author),
):
    submission = parse_submission(payload)
    uploads = _validate_uploads(images or [])
    if not uploads:
        raise HTTPException(status_code=400, detail="Missing images")
    _validate_thumbnail(thumbnail)

    post = Post(
        id=str(uuid.uuid4()),
        post_key=uuid.uuid4().hex,
        author_id=viewer.id,
        timestamp=_utc_naive(submission.post_date),
    )
    _apply_scalars(post, submission)

    slots = resolve_final_media([], [], len(uploads), submission.canonical_order)
    saved: list[str] = []
    try:
        for position, slot in enumerate(slots):
            upload, media_type = uploads[slot.ref]
            post.media.append(_store_upload(post, upload, media_type, position, saved))

        _apply_thumbnail(post.media[0], post, thumbnail, False, saved, [])

        db.add(post)
        db.commit()
    except Exception:
        db.rollback()
        _discard_files(saved)
        logger.error("Post create failed, discarded %d stored file(s)", len(saved))
        raise

    post = load_post(db, post.post_key)
    logger.info("Post created %s by %s (%d media)", post.post_key, viewer.id, len(post.media))
    return serialize_post(post, viewer)


# --------------------------------------------------
# PATCH POST
# --------------------------------------------------

@router.patch("/{post_key}", response_model=PostOut)
def patch_post(
    post_key: str,
    payload: str = Form(...),
    images: Optional[List[UploadFile]] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_author),
):
    post = load_post(db, post_key)
    require_owner(post, viewer)

    submission = parse_submission(payload)
    uploads = _validate_uploads(images or [])
    _validate_thumbnail(thumbnail)

    existing_by_id = {m.id: m for m in post.media}
    removed_ids = set(submission.removed_remote_ids or []) & set(existing_by_id)

    slots = resolve_final_media(
        [m.id for m in post.media],
        removed_ids,
        len(uploads),
        submission.canonical_order,
    )
    if not slots:
        raise HTTPException(status_code=400, detail="Post must contain at least one media item")

    saved: list[str] = []
    stale: list[str] = []
    try:
        _apply_scalars(post, submission)
        if submission.post_date is not None:
            post.timestamp = _utc_naive(submission.post_date)

        for media_id in removed_ids:
            media = existing_by_id[media_id]
            stale.append(media.file_path)
            if media.thumbnail_path:
                stale.append(media.thumbnail_path)
            post.media.remove(media)

        final = []
        for position, slot in enumerate(slots):
            if slot.kind == "remote":
                media = existing_by_id[slot.ref]
                media.position = position
            else:
                upload, media_type = uploads[slot.ref]
                media = _store_upload(post, upload, media_type, position, saved)
                post.media.append(media)
            final.append(media)

        _apply_thumbnail(final[0], post, thumbnail, submission.clear_thumbnail, saved, stale)

        post.updated_at = datetime.utcnow()
        db.commit()
    except Exception:
        db.rollback()
        _discard_files(saved)
        logger.error("Post update failed for %s, discarded %d stored file(s)", post_key, len(saved))
        raise

    _discard_files(stale)

    post = load_post(db, post_key)
    logger.info("Post updated %s by %s", post_key, viewer.id)
    return serialize_post(post, viewer)


# --------------------------------------------------
# DELETE POST
# --------------------------------------------------

@router.delete("/{post_key}")
def delete_post(
    post_key: str,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_author),
):
    post = load_post(db, post_key)
    require_owner(post, viewer)

    stale = [m.file_path for m in post.media] + [m.thumbnail_path for m in post.media if m.thumbnail_path]

    db.delete(post)
    db.commit()
    _discard_files(stale)

    logger.info("Post deleted %s by %s", post_key, viewer.id)
    return {"status": "deleted"}
