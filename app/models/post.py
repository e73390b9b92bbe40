# app/models/post.py

from sqlalchemy import Column, String, DateTime, Float, ForeignKey, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from app.database import Base


class Post(Base):
    __tablename__ = "posts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # External id used in URLs
    post_key = Column(
        String,
        unique=True,
        index=True,
        nullable=False,
        default=lambda: uuid.uuid4().hex,
    )
    author_id = Column(String, ForeignKey("users.id"), nullable=False)

    title = Column(String, nullable=False, default="")
    description = Column(String, nullable=False, default="")
    channel_ids = Column(JSON, nullable=False, default=list)

    # Cover focus point, percentages 0-100
    focus_x = Column(Float, nullable=False, default=50.0)
    focus_y = Column(Float, nullable=False, default=50.0)

    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # -------------------------
    # RELATIONSHIPS
    # -------------------------

    author = relationship("User", back_populates="posts", lazy="joined")

    allowed_roles = relationship(
        "PostAllowedRole",
        back_populates="post",
        cascade="all, delete-orphan",
    )

    media = relationship(
        "PostMedia",
        back_populates="post",
        order_by="PostMedia.position",
        cascade="all, delete-orphan",
    )

    @property
    def allowed_role_ids(self) -> list[str]:
        return [r.role_id for r in self.allowed_roles]
