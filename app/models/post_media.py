# app/models/post_media.py

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime

from app.database import Base


class PostMedia(Base):
    __tablename__ = "post_media"

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(
        String,
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Display / ship order inside the post, 0 = cover
    position = Column(Integer, nullable=False, default=0)

    media_type = Column(String, nullable=False)  # image / video
    file_path = Column(String, nullable=False)
    content_type = Column(String, nullable=True)
    filename = Column(String, nullable=True)
    file_size = Column(Integer, nullable=False, default=0)

    # Only meaningful on the cover item
    thumbnail_path = Column(String, nullable=True)

    uploaded_at = Column(DateTime, default=datetime.utcnow)

    post = relationship("Post", back_populates="media")

    @property
    def has_thumbnail(self) -> bool:
        return bool(self.thumbnail_path)
