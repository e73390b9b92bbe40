# app/models/post_allowed_role.py

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base


class PostAllowedRole(Base):
    __tablename__ = "post_allowed_roles"
    __table_args__ = (
        UniqueConstraint("post_id", "role_id", name="uq_post_allowed_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(
        String,
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_id = Column(String, nullable=False, index=True)

    post = relationship("Post", back_populates="allowed_roles")
