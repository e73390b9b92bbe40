from datetime import datetime

from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from app.database import Base


class User(Base):
    __tablename__ = "users"

    # Identity provider user id (snowflake / subject claim)
    id = Column(String, primary_key=True, index=True)

    username = Column(String, nullable=False, default="")

    # Authors may create posts and always see their own work
    is_author = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    posts = relationship("Post", back_populates="author")
