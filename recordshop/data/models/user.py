from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime

from recordshop.data.database import Base


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True, unique=True)
    name = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
