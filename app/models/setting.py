from sqlalchemy import Column, String, DateTime, JSON
from app.core.database import Base
from app.core.tz import utcnow


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Setting {self.key}>"
