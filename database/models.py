from sqlalchemy import Column, String, DateTime, Integer, Boolean, Text
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()


class CompanyToken(Base):
    """OAuth credential for one GHL company (agency-level install)"""
    __tablename__ = "company_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(String(255), unique=True, index=True, nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    expires_at = Column(DateTime)  # naive UTC; NULL means the token never expires
    token_type = Column(String(50), default="Bearer")
    active_status = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<CompanyToken company_id={self.company_id} active={self.active_status}>"
