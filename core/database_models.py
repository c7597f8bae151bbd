from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey
)

from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def isoformat(value):
    """Serialize a stored timestamp as ISO-8601 UTC (SQLite drops tzinfo)"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class RecruiterStatus:
    PENDING = 'pending'
    SENT = 'sent'
    FAILED = 'failed'

    ALL = (PENDING, SENT, FAILED)


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    refresh_token_hash = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    configuration = relationship("Configuration", back_populates="user", uselist=False,
                                 cascade="all, delete-orphan")
    recruiters = relationship("Recruiter", back_populates="user", cascade="all, delete-orphan")


class Configuration(Base):
    __tablename__ = 'configurations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, unique=True)
    smtp_host = Column(String(255), nullable=False)
    smtp_port = Column(Integer, nullable=False)
    smtp_user = Column(String(255), nullable=False)
    smtp_pass = Column(Text, nullable=False)  # Fernet token, never plain text
    email_from = Column(String(320), nullable=False)
    email_subject = Column(String(255), nullable=False)
    email_rate_limit = Column(Integer, nullable=False)  # emails per minute
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="configuration")


class Recruiter(Base):
    __tablename__ = 'recruiters'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    company = Column(String(255), nullable=False)
    email = Column(String(320), nullable=False)
    reach_out_frequency = Column(Integer, nullable=False, default=0)
    last_reach_out_date = Column(DateTime(timezone=True))
    status = Column(String(20), nullable=False, default=RecruiterStatus.PENDING)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="recruiters")
