"""
ORM 模型 - students / feedbacks 两张表
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base


def _new_id():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Student(Base):
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=_new_id)
    device_id = Column(String(36), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    feedbacks = relationship("Feedback", back_populates="student")


class Feedback(Base):
    __tablename__ = "feedbacks"

    id = Column(String(36), primary_key=True, default=_new_id)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False)
    subject = Column(Text, nullable=False)

    # 教学问卷（1-5 分）
    q1 = Column(Integer)
    q2 = Column(Integer)
    q3 = Column(Integer)
    q4 = Column(Integer)
    q5 = Column(Integer)

    # 环境审计
    q6_jobs = Column(Text)
    q7_rooms = Column(Integer)
    q8_resources = Column(Integer)
    q9_transport = Column(Text)
    q10_laptop = Column(Text)

    comments = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    student = relationship("Student", back_populates="feedbacks")

    __table_args__ = (Index("idx_feedbacks_student", "student_id"),)
