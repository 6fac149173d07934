from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Integer, Text
from .db import Base


class GeneratedQuiz(Base):
	__tablename__ = "generated_quizzes"
	id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
	teacher_id = Column(String(128), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	task_type = Column(String(32), default="quiz", nullable=False)
	subject_area = Column(String(64), nullable=False)
	grade_level = Column(String(32), nullable=False)
	curriculum_standard = Column(String(128), nullable=True)
	total_points = Column(Integer, default=100, nullable=False)
	is_active = Column(Boolean, default=True, nullable=False)
	settings_json = Column(Text, nullable=False)  # questions, difficulty, count
	assigned_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"teacherId": self.teacher_id,
			"title": self.title,
			"description": self.description,
			"taskType": self.task_type,
			"subjectArea": self.subject_area,
			"gradeLevel": self.grade_level,
			"curriculumStandard": self.curriculum_standard,
			"totalPoints": self.total_points,
			"isActive": self.is_active,
			"assignedAt": self.assigned_at.isoformat() if self.assigned_at else None,
		}
