"""
Typed records for the collections managed by coachstore.

Documents are stored as camelCase field maps (the wire format shared with the
web front end); these models give Python callers snake_case attributes and
validation while keeping unknown fields (`extra="allow"`), since the store
itself enforces no schema.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Collections:
    """Logical collection names."""

    SPORTS = "sports"
    SKILLS = "skills"
    QUIZZES = "quizzes"
    QUIZ_QUESTIONS = "quiz_questions"
    ACHIEVEMENTS = "achievements"
    APP_SETTINGS = "app_settings"
    USERS = "users"
    CONTENT = "content"
    MIGRATIONS = "migrations"
    MIGRATION_STATE = "migration_state"


_SYSTEM_FIELDS = {"id", "created_at", "updated_at"}


class Record(BaseModel):
    """
    Base for every stored document.

    `id`, `created_at` and `updated_at` are owned by the client: they are read
    back from the store but never written from a model.
    """

    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> Dict[str, Any]:
        """Field map ready for `DocumentStoreClient.create`."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude=_SYSTEM_FIELDS)

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        return cls.model_validate(document)


class Sport(Record):
    name: str
    description: str = ""
    icon: str = ""
    color: str = ""
    category: str = ""
    difficulty: str = "introduction"
    estimated_time_to_complete: int = 0
    image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)
    is_active: bool = True
    is_featured: bool = False
    order: int = 0
    skills_count: int = 0
    created_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Skill(Record):
    sport_id: str = ""
    name: str
    description: str = ""
    difficulty: str = "introduction"
    estimated_time_to_complete: int = 0
    content: str = ""
    external_resources: List[Dict[str, Any]] = Field(default_factory=list)
    media: Dict[str, Any] = Field(default_factory=dict)
    prerequisites: List[str] = Field(default_factory=list)
    learning_objectives: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    has_video: bool = False
    has_quiz: bool = False
    is_active: bool = True
    order: int = 0
    created_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Quiz(Record):
    skill_id: str = ""
    sport_id: str = ""
    title: str
    description: str = ""
    difficulty: str = "introduction"
    time_limit: int = 0
    passing_score: int = 70
    max_attempts: int = 3
    allow_review: bool = True
    shuffle_questions: bool = False
    show_answers_after_completion: bool = True
    is_active: bool = True
    created_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class QuizQuestion(Record):
    quiz_id: str = ""
    type: str = "multiple_choice"
    question: str
    options: List[str] = Field(default_factory=list)
    correct_answer: Any = None
    explanation: str = ""
    points: int = 10
    order: int = 0
    difficulty: str = "introduction"
    tags: List[str] = Field(default_factory=list)


class Achievement(Record):
    name: str
    description: str = ""
    icon: str = ""
    type: str = "progress"
    criteria: Dict[str, Any] = Field(default_factory=dict)
    points: int = 0
    rarity: str = "common"
    is_active: bool = True
    is_secret: bool = False


class AppSettings(Record):
    maintenance_mode: bool = False
    features_enabled: Dict[str, bool] = Field(default_factory=dict)
    supported_languages: List[str] = Field(default_factory=list)
    max_quiz_attempts: int = 3
    session_timeout: int = 30
    cache_settings: Dict[str, int] = Field(default_factory=dict)
    rate_limit: Dict[str, int] = Field(default_factory=dict)
    analytics: Dict[str, Any] = Field(default_factory=dict)
    updated_by: Optional[str] = None


class MigrationState(Record):
    """Singleton record: the source of truth for which migrations have run."""

    current_version: str = "0.0.0"
    executed_migration_ids: List[str] = Field(default_factory=list)
    last_migration_at: Optional[datetime] = None


class MigrationExecution(Record):
    """Audit entry written for every migration lifecycle step."""

    migration_id: str
    version: str
    name: str
    description: str = ""
    status: str
    executed_at: datetime
    error: Optional[str] = None
    duration_ms: Optional[float] = None


__all__ = [
    "Achievement",
    "AppSettings",
    "Collections",
    "MigrationExecution",
    "MigrationState",
    "Quiz",
    "QuizQuestion",
    "Record",
    "Skill",
    "Sport",
]
