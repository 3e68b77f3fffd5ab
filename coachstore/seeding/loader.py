"""
Seed loader: bulk-loads reference and sample data with reference wiring.

A seeding run creates sports, then skills (wired to their sport's id), then
quizzes (wired to skill and sport ids), quiz questions (wired to quiz ids),
achievements and one app-settings record. Generated ids are tracked in a
`SeededEntityMap` keyed by human-readable names for the duration of the run.

`validate_data_integrity` re-reads the stored data and reports every dangling
reference instead of stopping at the first one.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from coachstore.client import DocumentStoreClient
from coachstore.config import Settings, get_settings
from coachstore.domain.models import Achievement, Collections, Sport
from coachstore.domain.results import BatchOperation, QueryOptions, Result
from coachstore.errors import ErrorCode, StoreError
from coachstore.seeding import seed_data
from coachstore.utils.logging import get_logger
from coachstore.utils.timing import timed_block

MANAGED_COLLECTIONS = (
    Collections.QUIZ_QUESTIONS,
    Collections.QUIZZES,
    Collections.SKILLS,
    Collections.SPORTS,
    Collections.ACHIEVEMENTS,
    Collections.APP_SETTINGS,
)


class SeedSummary(BaseModel):
    sports_created: int = 0
    skills_created: int = 0
    quizzes_created: int = 0
    questions_created: int = 0
    achievements_created: int = 0
    app_settings_created: bool = False


class SeedCheckReport(BaseModel):
    sports: int
    skills: int
    quizzes: int
    questions: int
    achievements: int
    has_app_settings: bool
    is_empty: bool


class IntegrityReport(BaseModel):
    valid: bool
    issues: List[str] = Field(default_factory=list)


class SeededEntityMap(BaseModel):
    """Seed key (sport/skill/achievement name, quiz title) -> generated id."""

    sports: Dict[str, str] = Field(default_factory=dict)
    skills: Dict[str, str] = Field(default_factory=dict)
    quizzes: Dict[str, str] = Field(default_factory=dict)
    achievements: Dict[str, str] = Field(default_factory=dict)


class SeedLoader:
    """
    Loads the sample catalog into the store.

    Parameters
    ----------
    client : DocumentStoreClient
        Store access; every write goes through it.
    settings : Settings, optional
        Supplies the page size used when clearing collections.
    logger : logging.Logger, optional
        Injected logger; defaults to this module's logger.
    """

    def __init__(
        self,
        client: DocumentStoreClient,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        settings = settings or get_settings()
        self.client = client
        self.clear_page_size = settings.seed_clear_page_size
        self._log = logger or get_logger(__name__)
        self._entities = SeededEntityMap()

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def seed_all(
        self,
        admin_user_id: str,
        force: bool = False,
        include_additional_sports: bool = False,
    ) -> Result[SeedSummary]:
        """
        Seed every collection in dependency order.

        With `force`, managed collections are cleared first. Counts in the
        summary reflect documents created by this run.
        """
        self._entities = SeededEntityMap()
        summary = SeedSummary()
        self._log.info(
            "Seeding started",
            extra={"force": force, "include_additional_sports": include_additional_sports},
        )
        failure: Optional[Exception] = None
        with timed_block("seed_all") as timing:
            try:
                if force:
                    self._log.info("Clearing existing data")
                    (await self.clear_all_data()).unwrap()

                summary.sports_created = await self._create_sports(admin_user_id, include_additional_sports)
                summary.skills_created = await self._create_skills(admin_user_id)
                summary.quizzes_created = await self._create_quizzes(admin_user_id)
                summary.questions_created = await self._create_questions()
                summary.achievements_created = await self._create_achievements()
                await self._create_app_settings(admin_user_id)
                summary.app_settings_created = True
            except (StoreError, KeyError) as exc:
                failure = exc

        if failure is not None:
            self._log.error("Seeding failed", extra={"error": str(failure), **summary.model_dump()})
            return Result.fail(
                code=ErrorCode.SEEDING_FAILED,
                message="Failed to seed database",
                details={"error": str(failure), "partial": summary.model_dump()},
            )

        self._log.info(
            "Seeding completed",
            extra={**summary.model_dump(), "duration_ms": round(timing.duration_ms, 3)},
        )
        return Result.ok(summary, message="Database seeded successfully")

    async def _create_sports(self, admin_user_id: str, include_additional: bool) -> int:
        sports: List[Sport] = list(seed_data.SAMPLE_SPORTS)
        if include_additional:
            sports.extend(seed_data.ADDITIONAL_SPORTS)
        for sport in sports:
            payload = sport.model_copy(update={"created_by": admin_user_id, "skills_count": 0})
            created = (await self.client.create(Collections.SPORTS, payload)).unwrap()
            self._entities.sports[sport.name] = created["id"]
            self._log.debug("Created sport", extra={"sport": sport.name, "doc_id": created["id"]})
        return len(sports)

    async def _create_skills(self, admin_user_id: str) -> int:
        sport_id = self._entities.sports[seed_data.SKILLS_SPORT]
        for skill in seed_data.SAMPLE_SKILLS:
            prerequisites = [
                self._entities.skills[name] for name in seed_data.SKILL_PREREQUISITES.get(skill.name, [])
            ]
            payload = skill.model_copy(
                update={"sport_id": sport_id, "prerequisites": prerequisites, "created_by": admin_user_id}
            )
            created = (await self.client.create(Collections.SKILLS, payload)).unwrap()
            self._entities.skills[skill.name] = created["id"]
            (await self.client.increment_field(Collections.SPORTS, sport_id, "skillsCount")).unwrap()
        return len(seed_data.SAMPLE_SKILLS)

    async def _create_quizzes(self, admin_user_id: str) -> int:
        sport_id = self._entities.sports[seed_data.SKILLS_SPORT]
        for quiz in seed_data.SAMPLE_QUIZZES:
            payload = quiz.model_copy(
                update={
                    "skill_id": self._entities.skills[seed_data.QUIZ_SKILLS[quiz.title]],
                    "sport_id": sport_id,
                    "created_by": admin_user_id,
                }
            )
            created = (await self.client.create(Collections.QUIZZES, payload)).unwrap()
            self._entities.quizzes[quiz.title] = created["id"]
        return len(seed_data.SAMPLE_QUIZZES)

    async def _create_questions(self) -> int:
        for question, quiz_title in zip(seed_data.SAMPLE_QUIZ_QUESTIONS, seed_data.QUESTION_QUIZZES):
            payload = question.model_copy(update={"quiz_id": self._entities.quizzes[quiz_title]})
            (await self.client.create(Collections.QUIZ_QUESTIONS, payload)).unwrap()
        return len(seed_data.SAMPLE_QUIZ_QUESTIONS)

    async def _create_achievements(self) -> int:
        sport_id = await self._find_sport_id(seed_data.SKILLS_SPORT)
        for achievement in seed_data.SAMPLE_ACHIEVEMENTS:
            payload = _wire_achievement(achievement, sport_id)
            created = (await self.client.create(Collections.ACHIEVEMENTS, payload)).unwrap()
            self._entities.achievements[achievement.name] = created["id"]
        return len(seed_data.SAMPLE_ACHIEVEMENTS)

    async def _create_app_settings(self, admin_user_id: str) -> Dict[str, Any]:
        payload = seed_data.SAMPLE_APP_SETTINGS.model_copy(update={"updated_by": admin_user_id})
        return (await self.client.create(Collections.APP_SETTINGS, payload)).unwrap()

    async def _find_sport_id(self, name: str) -> Optional[str]:
        """Sport id from this run's map, falling back to a lookup by name."""
        if name in self._entities.sports:
            return self._entities.sports[name]
        page = (
            await self.client.query(
                Collections.SPORTS, QueryOptions(where=[("name", "==", name)], limit=1), use_cache=False
            )
        ).unwrap()
        return page.items[0]["id"] if page.items else None

    # ------------------------------------------------------------------
    # Individual seeders
    # ------------------------------------------------------------------

    async def seed_sports(self, admin_user_id: str, include_additional: bool = False) -> Result[Dict[str, int]]:
        try:
            created = await self._create_sports(admin_user_id, include_additional)
        except StoreError as exc:
            return self._fail(ErrorCode.SPORTS_SEEDING_FAILED, "Failed to seed sports", exc)
        return Result.ok({"created": created})

    async def seed_achievements(self) -> Result[Dict[str, int]]:
        try:
            created = await self._create_achievements()
        except StoreError as exc:
            return self._fail(ErrorCode.ACHIEVEMENTS_SEEDING_FAILED, "Failed to seed achievements", exc)
        return Result.ok({"created": created})

    async def create_app_settings(self, admin_user_id: str) -> Result[Dict[str, Any]]:
        try:
            created = await self._create_app_settings(admin_user_id)
        except StoreError as exc:
            return self._fail(ErrorCode.APP_SETTINGS_CREATION_FAILED, "Failed to create app settings", exc)
        return Result.ok(created)

    # ------------------------------------------------------------------
    # Maintenance and inspection
    # ------------------------------------------------------------------

    async def clear_all_data(self) -> Result[Dict[str, int]]:
        """
        Delete every document of the managed collections, one collection at a time.

        Each collection is drained page by page (`SEED_CLEAR_PAGE_SIZE`) with
        batch deletes; a failure stops the run and leaves later collections
        untouched. Returns the number of deleted documents per collection.
        """
        deleted: Dict[str, int] = {}
        try:
            for collection in MANAGED_COLLECTIONS:
                deleted[collection] = await self._clear_collection(collection)
        except StoreError as exc:
            return self._fail(ErrorCode.CLEAR_DATA_FAILED, "Failed to clear data", exc, deleted=deleted)
        self._entities = SeededEntityMap()
        self._log.info("Cleared seeded collections", extra={"deleted": deleted})
        return Result.ok(deleted)

    async def _clear_collection(self, collection: str) -> int:
        removed = 0
        while True:
            page = (
                await self.client.query(collection, QueryOptions(limit=self.clear_page_size), use_cache=False)
            ).unwrap()
            if not page.items:
                return removed
            operations = [BatchOperation.delete(collection, item["id"]) for item in page.items]
            for chunk in _chunks(operations, self.client.batch_max_operations):
                (await self.client.batch_write(chunk)).unwrap()
            removed += len(operations)

    async def check_seeded_data(self) -> Result[SeedCheckReport]:
        counts: Dict[str, int] = {}
        try:
            for collection in MANAGED_COLLECTIONS:
                counts[collection] = (await self.client.count(collection)).unwrap()
        except StoreError as exc:
            return self._fail(ErrorCode.CHECK_DATA_FAILED, "Failed to check seeded data", exc)

        report = SeedCheckReport(
            sports=counts[Collections.SPORTS],
            skills=counts[Collections.SKILLS],
            quizzes=counts[Collections.QUIZZES],
            questions=counts[Collections.QUIZ_QUESTIONS],
            achievements=counts[Collections.ACHIEVEMENTS],
            has_app_settings=counts[Collections.APP_SETTINGS] > 0,
            is_empty=not (counts[Collections.SPORTS] or counts[Collections.SKILLS] or counts[Collections.QUIZZES]),
        )
        return Result.ok(report)

    def get_seeded_data_mappings(self) -> SeededEntityMap:
        """Name -> id maps from the most recent seeding run in this process."""
        return self._entities.model_copy(deep=True)

    async def validate_data_integrity(self) -> Result[IntegrityReport]:
        """Check skill, quiz and question references against the ids that actually exist."""
        try:
            sports = await self._read_all(Collections.SPORTS)
            skills = await self._read_all(Collections.SKILLS)
            quizzes = await self._read_all(Collections.QUIZZES)
            questions = await self._read_all(Collections.QUIZ_QUESTIONS)
        except StoreError as exc:
            return self._fail(ErrorCode.VALIDATION_FAILED, "Failed to validate data integrity", exc)

        sport_ids = {doc["id"] for doc in sports}
        skill_ids = {doc["id"] for doc in skills}
        quiz_ids = {doc["id"] for doc in quizzes}
        issues: List[str] = []

        for skill in skills:
            if skill.get("sportId") not in sport_ids:
                issues.append(
                    f'Skill "{skill.get("name")}" references non-existent sport ID: {skill.get("sportId")}'
                )
        for quiz in quizzes:
            if quiz.get("skillId") not in skill_ids:
                issues.append(
                    f'Quiz "{quiz.get("title")}" references non-existent skill ID: {quiz.get("skillId")}'
                )
            if quiz.get("sportId") not in sport_ids:
                issues.append(
                    f'Quiz "{quiz.get("title")}" references non-existent sport ID: {quiz.get("sportId")}'
                )
        for question in questions:
            if question.get("quizId") not in quiz_ids:
                issues.append(f'Question references non-existent quiz ID: {question.get("quizId")}')

        if issues:
            self._log.warning("Data integrity issues found", extra={"issues": len(issues)})
        return Result.ok(IntegrityReport(valid=not issues, issues=issues))

    async def _read_all(self, collection: str) -> List[Dict[str, Any]]:
        documents: List[Dict[str, Any]] = []
        cursor = None
        while True:
            page = (
                await self.client.query(
                    collection, QueryOptions(limit=self.clear_page_size, cursor=cursor), use_cache=False
                )
            ).unwrap()
            documents.extend(page.items)
            if not page.has_more:
                return documents
            cursor = page.next_cursor

    def _fail(self, code: str, message: str, error: StoreError, **details: Any) -> Result[Any]:
        self._log.error(message, extra={"code": code, "error": str(error), "cause": error.code})
        return Result.fail(
            code=code,
            message=message,
            details={"error": str(error), "cause": error.code, **details},
            retryable=error.retryable,
        )


def _wire_achievement(achievement: Achievement, sport_id: Optional[str]) -> Achievement:
    """Fill an empty `criteria.sportId` with the seeded sport's id (or drop it when unknown)."""
    criteria = dict(achievement.criteria)
    if criteria.get("sportId") == "":
        if sport_id:
            criteria["sportId"] = sport_id
        else:
            criteria.pop("sportId")
    return achievement.model_copy(update={"criteria": criteria})


def _chunks(items: Sequence[BatchOperation], size: int) -> List[Sequence[BatchOperation]]:
    return [items[start : start + size] for start in range(0, len(items), size)]


__all__ = [
    "IntegrityReport",
    "MANAGED_COLLECTIONS",
    "SeedCheckReport",
    "SeedLoader",
    "SeedSummary",
    "SeededEntityMap",
]
