"""
Sports and skills service built on `DocumentStoreClient`.

The client is injected, so one instance created at process start can be
shared by every service (and replaced by a memory-backed one in tests).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from coachstore.client import DocumentStoreClient, Payload
from coachstore.domain.models import Collections, Record, Skill, Sport
from coachstore.domain.results import QueryOptions, QueryPage, Result
from coachstore.errors import ErrorCode
from coachstore.utils.logging import get_logger

SPORT_METADATA_DEFAULTS: Dict[str, Any] = {
    "totalEnrollments": 0,
    "totalCompletions": 0,
    "averageRating": 0,
    "totalRatings": 0,
    "averageCompletionTime": 0,
}

_ACTIVE = ("isActive", "==", True)


def _fields(data: Payload) -> Dict[str, Any]:
    if isinstance(data, Record):
        return data.to_document()
    return dict(data)


def validate_sport_data(data: Dict[str, Any]) -> List[str]:
    """Validation errors for a (partial) camelCase sport payload; empty when valid."""
    errors: List[str] = []
    name = data.get("name")
    if name is not None and len(name) < 2:
        errors.append("Sport name must be at least 2 characters long")
    estimated = data.get("estimatedTimeToComplete")
    if estimated is not None and estimated < 1:
        errors.append("Estimated time to complete must be at least 1 hour")
    order = data.get("order")
    if order is not None and order < 0:
        errors.append("Order must be a positive number")
    if len(data.get("prerequisites") or []) > 5:
        errors.append("Cannot have more than 5 prerequisites")
    if len(data.get("tags") or []) > 10:
        errors.append("Cannot have more than 10 tags")
    return errors


class SportsService:
    """
    CRUD for sports and their skills.

    Parameters
    ----------
    client : DocumentStoreClient
        Shared store client.
    logger : logging.Logger, optional
        Injected logger; defaults to this module's logger.
    """

    def __init__(self, client: DocumentStoreClient, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self._log = logger or get_logger(__name__)

    # ------------------------------------------------------------------
    # Sports
    # ------------------------------------------------------------------

    async def create_sport(self, sport: Union[Sport, Dict[str, Any]]) -> Result[Dict[str, Any]]:
        data = _fields(sport)
        errors = validate_sport_data(data)
        if errors:
            self._log.warning("Sport creation failed validation", extra={"errors": errors})
            return Result.fail(code=ErrorCode.VALIDATION_ERROR, message=", ".join(errors), details={"errors": errors})

        data.update({"skillsCount": 0, "metadata": dict(SPORT_METADATA_DEFAULTS)})
        data.setdefault("isActive", True)
        result = await self.client.create(Collections.SPORTS, data)
        if result.success:
            self._log.info("Sport created", extra={"sport_id": result.data["id"], "sport": data.get("name")})
        return result

    async def get_sport(self, sport_id: str) -> Result[Optional[Sport]]:
        result = await self.client.get_by_id(Collections.SPORTS, sport_id, model=Sport)
        if result.success and result.data is None:
            self._log.warning("Sport not found", extra={"sport_id": sport_id})
        return result

    async def update_sport(self, sport_id: str, updates: Dict[str, Any]) -> Result[Dict[str, Any]]:
        """Partial update; `skillsCount` and `metadata` are maintained by the service and ignored here."""
        data = {key: value for key, value in updates.items() if key not in ("skillsCount", "metadata")}
        errors = validate_sport_data(data)
        if errors:
            self._log.warning("Sport update failed validation", extra={"sport_id": sport_id, "errors": errors})
            return Result.fail(code=ErrorCode.VALIDATION_ERROR, message=", ".join(errors), details={"errors": errors})
        return await self.client.update(Collections.SPORTS, sport_id, data)

    async def delete_sport(self, sport_id: str) -> Result[None]:
        """Delete a sport that has no active skills left."""
        skills = await self.get_skills_by_sport(sport_id, limit=1)
        if not skills.success:
            return Result.from_error(skills.error)
        if skills.data.total > 0:
            return Result.fail(
                code=ErrorCode.SPORT_HAS_SKILLS,
                message="Cannot delete sport that has skills. Delete skills first.",
                details={"sportId": sport_id, "skills": skills.data.total},
            )
        return await self.client.delete(Collections.SPORTS, sport_id)

    async def get_all_sports(
        self,
        difficulty: Optional[Sequence[str]] = None,
        categories: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Result[QueryPage]:
        """Active sports, featured first, then by `order` and name."""
        where: List[Any] = [_ACTIVE]
        if difficulty:
            where.append(("difficulty", "in", list(difficulty)))
        if categories:
            where.append(("category", "in", list(categories)))
        options = QueryOptions(
            where=where,
            order_by=[("isFeatured", "desc"), ("order", "asc"), ("name", "asc")],
            limit=limit,
            cursor=cursor,
        )
        return await self.client.query(Collections.SPORTS, options)

    async def get_featured_sports(self, limit: int = 6) -> Result[QueryPage]:
        options = QueryOptions(
            where=[_ACTIVE, ("isFeatured", "==", True)],
            order_by=[("order", "asc")],
            limit=limit,
        )
        return await self.client.query(Collections.SPORTS, options)

    # ------------------------------------------------------------------
    # Skills
    # ------------------------------------------------------------------

    async def create_skill(self, skill: Union[Skill, Dict[str, Any]]) -> Result[Dict[str, Any]]:
        """Create a skill and bump its sport's `skillsCount`."""
        data = _fields(skill)
        if not data.get("sportId"):
            return Result.fail(code=ErrorCode.VALIDATION_ERROR, message="Skill requires a sportId")
        data.setdefault("isActive", True)
        data["metadata"] = {
            "totalCompletions": 0,
            "averageCompletionTime": data.get("estimatedTimeToComplete", 0),
            "averageRating": 0,
            "totalRatings": 0,
            "difficulty": data.get("difficulty", "introduction"),
        }
        result = await self.client.create(Collections.SKILLS, data)
        if result.success:
            counted = await self.client.increment_field(Collections.SPORTS, data["sportId"], "skillsCount")
            if not counted.success:
                self._log.warning(
                    "Could not increment skillsCount",
                    extra={"sport_id": data["sportId"], "code": counted.error.code},
                )
        return result

    async def get_skill(self, skill_id: str) -> Result[Optional[Skill]]:
        return await self.client.get_by_id(Collections.SKILLS, skill_id, model=Skill)

    async def delete_skill(self, skill_id: str) -> Result[None]:
        """Delete a skill and decrement its sport's `skillsCount`."""
        found = await self.get_skill(skill_id)
        if not found.success or found.data is None:
            return Result.fail(code=ErrorCode.SKILL_NOT_FOUND, message="Skill not found", details={"skillId": skill_id})

        result = await self.client.delete(Collections.SKILLS, skill_id)
        if result.success and found.data.sport_id:
            counted = await self.client.increment_field(
                Collections.SPORTS, found.data.sport_id, "skillsCount", delta=-1
            )
            if not counted.success:
                self._log.warning(
                    "Could not decrement skillsCount",
                    extra={"sport_id": found.data.sport_id, "code": counted.error.code},
                )
        return result

    async def get_skills_by_sport(self, sport_id: str, limit: Optional[int] = None) -> Result[QueryPage]:
        options = QueryOptions(
            where=[("sportId", "==", sport_id), _ACTIVE],
            order_by=[("order", "asc")],
            limit=limit,
        )
        return await self.client.query(Collections.SKILLS, options)

    async def get_skill_prerequisites(self, skill_id: str) -> Result[List[Skill]]:
        """Prerequisite skills that still exist, in the order they are listed."""
        found = await self.get_skill(skill_id)
        if not found.success or found.data is None:
            return Result.fail(code=ErrorCode.SKILL_NOT_FOUND, message="Skill not found", details={"skillId": skill_id})

        prerequisites: List[Skill] = []
        for prerequisite_id in found.data.prerequisites:
            result = await self.get_skill(prerequisite_id)
            if result.success and result.data is not None:
                prerequisites.append(result.data)
        return Result.ok(prerequisites)


__all__ = ["SPORT_METADATA_DEFAULTS", "SportsService", "validate_sport_data"]
