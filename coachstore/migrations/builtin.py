"""
The migrations shipped with coachstore.

Each `down()` reverses its `up()`: indexes are dropped, and backfilled fields
are removed again (via DELETE_FIELD) wherever they still hold the default
that `up()` wrote. Values edited after the migration ran are left alone.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Sequence, Tuple

from coachstore.domain.models import Collections
from coachstore.domain.results import BatchOperation, QueryOptions
from coachstore.infrastructure.backend import DELETE_FIELD, get_path, is_missing
from coachstore.migrations.lifecycle import Migration
from coachstore.utils.logging import get_logger

if TYPE_CHECKING:
    from coachstore.client import DocumentStoreClient

logger = get_logger(__name__)

_PAGE_SIZE = 500

INITIAL_INDEXES: Tuple[Tuple[str, str], ...] = (
    (Collections.USERS, "email"),
    (Collections.SPORTS, "category"),
    (Collections.SPORTS, "difficulty"),
    (Collections.SKILLS, "sportId"),
    (Collections.QUIZZES, "skillId"),
    (Collections.QUIZZES, "sportId"),
    (Collections.QUIZ_QUESTIONS, "quizId"),
)

DEFAULT_PREFERENCES: Dict[str, Any] = {
    "notifications": True,
    "theme": "light",
    "language": "en",
    "timezone": "UTC",
    "emailNotifications": {
        "progress": True,
        "quizResults": True,
        "newContent": True,
        "reminders": True,
    },
}

QUIZ_METADATA_DEFAULTS: Dict[str, Any] = {"metadata.passRate": 0, "metadata.averageTimeSpent": 0}

CONTENT_ANALYTICS_DEFAULTS: Dict[str, Any] = {
    "metadata.views": 0,
    "metadata.likes": 0,
    "metadata.shares": 0,
    "metadata.bookmarks": 0,
}


async def all_documents(client: "DocumentStoreClient", collection: str) -> List[Dict[str, Any]]:
    """Every document of a collection, read page by page without the cache."""
    documents: List[Dict[str, Any]] = []
    cursor = None
    while True:
        result = await client.query(collection, QueryOptions(limit=_PAGE_SIZE, cursor=cursor), use_cache=False)
        page = result.unwrap()
        documents.extend(page.items)
        if not page.has_more:
            return documents
        cursor = page.next_cursor


async def write_updates(client: "DocumentStoreClient", operations: Sequence[BatchOperation]) -> int:
    """Commit updates in batches no larger than the client allows."""
    size = client.batch_max_operations
    for start in range(0, len(operations), size):
        result = await client.batch_write(operations[start : start + size])
        result.unwrap()
    return len(operations)


async def backfill(client: "DocumentStoreClient", collection: str, defaults: Dict[str, Any]) -> int:
    """Set each default (dotted path -> value) on documents where the field is missing or null."""
    operations = []
    for document in await all_documents(client, collection):
        patch = {
            field: value
            for field, value in defaults.items()
            if get_path(document, field, default=None) is None
        }
        if patch:
            operations.append(BatchOperation.update(collection, document["id"], patch))
    updated = await write_updates(client, operations)
    logger.info("Backfilled documents", extra={"collection": collection, "updated": updated})
    return updated


async def remove_defaults(client: "DocumentStoreClient", collection: str, defaults: Dict[str, Any]) -> int:
    """Delete each field that still equals the default `backfill` wrote."""
    operations = []
    for document in await all_documents(client, collection):
        patch = {}
        for field, value in defaults.items():
            current = get_path(document, field)
            if not is_missing(current) and current == value:
                patch[field] = DELETE_FIELD
        if patch:
            operations.append(BatchOperation.update(collection, document["id"], patch))
    removed = await write_updates(client, operations)
    logger.info("Removed backfilled fields", extra={"collection": collection, "updated": removed})
    return removed


# -- 001 -------------------------------------------------------------------


async def setup_initial_indexes(client: "DocumentStoreClient") -> None:
    for collection, field in INITIAL_INDEXES:
        await client.backend.create_field_index(collection, field)


async def remove_initial_indexes(client: "DocumentStoreClient") -> None:
    for collection, field in INITIAL_INDEXES:
        await client.backend.drop_field_index(collection, field)


# -- 002 .. 005 -----------------------------------------------------------


async def add_user_preferences(client: "DocumentStoreClient") -> None:
    await backfill(client, Collections.USERS, {"preferences": DEFAULT_PREFERENCES})


async def remove_user_preferences(client: "DocumentStoreClient") -> None:
    await remove_defaults(client, Collections.USERS, {"preferences": DEFAULT_PREFERENCES})


async def update_quiz_metadata(client: "DocumentStoreClient") -> None:
    await backfill(client, Collections.QUIZZES, QUIZ_METADATA_DEFAULTS)


async def revert_quiz_metadata(client: "DocumentStoreClient") -> None:
    await remove_defaults(client, Collections.QUIZZES, QUIZ_METADATA_DEFAULTS)


async def add_achievement_rarity(client: "DocumentStoreClient") -> None:
    await backfill(client, Collections.ACHIEVEMENTS, {"rarity": "common"})


async def remove_achievement_rarity(client: "DocumentStoreClient") -> None:
    await remove_defaults(client, Collections.ACHIEVEMENTS, {"rarity": "common"})


async def add_content_analytics(client: "DocumentStoreClient") -> None:
    await backfill(client, Collections.CONTENT, CONTENT_ANALYTICS_DEFAULTS)


async def remove_content_analytics(client: "DocumentStoreClient") -> None:
    await remove_defaults(client, Collections.CONTENT, CONTENT_ANALYTICS_DEFAULTS)


BUILTIN_MIGRATIONS: Tuple[Migration, ...] = (
    Migration(
        id="001_initial_schema",
        version="1.0.0",
        name="Initial Schema Setup",
        description="Set up initial database collections and indexes",
        up=setup_initial_indexes,
        down=remove_initial_indexes,
    ),
    Migration(
        id="002_add_user_preferences",
        version="1.1.0",
        name="Add User Preferences",
        description="Add preferences field to user documents",
        up=add_user_preferences,
        down=remove_user_preferences,
    ),
    Migration(
        id="003_update_quiz_metadata",
        version="1.2.0",
        name="Update Quiz Metadata",
        description="Add new metadata fields to quiz documents",
        up=update_quiz_metadata,
        down=revert_quiz_metadata,
    ),
    Migration(
        id="004_add_achievement_rarity",
        version="1.3.0",
        name="Add Achievement Rarity",
        description="Add rarity field to achievement documents",
        up=add_achievement_rarity,
        down=remove_achievement_rarity,
    ),
    Migration(
        id="005_add_content_analytics",
        version="1.4.0",
        name="Add Content Analytics",
        description="Add analytics tracking fields to content documents",
        up=add_content_analytics,
        down=remove_content_analytics,
    ),
)


__all__ = [
    "BUILTIN_MIGRATIONS",
    "DEFAULT_PREFERENCES",
    "INITIAL_INDEXES",
    "all_documents",
    "backfill",
    "remove_defaults",
    "write_updates",
]
