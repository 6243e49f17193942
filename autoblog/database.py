"""
Unified async database client for the content store and object storage.

ALL Supabase operations go through the SupabaseDB class defined here.
No direct Supabase calls should appear anywhere else in the codebase.

Usage::

    from autoblog.database import SupabaseDB

    db = await SupabaseDB.create()
    titles = await db.get_existing_post_titles()
    await db.save_post(record)
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from postgrest.exceptions import APIError
from supabase import AsyncClient, create_async_client

from autoblog.exceptions import DatabaseError, DuplicateSlugError, ValidationError
from autoblog.models import TOOL_POST_CATEGORY, Category, PostRecord

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


# =============================================================================
# VALIDATION HELPERS
# =============================================================================


def validate_not_empty(value: Any, name: str) -> None:
    """Validate that *value* is not ``None`` or an empty string.

    Raises:
        ValidationError: If *value* is ``None`` or a blank string.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{name} cannot be empty string")


def validate_positive(value: Union[int, float], name: str) -> None:
    """Validate that *value* is strictly positive (> 0).

    Raises:
        ValidationError: If *value* is ``None`` or not positive.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SupabaseConfig:
    """Supabase configuration loaded from environment variables.

    Attributes:
        url: The Supabase project URL (``SUPABASE_URL`` or
            ``NEXT_PUBLIC_SUPABASE_URL``).
        key: The service-role key (``SUPABASE_SERVICE_KEY`` or
            ``SUPABASE_SERVICE_ROLE_KEY``).
    """

    url: str
    key: str  # service_role key for server-side inserts and uploads

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Create a config instance from environment variables.

        Raises:
            ValueError: If the URL or the key is missing under every alias.
        """
        url = os.environ.get("SUPABASE_URL") or os.environ.get(
            "NEXT_PUBLIC_SUPABASE_URL"
        )
        key = os.environ.get("SUPABASE_SERVICE_KEY") or os.environ.get(
            "SUPABASE_SERVICE_ROLE_KEY"
        )

        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set"
            )

        return cls(url=url, key=key)


# =============================================================================
# SUPABASE DATABASE CLIENT
# =============================================================================


class SupabaseDB:
    """Unified **async** client for posts, categories, images and run logs.

    **Important:** Use the :meth:`create` factory method instead of
    ``__init__`` directly; the underlying async client requires an
    ``await`` during initialisation. Tests pass a mock client to
    ``__init__``.
    """

    def __init__(self, client: AsyncClient) -> None:
        """Private constructor.  Use :meth:`create` factory method."""
        self.client = client

    @classmethod
    async def create(
        cls, config: Optional[SupabaseConfig] = None
    ) -> "SupabaseDB":
        """Factory method to create an async :class:`SupabaseDB` instance.

        Args:
            config: Optional configuration.  When ``None``,
                :meth:`SupabaseConfig.from_env` is used.
        """
        config = config or SupabaseConfig.from_env()
        client = await create_async_client(config.url, config.key)
        return cls(client)

    # -----------------------------------------------------------------
    # POSTS
    # -----------------------------------------------------------------

    async def save_post(self, record: PostRecord) -> Dict[str, Any]:
        """Insert a new post row.

        Args:
            record: The fully assembled post.

        Returns:
            The inserted row.

        Raises:
            ValidationError: When title, slug or content is empty.
            DuplicateSlugError: When a post with the same slug exists.
            DatabaseError: On any other insert failure.
        """
        validate_not_empty(record.title, "title")
        validate_not_empty(record.slug, "slug")
        validate_not_empty(record.content, "content")

        try:
            result = await (
                self.client.table("posts").insert(record.to_row()).execute()
            )
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateSlugError(record.slug) from e
            raise DatabaseError(f"Failed to insert post '{record.slug}': {e}") from e

        if not result.data:
            raise DatabaseError("Insert succeeded but returned no data")
        logger.info("Post saved: slug=%s", record.slug)
        return result.data[0]

    async def get_existing_post_titles(self, limit: int = 50) -> List[str]:
        """Titles of the most recent posts, newest first.

        Args:
            limit: Maximum number of titles (must be > 0).
        """
        validate_positive(limit, "limit")

        result = await (
            self.client.table("posts")
            .select("title")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [row["title"] for row in (result.data or []) if row.get("title")]

    async def get_previously_used_tools(self) -> List[str]:
        """Tool names already covered by "AI Tool of the Day" posts."""
        result = await (
            self.client.table("posts")
            .select("tool_name")
            .eq("category", TOOL_POST_CATEGORY)
            .execute()
        )
        names: List[str] = []
        for row in result.data or []:
            name = row.get("tool_name")
            if name and name not in names:
                names.append(name)
        return names

    # -----------------------------------------------------------------
    # CATEGORIES
    # -----------------------------------------------------------------

    async def get_all_categories(self) -> List[Category]:
        """All rows of ``post_categories`` as :class:`Category`."""
        result = await (
            self.client.table("post_categories").select("id, title").execute()
        )
        return [
            Category(id=int(row["id"]), title=row["title"])
            for row in (result.data or [])
        ]

    async def get_category_post_counts(self) -> List[Tuple[str, int]]:
        """``(category title, post count)`` pairs, least covered first.

        A category whose count query fails is reported with ``0`` so one
        bad row does not hide the others.
        """
        categories = await self.get_all_categories()
        counts: List[Tuple[str, int]] = []
        for category in categories:
            try:
                result = await (
                    self.client.table("posts")
                    .select("id", count="exact")
                    .eq("category", category.id)
                    .execute()
                )
                counts.append((category.title, result.count or 0))
            except APIError as e:
                logger.warning(
                    "Post count failed for category %s (%d): %s",
                    category.title,
                    category.id,
                    e,
                )
                counts.append((category.title, 0))

        counts.sort(key=lambda pair: pair[1])
        return counts

    # -----------------------------------------------------------------
    # OBJECT STORAGE
    # -----------------------------------------------------------------

    async def upload_image(
        self,
        path: str,
        data: bytes,
        bucket: str = "blogs",
        content_type: str = "image/png",
    ) -> str:
        """Upload image bytes (overwriting any object at *path*).

        Returns:
            The public URL of the uploaded object.
        """
        validate_not_empty(path, "path")
        if not data:
            raise ValidationError("image data cannot be empty")

        storage = self.client.storage.from_(bucket)
        await storage.upload(
            path=path,
            file=data,
            file_options={"content-type": content_type, "upsert": "true"},
        )
        url = await storage.get_public_url(path)
        logger.info("Image uploaded: %s/%s", bucket, path)
        return url

    # -----------------------------------------------------------------
    # PIPELINE LOGS
    # -----------------------------------------------------------------

    async def save_pipeline_log(self, log_entry: Dict[str, Any]) -> None:
        """Mirror a structured log entry into ``pipeline_logs``.

        Raises:
            ValidationError: When ``timestamp`` or ``level`` is missing.
        """
        if not log_entry:
            raise ValidationError("log_entry cannot be None or empty")
        if "timestamp" not in log_entry or "level" not in log_entry:
            raise ValidationError(
                "log_entry must have 'timestamp' and 'level'"
            )

        await self.client.table("pipeline_logs").insert(log_entry).execute()
