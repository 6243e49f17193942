"""
Publisher Agent: persist the assembled post.

``run()`` returns ``True`` when the row was inserted. A slug that already
exists is an expected outcome, logged as a warning and reported as
``False``; any other storage failure is logged as an error and also
reported as ``False``. The last failure is kept on ``last_error`` so the
caller can tell the two apart.
"""

import logging
from typing import Optional

from autoblog.database import SupabaseDB
from autoblog.exceptions import DuplicateSlugError
from autoblog.models import PostRecord


class PublisherAgent:
    """Insert posts into the content store."""

    def __init__(self, database: SupabaseDB) -> None:
        self.database = database
        self.last_error: Optional[Exception] = None
        self.logger = logging.getLogger("Publisher")

    async def run(self, record: PostRecord) -> bool:
        self.last_error = None
        try:
            await self.database.save_post(record)
        except DuplicateSlugError as exc:
            self.last_error = exc
            self.logger.warning(
                "Post '%s' not saved: slug '%s' already exists", record.title, exc.slug
            )
            return False
        except Exception as exc:
            self.last_error = exc
            self.logger.error("Failed to save post '%s': %s", record.slug, exc)
            return False

        self.logger.info(
            "Published '%s' (slug=%s, category=%s, image=%s)",
            record.title,
            record.slug,
            record.category,
            "yes" if record.image_url else "no",
        )
        return True

    @property
    def was_duplicate(self) -> bool:
        return isinstance(self.last_error, DuplicateSlugError)
