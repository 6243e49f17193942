"""
Illustrator Agent: generate the post image and upload it.

The image model is asked for TEXT and IMAGE modalities. ``generate()``
returns the first inline image and raises ``ImageGenerationError`` on a
text-only answer or an API error. ``run()`` uploads that image to the
Supabase storage bucket under ``<slug>-<epoch millis>.<ext>`` (extension
from the image MIME type) with upsert and returns its public URL.
Generation and upload failures both yield ``None``: the post is published
without an image.
"""

import logging
from typing import Optional

from autoblog.config import Settings
from autoblog.database import SupabaseDB
from autoblog.exceptions import ImageGenerationError
from autoblog.text_utils import image_file_name
from autoblog.tools.gemini_client import GeminiClient, GeneratedImage
from autoblog.utils import epoch_millis


class IllustratorAgent:
    """Create and host the featured image for a post.

    Args:
        gemini: Gemini client (``generate_image``).
        database: Storage access (``upload_image``).
        settings: ``image_bucket`` names the storage bucket.
    """

    def __init__(
        self, gemini: GeminiClient, database: SupabaseDB, settings: Settings
    ) -> None:
        self.gemini = gemini
        self.database = database
        self.settings = settings
        self.logger = logging.getLogger("Illustrator")

    async def generate(self, image_prompt: str) -> GeneratedImage:
        """Return the generated image.

        Raises:
            ImageGenerationError: When the call fails or no image comes back.
        """
        try:
            image = await self.gemini.generate_image(image_prompt)
        except Exception as exc:
            raise ImageGenerationError(f"Image model call failed: {exc}") from exc
        if image.data is None:
            raise ImageGenerationError(
                f"Image model returned no image. Text: {image.text or '(none)'}"
            )
        return image

    async def run(self, image_prompt: str, title: str) -> Optional[str]:
        """Return the public image URL, or ``None`` when there is no image."""
        if not image_prompt or not image_prompt.strip():
            self.logger.warning("No image prompt, skipping image generation")
            return None

        try:
            image = await self.generate(image_prompt)
        except ImageGenerationError as exc:
            self.logger.warning("%s", exc)
            return None

        path = image_file_name(title, epoch_millis(), image.mime_type)
        try:
            url = await self.database.upload_image(
                path,
                image.data,
                bucket=self.settings.image_bucket,
                content_type=image.mime_type,
            )
        except Exception as exc:
            self.logger.error("Image upload failed for %s: %s", path, exc)
            return None
        self.logger.info("Image uploaded: %s (%d bytes)", path, len(image.data))
        return url
