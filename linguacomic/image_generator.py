"""
LinguaComic — Image Generator.

Generates panel and flashcard illustrations using Flux Kontext Pro via the
fal.ai REST API. Uses queue-based async flow: submit → poll → fetch.

Each call is independent (no reference chaining), so any number of calls
can run concurrently.
"""

import asyncio
import base64
import logging
from typing import Optional

import httpx

from linguacomic.config import AppConfig, load_config
from linguacomic.errors import ImageGenerationError

logger = logging.getLogger(__name__)

FAL_API_BASE = "https://queue.fal.run"

# Shared visual style for every illustration
STYLE_PREFIX = (
    "Manga style illustration, black and white ink style or soft colored anime style, "
    "educational context. "
)


class ImageGenerator:
    """Generates illustrations via fal.ai."""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or load_config()
        self.api_key = self.config.fal_api_key
        if not self.api_key:
            logger.warning("FAL_API_KEY not set, image generation will fail")

    def _headers(self) -> dict:
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    async def generate(self, prompt: str) -> str:
        """
        Generate a single illustration.

        Args:
            prompt: Visual description from the analysis step

        Returns:
            Image URL, or a data: URL when inline_images is enabled

        Raises:
            ImageGenerationError if no image comes back
        """
        final_prompt = STYLE_PREFIX + prompt
        model = self.config.image_model

        # Fresh client per call, bound to the running loop
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(300.0, connect=30.0),
            headers=self._headers(),
        ) as client:
            payload = {
                "prompt": final_prompt,
                "num_images": 1,
                "guidance_scale": 3.5,
                "safety_tolerance": "2",
                "output_format": "png",
            }

            response = await client.post(f"{FAL_API_BASE}/{model}", json=payload)
            if response.status_code != 200:
                raise ImageGenerationError(
                    f"fal.ai submit failed ({response.status_code}): {response.text[:500]}"
                )

            result_data = response.json()

            # Queue-based: poll when we only got a request_id back
            if "request_id" in result_data and "images" not in result_data:
                result_data = await self._poll_result(
                    client,
                    request_id=result_data["request_id"],
                    model=model,
                    status_url=result_data.get("status_url", ""),
                    response_url=result_data.get("response_url", ""),
                )

            images = result_data.get("images", [])
            if not images:
                raise ImageGenerationError(f"No images in fal.ai response: {str(result_data)[:300]}")

            image_url = images[0].get("url", "")
            if not image_url:
                raise ImageGenerationError(f"No image URL in response: {images[0]}")

            if self.config.inline_images:
                return await self._download_as_data_url(client, image_url)
            return image_url

    async def _poll_result(
        self,
        client: httpx.AsyncClient,
        request_id: str,
        model: str,
        status_url: str = "",
        response_url: str = "",
        max_wait: int = 300,
    ) -> dict:
        """Poll fal.ai queue for result."""
        if not status_url:
            status_url = f"{FAL_API_BASE}/{model}/requests/{request_id}/status"
        if not response_url:
            response_url = f"{FAL_API_BASE}/{model}/requests/{request_id}"

        elapsed = 0
        interval = 2

        while elapsed < max_wait:
            await asyncio.sleep(interval)
            elapsed += interval

            response = await client.get(status_url)
            if response.status_code != 200:
                logger.warning(f"Poll status check failed: {response.status_code}")
                continue

            state = response.json().get("status", "")

            if state == "COMPLETED":
                result_response = await client.get(response_url)
                if result_response.status_code == 200:
                    return result_response.json()
                raise ImageGenerationError(f"Failed to fetch result: {result_response.status_code}")

            elif state in ("FAILED", "CANCELLED"):
                raise ImageGenerationError(f"fal.ai generation failed: {state}")

            logger.debug(f"fal.ai status: {state} ({elapsed}s elapsed)")

            # Back off polling interval gradually
            if elapsed > 30:
                interval = 5

        raise ImageGenerationError(f"fal.ai generation timed out after {max_wait}s")

    async def _download_as_data_url(self, client: httpx.AsyncClient, url: str) -> str:
        """Download an image and encode it as a data: URL."""
        response = await client.get(url)
        if response.status_code != 200:
            raise ImageGenerationError(f"Image download failed ({response.status_code})")

        mime_type = response.headers.get("content-type", "image/png").split(";")[0]
        encoded = base64.b64encode(response.content).decode("ascii")
        logger.info(f"Image inlined ({len(response.content)} bytes)")
        return f"data:{mime_type};base64,{encoded}"
