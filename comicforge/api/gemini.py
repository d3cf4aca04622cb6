"""
Gemini Image Provider
=====================

Direct integration with the Gemini ``generateContent`` API for image
output.

One call sends the prompt text followed by each reference image as an
``inlineData`` part; the generated image comes back as the first
``inlineData`` part of the first candidate.
"""

import logging
from typing import Optional, List, Dict, Any, Sequence

import httpx

from .base import BaseImageProvider
from .factory import register_provider
from ..core.exceptions import TransientGenerationFailure, ValidationError
from ..core.security import redact_api_key
from ..utils.image_utils import ImageBlob

logger = logging.getLogger(__name__)


@register_provider("gemini")
class GeminiImageProvider(BaseImageProvider):
    """
    Gemini image generation provider.

    Every failure of a single call (transport error, non-2xx status,
    unparseable body, or a response with no image) is reported as a
    :class:`TransientGenerationFailure` so the base class retries it.
    """

    @property
    def provider_name(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return "gemini-2.5-flash-image-preview"

    @property
    def env_key_name(self) -> str:
        return "GEMINI_API_KEY"

    def _get_default_base_url(self) -> str:
        return "https://generativelanguage.googleapis.com/v1beta"

    def _get_headers(self) -> Dict[str, str]:
        """Gemini takes the API key as a query param, not a header."""
        return {
            "Content-Type": "application/json",
        }

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    # -------------------------------------------------------------------------
    # Single attempt
    # -------------------------------------------------------------------------

    async def _make_generation_request(
        self,
        prompt: str,
        references: Sequence[ImageBlob],
    ) -> ImageBlob:
        payload = self.build_payload(prompt, references)
        params = {"key": self.api_key} if self.api_key else None

        logger.debug(
            f"POST {self.model}:generateContent "
            f"(prompt={len(prompt)} chars, references={len(references)})"
        )

        client = await self._get_client()
        try:
            response = await client.post(self.endpoint, json=payload, params=params)
        except httpx.HTTPError as e:
            raise TransientGenerationFailure(
                f"Request failed: {redact_api_key(str(e))}",
                provider=self.provider_name,
            ) from None

        if response.status_code < 200 or response.status_code >= 300:
            raise TransientGenerationFailure(
                f"API error: {response.status_code}",
                provider=self.provider_name,
                status_code=response.status_code,
                response_body=redact_api_key(response.text[:500]),
            )

        try:
            data = response.json()
        except ValueError:
            raise TransientGenerationFailure(
                "Response body is not JSON",
                provider=self.provider_name,
                status_code=response.status_code,
                response_body=response.text[:500],
            ) from None

        return self.parse_response(data)

    # -------------------------------------------------------------------------
    # Wire format
    # -------------------------------------------------------------------------

    @staticmethod
    def build_payload(prompt: str, references: Sequence[ImageBlob]) -> Dict[str, Any]:
        """Build the ``generateContent`` request body."""
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        for ref in references:
            parts.append({
                "inlineData": {
                    "mimeType": ref.mime_type,
                    "data": ref.to_base64(),
                }
            })

        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
            },
        }

    def parse_response(self, data: Any) -> ImageBlob:
        """
        Extract the generated image from a ``generateContent`` response.

        Raises:
            TransientGenerationFailure: If the response carries no image
        """
        inline = self._find_inline_data(data)
        if inline is None:
            reason = self._finish_reason(data)
            raise TransientGenerationFailure(
                "No image in response" + (f" (finishReason={reason})" if reason else ""),
                provider=self.provider_name,
            )
        if not isinstance(inline["data"], str):
            raise TransientGenerationFailure(
                f"Malformed image payload: data is {type(inline['data']).__name__}",
                provider=self.provider_name,
            )
        mime_type = inline.get("mimeType")
        if not isinstance(mime_type, str):
            mime_type = None

        try:
            return ImageBlob.from_base64(inline["data"], mime_type=mime_type)
        except ValidationError as e:
            raise TransientGenerationFailure(
                f"Malformed image payload: {e}",
                provider=self.provider_name,
            ) from None

    @staticmethod
    def _find_inline_data(data: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(data, dict):
            return None
        candidates = data.get("candidates")
        if not isinstance(candidates, list):
            return None
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            content = candidate.get("content")
            if not isinstance(content, dict) or not isinstance(content.get("parts"), list):
                continue
            for part in content["parts"]:
                if not isinstance(part, dict):
                    continue
                inline = part.get("inlineData")
                if isinstance(inline, dict) and inline.get("data"):
                    return inline
        return None

    @staticmethod
    def _finish_reason(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        candidates = data.get("candidates") or []
        if candidates and isinstance(candidates[0], dict):
            return candidates[0].get("finishReason")
        return None
