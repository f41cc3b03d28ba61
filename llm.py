"""Assist operations backed by an OpenAI-compatible chat-completions API.

Each operation builds one prompt, makes one request and parses the reply.
There is no retrying and no caching; callers decide what a failure means.
"""

import json
import logging
import re
from typing import Annotated, Any, Dict, List, Optional

import httpx
from fastapi import Depends
from pydantic import ValidationError

import config
from schemas import ImageAnalysis, ItemFeatures, ModerationResult

logger = logging.getLogger(__name__)

MIN_POINTS = 10
MAX_POINTS = 500
DEFAULT_POINTS = 50

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_FIRST_INT = re.compile(r"-?\d+")


class AssistError(Exception):
    """The LLM call failed or returned something we could not parse."""


def parse_json_reply(content: str) -> Any:
    """
    Pull a JSON value out of a model reply.
    Accepts a bare JSON document or one wrapped in a ```json fence.
    """
    text = (content or "").strip()
    match = _FENCED_JSON.search(text)
    if match:
        text = match.group(1)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise AssistError(f"Reply is not valid JSON: {exc}") from exc


def clamp_points(value: Optional[int]) -> int:
    if not value:
        return DEFAULT_POINTS
    return max(MIN_POINTS, min(MAX_POINTS, value))


class AssistService:
    def __init__(
        self,
        client: httpx.Client,
        api_key: str,
        text_model: str = config.AI_TEXT_MODEL,
        vision_model: str = config.AI_VISION_MODEL,
    ):
        self.client = client
        self.api_key = api_key
        self.text_model = text_model
        self.vision_model = vision_model

    def _complete(
        self,
        messages: List[Dict[str, Any]],
        max_tokens: int,
        model: Optional[str] = None,
    ) -> str:
        if not self.api_key:
            raise AssistError("AI service is not configured")

        body = {
            "model": model or self.text_model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            resp = self.client.post("/chat/completions", headers=headers, json=body)
            resp.raise_for_status()
            payload = resp.json()
            content = payload["choices"][0]["message"]["content"]
        except httpx.HTTPError as exc:
            raise AssistError(f"AI request failed: {exc}") from exc
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AssistError(f"Unexpected AI response shape: {exc}") from exc

        if not isinstance(content, str):
            raise AssistError("AI response had no text content")
        return content.strip()

    def analyze_image(self, image_url: str) -> ImageAnalysis:
        prompt = (
            "Analyze this clothing item image and provide:\n"
            "1. Category (e.g., tops, bottoms, dresses, outerwear, shoes, accessories)\n"
            "2. Type (e.g., t-shirt, jeans, dress, jacket, sneakers, bag)\n"
            "3. Color(s)\n"
            "4. Style (e.g., casual, formal, vintage, sporty)\n"
            "5. Material (if visible)\n"
            "6. Condition assessment (new, like_new, good, fair, poor)\n"
            "7. Relevant tags\n\n"
            "Respond in JSON format:\n"
            '{"category": "string", "type": "string", "colors": ["string"], '
            '"style": "string", "material": "string", "condition": "string", '
            '"tags": ["string"]}'
        )
        content = self._complete(
            [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
            max_tokens=500,
            model=self.vision_model,
        )
        data = parse_json_reply(content)
        try:
            return ImageAnalysis.model_validate(data)
        except ValidationError as exc:
            raise AssistError(f"Image analysis has unexpected shape: {exc}") from exc

    def generate_description(self, features: ItemFeatures) -> str:
        content = self._complete(
            [
                {
                    "role": "system",
                    "content": (
                        "You are a fashion expert helping users describe clothing "
                        "items for a sustainable fashion exchange platform. Write "
                        "engaging, accurate descriptions that highlight the item's "
                        "features and appeal."
                    ),
                },
                {
                    "role": "user",
                    "content": (
                        "Generate a compelling description for this clothing item:\n"
                        f"Category: {features.category}\n"
                        f"Type: {features.type}\n"
                        f"Colors: {', '.join(features.colors)}\n"
                        f"Style: {features.style}\n"
                        f"Material: {features.material}\n"
                        f"Condition: {features.condition}\n\n"
                        "Write a 2-3 sentence description that's engaging and accurate."
                    ),
                },
            ],
            max_tokens=150,
        )
        if not content:
            raise AssistError("AI returned an empty description")
        return content

    def suggest_points(self, features: ItemFeatures) -> int:
        """Suggested value in [MIN_POINTS, MAX_POINTS]; DEFAULT_POINTS on any failure."""
        try:
            content = self._complete(
                [
                    {
                        "role": "system",
                        "content": (
                            "You are a fashion expert helping determine fair point "
                            "values for clothing items in a sustainable fashion "
                            "exchange. Consider brand, condition, style, and market "
                            "demand."
                        ),
                    },
                    {
                        "role": "user",
                        "content": (
                            f"Suggest a fair point value ({MIN_POINTS}-{MAX_POINTS} "
                            "points) for this item:\n"
                            f"Category: {features.category}\n"
                            f"Type: {features.type}\n"
                            f"Style: {features.style}\n"
                            f"Condition: {features.condition}\n"
                            f"Brand: {features.brand or 'Unknown'}\n\n"
                            "Respond with just the number."
                        ),
                    },
                ],
                max_tokens=10,
            )
        except AssistError:
            logger.exception("Points suggestion failed, using default")
            return DEFAULT_POINTS

        match = _FIRST_INT.search(content)
        return clamp_points(int(match.group()) if match else None)

    def recommend(self, preferences: Dict[str, Any]) -> List[Any]:
        content = self._complete(
            [
                {
                    "role": "system",
                    "content": (
                        "You are a fashion recommendation system. Based on user "
                        "preferences and behavior, suggest clothing categories and "
                        "styles they might like."
                    ),
                },
                {
                    "role": "user",
                    "content": (
                        "Based on these user preferences, suggest 5 clothing "
                        "categories/types they might be interested in:\n"
                        f"{json.dumps(preferences)}\n\n"
                        "Respond with a JSON array of category/type combinations."
                    ),
                },
            ],
            max_tokens=200,
        )
        data = parse_json_reply(content)
        if not isinstance(data, list):
            raise AssistError("Recommendations reply is not a JSON array")
        return data

    def moderate(self, title: str, description: str) -> ModerationResult:
        content = self._complete(
            [
                {
                    "role": "system",
                    "content": (
                        "You are a content moderator for a clothing exchange "
                        "platform. Check if the content is appropriate and follows "
                        "community guidelines."
                    ),
                },
                {
                    "role": "user",
                    "content": (
                        "Moderate this clothing item content:\n"
                        f"Title: {title}\n"
                        f"Description: {description}\n\n"
                        "Respond with JSON:\n"
                        '{"isAppropriate": boolean, "reason": "string if '
                        'inappropriate", "suggestedChanges": "string if needed"}'
                    ),
                },
            ],
            max_tokens=200,
        )
        data = parse_json_reply(content)
        try:
            return ModerationResult.model_validate(data)
        except ValidationError as exc:
            raise AssistError(f"Moderation reply has unexpected shape: {exc}") from exc

    def extract_tags(self, text: str) -> List[str]:
        content = self._complete(
            [
                {
                    "role": "system",
                    "content": (
                        "Extract relevant fashion tags from the given text. Focus on "
                        "style, color, material, occasion, and brand information."
                    ),
                },
                {
                    "role": "user",
                    "content": (
                        f'Extract relevant tags from this text: "{text}"\n\n'
                        "Respond with a JSON array of tags (strings)."
                    ),
                },
            ],
            max_tokens=100,
        )
        data = parse_json_reply(content)
        if not isinstance(data, list):
            raise AssistError("Tags reply is not a JSON array")
        return [str(tag) for tag in data]


def build_client() -> httpx.Client:
    return httpx.Client(base_url=config.OPENAI_BASE_URL, timeout=config.AI_TIMEOUT_SECONDS)


_service: Optional[AssistService] = None


def get_assist() -> AssistService:
    """FastAPI dependency returning the process-wide assist service."""
    global _service
    if _service is None:
        _service = AssistService(build_client(), config.OPENAI_API_KEY)
    return _service


AssistDep = Annotated[AssistService, Depends(get_assist)]
