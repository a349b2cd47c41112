"""AI-assisted outfit photo tagging.

Sends an outfit photo to an OpenAI vision model and parses the structured
reply: a title, season, occasions, a short description, a color palette
and every visible piece with its category, color and position (percent of
image width/height) in the photo.  Detected pieces can be turned into new
closet items.
"""

from __future__ import annotations

import base64
import json
import logging
import re
import time
from dataclasses import dataclass, field
from io import BytesIO

from PIL import ImageOps

from lookbook.catalog import CATEGORIES, CatalogItem
from lookbook.config import PipelineConfig
from lookbook.image_processor import open_image

logger = logging.getLogger(__name__)

SEASONS = ("spring", "summer", "fall", "winter")

SYSTEM_PROMPT = """You are a fashion analysis assistant for a personal lookbook portfolio. Analyze outfit photos and return structured data.

You MUST respond with ONLY valid JSON matching this exact schema, with no markdown, no explanation and no code fences:

{
  "title": "Short evocative outfit title (2-4 words, e.g. 'Autumn Layers', 'Sharp Tailoring')",
  "season": "spring" | "summer" | "fall" | "winter",
  "occasion": ["array of: casual, work, dinner, evening, weekend, brunch, date, travel"],
  "description": "1-2 sentence editorial description of the outfit and its styling intent",
  "colorPalette": ["#hex", "#hex", "#hex", "#hex"] (3-5 dominant colors from the outfit as hex codes),
  "items": [
    {
      "name": "Descriptive item name (e.g. 'Camel Wool Overcoat', 'Black Leather Chelsea Boots')",
      "brand": "Brand if visible/identifiable, otherwise omit this field",
      "category": "jackets" | "blazers" | "tops" | "shirts" | "pants" | "skirts" | "dresses" | "shoes" | "hats" | "bags" | "accessories" | "jewelry" | "other",
      "color": "Color name (e.g. 'Camel', 'Navy', 'Charcoal')",
      "colorHex": "#hex color of the item",
      "position": { "x": 50, "y": 30 }
    }
  ]
}

For position: x and y are percentages (0-100) representing where the item is centered in the photo.
- x=0 is left edge, x=100 is right edge
- y=0 is top edge, y=100 is bottom edge
- Place the dot at the center of the visible garment area

List items from top to bottom (hat first, shoes last). Include every visible garment, accessory, and shoe."""

USER_PROMPT = "Analyze this outfit photo. Return ONLY the JSON object, no other text."

_FENCE_RE = re.compile(r"```(?:json)?\s*")


class TaggingError(Exception):
    """The model reply could not be turned into a TagResult."""


@dataclass
class DetectedItem:
    name: str
    category: str
    color: str = ""
    color_hex: str = ""
    brand: str | None = None
    x: float = 50.0
    y: float = 50.0


@dataclass
class TagResult:
    title: str
    season: str
    occasion: list[str] = field(default_factory=list)
    description: str = ""
    color_palette: list[str] = field(default_factory=list)
    items: list[DetectedItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "season": self.season,
            "occasion": self.occasion,
            "description": self.description,
            "colorPalette": self.color_palette,
            "items": [
                {
                    "name": d.name,
                    **({"brand": d.brand} if d.brand else {}),
                    "category": d.category,
                    "color": d.color,
                    "colorHex": d.color_hex,
                    "position": {"x": d.x, "y": d.y},
                }
                for d in self.items
            ],
        }


def prepare_photo(data: bytes, max_dimension: int = 1568) -> str:
    """Downscale to *max_dimension* on the long side; return a JPEG data URL.

    Keeps large phone photos well under the API payload limit.
    """
    img = ImageOps.exif_transpose(open_image(data)).convert("RGB")
    if img.width > max_dimension or img.height > max_dimension:
        scale = max_dimension / max(img.width, img.height)
        img = img.resize((round(img.width * scale), round(img.height * scale)))
    buf = BytesIO()
    img.save(buf, "JPEG", quality=85)
    return "data:image/jpeg;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def _clamp_percent(value) -> float:
    try:
        return min(100.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return 50.0


def parse_tag_response(text: str) -> TagResult:
    """Parse the model reply, tolerating markdown code fences around it."""
    cleaned = _FENCE_RE.sub("", text).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise TaggingError(f"Failed to parse AI response: {cleaned[:200]}") from exc
    if not isinstance(data, dict):
        raise TaggingError(f"AI response is not a JSON object: {cleaned[:200]}")

    season = str(data.get("season", "")).lower()
    if season not in SEASONS:
        raise TaggingError(f"Unknown season in AI response: {season!r}")

    items = []
    for raw in data.get("items") or []:
        if not isinstance(raw, dict) or not raw.get("name"):
            logger.warning("Skipping malformed detected item: %r", raw)
            continue
        category = str(raw.get("category", "other")).lower()
        position = raw.get("position") or {}
        items.append(DetectedItem(
            name=str(raw["name"]),
            category=category if category in CATEGORIES else "other",
            color=str(raw.get("color", "")),
            color_hex=str(raw.get("colorHex", "")),
            brand=raw.get("brand") or None,
            x=_clamp_percent(position.get("x")),
            y=_clamp_percent(position.get("y")),
        ))

    return TagResult(
        title=str(data.get("title", "")),
        season=season,
        occasion=[str(o) for o in data.get("occasion") or []],
        description=str(data.get("description", "")),
        color_palette=[str(c).upper() for c in data.get("colorPalette") or []],
        items=items,
    )


class OutfitTagger:
    """Vision-model outfit analysis.

    Args:
        config: Pipeline configuration (model name, max photo dimension).
        client: An ``openai.AsyncOpenAI`` instance (or compatible object).
    """

    def __init__(self, config: PipelineConfig, client):
        self.config = config
        self.client = client

    async def analyze(self, photo: bytes) -> TagResult:
        data_url = prepare_photo(photo, self.config.tagger_max_dimension)
        response = await self.client.chat.completions.create(
            model=self.config.tagger_model,
            max_tokens=2048,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": data_url}},
                        {"type": "text", "text": USER_PROMPT},
                    ],
                },
            ],
        )
        text = response.choices[0].message.content or ""
        return parse_tag_response(text)


def new_catalog_items(result: TagResult, timestamp_ms: int | None = None) -> list[CatalogItem]:
    """Closet items for every detected piece, ids ``item-<ms>-<index>``."""
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    items = []
    for i, detected in enumerate(result.items):
        record = {
            "id": f"item-{stamp}-{i}",
            "name": detected.name,
            **({"brand": detected.brand} if detected.brand else {}),
            "category": detected.category,
            "color": detected.color,
            "colorHex": detected.color_hex,
            "images": [],
        }
        items.append(CatalogItem.from_dict(record))
    return items
