"""Load, query and write closet-items.json."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path

CATEGORIES = (
    "jackets", "blazers", "tops", "shirts", "pants", "skirts", "dresses",
    "shoes", "hats", "bags", "accessories", "jewelry", "other",
)

# Display order on the closet page
CATEGORY_ORDER = (
    "jackets", "blazers", "tops", "shirts", "dresses", "skirts", "pants",
    "shoes", "bags", "hats", "accessories", "jewelry", "other",
)


class CatalogError(Exception):
    """The catalog file is missing, malformed or inconsistent."""


@dataclass
class CatalogItem:
    id: str
    name: str
    category: str = "other"
    brand: str | None = None
    color: str | None = None
    color_hex: str | None = None
    image_url: str | None = None       # Direct image link
    purchase_url: str | None = None    # Product page, scraped for og:image
    images: list[str] = field(default_factory=list)
    # Original JSON record, kept so unknown keys and key order survive a rewrite
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, record: dict) -> CatalogItem:
        if not isinstance(record, dict):
            raise CatalogError(f"Catalog entry is not an object: {record!r}")
        if not record.get("id") or not record.get("name"):
            raise CatalogError(f"Catalog entry missing id or name: {record!r}")
        return cls(
            id=str(record["id"]),
            name=str(record["name"]),
            category=record.get("category") or "other",
            brand=record.get("brand") or None,
            color=record.get("color") or None,
            color_hex=record.get("colorHex") or None,
            image_url=record.get("imageUrl") or None,
            purchase_url=record.get("purchaseUrl") or None,
            images=list(record.get("images") or []),
            raw=dict(record),
        )

    def to_dict(self) -> dict:
        """Serialize back to the camelCase web schema.

        Keys already present in the source record keep their position and,
        when the field is unchanged, their original value; ``images`` is
        always emitted.
        """
        out = dict(self.raw)
        loaded = CatalogItem.from_dict(self.raw).to_fields() if self.raw else None
        for key, value in self.to_fields().items():
            if loaded is not None and value == loaded[key]:
                continue
            if value is not None or key in out:
                out[key] = value
        if not isinstance(out.get("images"), list) or out["images"] != self.images:
            out["images"] = list(self.images)
        return out

    def to_fields(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "category": self.category,
            "color": self.color,
            "colorHex": self.color_hex,
            "imageUrl": self.image_url,
            "purchaseUrl": self.purchase_url,
        }


class Catalog:
    """Ordered, id-unique collection of closet items backed by a JSON file."""

    def __init__(self, items: list[CatalogItem] | None = None):
        self.items: list[CatalogItem] = []
        self._by_id: dict[str, CatalogItem] = {}
        for item in items or []:
            self.add_item(item)

    @classmethod
    def load(cls, path: str | os.PathLike) -> Catalog:
        """Read the whole catalog file.

        Raises:
            CatalogError: If the file is missing, is not a JSON array of
                item objects, or contains duplicate ids.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as exc:
            raise CatalogError(f"Catalog file not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise CatalogError(f"Malformed catalog file {path}: {exc}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise CatalogError(f"Cannot read catalog file {path}: {exc}") from exc

        if not isinstance(data, list):
            raise CatalogError(f"Catalog {path} must contain a JSON array")
        return cls([CatalogItem.from_dict(record) for record in data])

    def add_item(self, item: CatalogItem):
        if item.id in self._by_id:
            raise CatalogError(f"Duplicate item id: {item.id}")
        self.items.append(item)
        self._by_id[item.id] = item

    def write(self, path: str | os.PathLike):
        """Write the catalog as pretty-printed JSON with a trailing newline."""
        os.makedirs(os.path.dirname(os.fspath(path)) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump([item.to_dict() for item in self.items], f,
                      indent=2, ensure_ascii=False)
            f.write("\n")

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def get(self, item_id: str) -> CatalogItem | None:
        return self._by_id.get(item_id)

    def find_by_name(self, name: str) -> CatalogItem | None:
        for item in self.items:
            if item.name == name:
                return item
        return None

    def by_category(self, category: str) -> list[CatalogItem]:
        return [item for item in self.items if item.category == category]

    def grouped_by_category(self) -> dict[str, list[CatalogItem]]:
        """Items grouped in closet display order, empty categories dropped."""
        grouped: dict[str, list[CatalogItem]] = {}
        for category in CATEGORY_ORDER:
            items = self.by_category(category)
            if items:
                grouped[category] = items
        return grouped

    def active_categories(self) -> list[str]:
        return list(self.grouped_by_category())

    def category_stats(self) -> list[tuple[str, int]]:
        return [(cat, len(items)) for cat, items in self.grouped_by_category().items()]

    def missing_images(self) -> list[CatalogItem]:
        return [item for item in self.items if not item.images]
