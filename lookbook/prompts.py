"""Image generation prompts for closet items.

Each category has a phrasing template with ``{color}`` and ``{name}``
placeholders; a fixed product-photo suffix keeps every generated image on
the same light gray studio background.  Individual items can be given a
hand-written override, looked up by item id, which replaces the template.

Templates, overrides and the suffix can be supplied from a JSON file::

    {
      "templates": {"shoes": "A pair of {color} {name} ..."},
      "overrides": {"item-123": "A cream puffer jacket ..."},
      "suffix": "Professional e-commerce product photograph ..."
    }
"""

from __future__ import annotations

import json
import logging
import os
import re

from lookbook.catalog import CatalogItem

logger = logging.getLogger(__name__)

BASE_SUFFIX = (
    "Professional e-commerce product photograph, isolated on clean light gray "
    "(#F0F0F0) background, studio lighting, soft even shadows, no model, no "
    "mannequin, no text, no logos, no branding visible, no price tags, high "
    "quality commercial photography"
)

CATEGORY_PROMPTS = {
    "jackets": "A {color} {name} laid flat with arms slightly spread, photographed "
               "from above at a slight angle, showing full garment shape and texture",
    "blazers": "A {color} {name} shown on an invisible mannequin form (ghost "
               "mannequin style), front view, button detail visible, lapels crisp",
    "tops": "A {color} {name} neatly folded or laid flat, photographed from above, "
            "showing the front design and fabric texture",
    "shirts": "A {color} {name} laid flat with collar visible, slightly unbuttoned "
              "at top, sleeves arranged neatly",
    "pants": "A pair of {color} {name} folded neatly showing the full length from "
             "waist to hem, photographed from above",
    "skirts": "A {color} {name} shown flat or slightly draped, photographed from "
              "above showing full silhouette",
    "dresses": "A {color} {name} shown on an invisible mannequin (ghost mannequin "
               "style), front view, full length visible",
    "shoes": "A pair of {color} {name} shown in 3/4 profile view at a slight angle, "
             "one shoe slightly in front of the other",
    "hats": "A {color} {name} shown from a 3/4 front angle, slightly tilted to show "
            "the shape and crown",
    "bags": "A {color} {name} shown upright from a 3/4 front angle, handles visible, "
            "slightly angled to show depth",
    "accessories": "A {color} {name} arranged artfully, shown in close-up detail",
    "jewelry": "A {color} {name} photographed in close-up macro style with shallow "
               "depth of field, showing fine detail and material luster",
    "other": "A {color} {name} shown clearly from an appealing angle",
}

# Parenthesised or bracketed qualifiers, e.g. "Sherwani (Indian formal coat)"
_QUALIFIER_RE = re.compile(r"\s*[\(\[][^\)\]]*[\)\]]")


def strip_qualifiers(text: str) -> str:
    return re.sub(r"\s{2,}", " ", _QUALIFIER_RE.sub("", text)).strip()


class PromptBuilder:
    def __init__(
        self,
        templates: dict[str, str] | None = None,
        overrides: dict[str, str] | None = None,
        suffix: str = BASE_SUFFIX,
    ):
        self.templates = dict(CATEGORY_PROMPTS)
        self.templates.update(templates or {})
        self.overrides = dict(overrides or {})
        self.suffix = suffix

    @classmethod
    def from_file(cls, path: str | os.PathLike | None) -> PromptBuilder:
        """Load templates/overrides/suffix from JSON; defaults when *path* is None."""
        if path is None:
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Prompt config {path} must be a JSON object")
        builder = cls(
            templates=data.get("templates"),
            overrides=data.get("overrides"),
            suffix=data.get("suffix") or BASE_SUFFIX,
        )
        logger.info("Loaded %d prompt override(s) from %s", len(builder.overrides), path)
        return builder

    def build(self, item: CatalogItem, include_brand: bool = True) -> str:
        """Full generation prompt for *item*."""
        override = self.overrides.get(item.id)
        if override:
            return f"{override}. {self.suffix}"

        template = self.templates.get(item.category) or self.templates["other"]
        name_has_color = bool(item.color) and item.color.lower() in item.name.lower()
        color_prefix = "" if name_has_color or not item.color else f"{item.color} "

        prompt = (template.replace("{color} ", color_prefix)
                  .replace("{color}", color_prefix.strip())
                  .replace("{name}", item.name))
        if include_brand and item.brand:
            prompt += f". The item is in a {item.brand}-inspired style"
        return f"{prompt}. {self.suffix}"

    def build_sanitized(self, item: CatalogItem) -> str:
        """Prompt without brand and without bracketed qualifiers.

        Used after a content-policy rejection.
        """
        override = self.overrides.get(item.id)
        if override:
            return f"{strip_qualifiers(override)}. {self.suffix}"

        stripped = CatalogItem(
            id=item.id,
            name=strip_qualifiers(item.name) or item.name,
            category=item.category,
            color=item.color,
        )
        return self.build(stripped, include_brand=False)
