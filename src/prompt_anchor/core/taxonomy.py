"""Category taxonomy used to classify highlighted spans.

The engine treats the taxonomy as static lookup data: a set of valid
category identifiers (parents such as ``lighting`` and namespaced attributes
such as ``lighting.timeOfDay``) plus a table mapping legacy role names to
current identifiers. :data:`DEFAULT_TAXONOMY` ships the video-prompt
taxonomy; callers may supply their own :class:`Taxonomy`.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

TAXONOMY_VERSION = "3.0.0"

#: Parent category -> attribute identifiers
CATEGORY_ATTRIBUTES: Dict[str, Tuple[str, ...]] = {
    "shot": ("shot.type",),
    "subject": (
        "subject.identity",
        "subject.appearance",
        "subject.wardrobe",
        "subject.emotion",
    ),
    "action": ("action.movement", "action.state", "action.gesture"),
    "environment": (
        "environment.location",
        "environment.weather",
        "environment.context",
    ),
    "lighting": (
        "lighting.source",
        "lighting.quality",
        "lighting.timeOfDay",
        "lighting.colorTemp",
    ),
    "camera": (
        "camera.movement",
        "camera.lens",
        "camera.angle",
        "camera.focus",
    ),
    "style": ("style.aesthetic", "style.filmStock", "style.colorGrade"),
    "technical": (
        "technical.aspectRatio",
        "technical.frameRate",
        "technical.resolution",
        "technical.duration",
    ),
    "audio": ("audio.score", "audio.soundEffect", "audio.ambient"),
}

#: Legacy role names emitted by older labelers
LEGACY_ALIASES: Dict[str, str] = {
    # Subject
    "identity": "subject.identity",
    "appearance": "subject.appearance",
    "wardrobe": "subject.wardrobe",
    "action": "action.movement",
    "emotion": "subject.emotion",
    "subject.action": "action.movement",
    # Environment
    "location": "environment.location",
    "weather": "environment.weather",
    "context": "environment.context",
    # Lighting
    "lighting_source": "lighting.source",
    "lightingSource": "lighting.source",
    "lighting_quality": "lighting.quality",
    "lightingQuality": "lighting.quality",
    "time_of_day": "lighting.timeOfDay",
    "timeOfDay": "lighting.timeOfDay",
    "timeofday": "lighting.timeOfDay",
    "timeday": "lighting.timeOfDay",
    "colorTemp": "lighting.colorTemp",
    "color_temp": "lighting.colorTemp",
    # Camera / shot
    "framing": "shot.type",
    "camera.framing": "shot.type",
    "shot": "shot.type",
    "camera_move": "camera.movement",
    "cameraMove": "camera.movement",
    "movement": "camera.movement",
    "lens": "camera.lens",
    "angle": "camera.angle",
    "focus": "camera.focus",
    "aperture": "camera.focus",
    "depth_of_field": "camera.focus",
    # Style
    "aesthetic": "style.aesthetic",
    "film_stock": "style.filmStock",
    "filmStock": "style.filmStock",
    "colorGrade": "style.colorGrade",
    "color_grade": "style.colorGrade",
    # Technical
    "aspect_ratio": "technical.aspectRatio",
    "aspectRatio": "technical.aspectRatio",
    "frame_rate": "technical.frameRate",
    "frameRate": "technical.frameRate",
    "fps": "technical.frameRate",
    "resolution": "technical.resolution",
    "specs": "technical.resolution",
    "duration": "technical.duration",
    # Audio
    "score": "audio.score",
    "sound_effect": "audio.soundEffect",
    "soundEffect": "audio.soundEffect",
    "sfx": "audio.soundEffect",
    "ambient": "audio.ambient",
    "ambience": "audio.ambient",
}


@dataclass(frozen=True)
class Taxonomy:
    """Valid category identifiers plus a legacy alias table.

    Attributes:
        valid_categories: Every identifier a Highlight may carry
        aliases: Legacy role name -> valid identifier
        default_category: Fallback for roles nothing else matches
        version: Taxonomy data version
    """

    valid_categories: FrozenSet[str]
    aliases: Mapping[str, str] = field(default_factory=dict)
    default_category: str = "subject"
    version: str = TAXONOMY_VERSION
    _folded: Dict[str, str] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )
    _lowered_aliases: Dict[str, str] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.default_category not in self.valid_categories:
            raise ValueError(
                f"default_category {self.default_category!r} is not a valid category"
            )
        # Case-insensitive view of the valid identifiers, first spelling wins
        folded: Dict[str, str] = {}
        for category in sorted(self.valid_categories):
            folded.setdefault(category.lower(), category)
        lowered_aliases: Dict[str, str] = {}
        for alias, target in self.aliases.items():
            lowered_aliases.setdefault(alias.lower(), target)
        object.__setattr__(self, "_folded", folded)
        object.__setattr__(self, "_lowered_aliases", lowered_aliases)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Taxonomy":
        """Build a taxonomy from ``{"categories": {...}, "aliases": {...}}``.

        ``categories`` maps each parent id to a list of attribute ids.
        """
        categories = data.get("categories") or {}
        valid = set(categories)
        for attributes in categories.values():
            valid.update(attributes or ())
        return cls(
            valid_categories=frozenset(valid),
            aliases=dict(data.get("aliases") or {}),
            default_category=data.get("default_category", "subject"),
            version=str(data.get("version", TAXONOMY_VERSION)),
        )

    def is_valid(self, category: Optional[str]) -> bool:
        return category in self.valid_categories

    def lookup(self, role: Any) -> Optional[str]:
        """Map ``role`` to a valid category, or None when nothing matches.

        Resolution order: verbatim identifier, alias (verbatim then
        case-insensitive), case-insensitive identifier. An alias therefore
        wins over a differently-cased identifier: ``"Action"`` is
        ``action.movement``, not ``action``.
        """
        if not isinstance(role, str):
            return None
        name = role.strip()
        if not name:
            return None
        if name in self.valid_categories:
            return name

        lowered = name.lower()
        target = self.aliases.get(name)
        if target is None:
            target = self._lowered_aliases.get(lowered)
        if target is not None and target in self.valid_categories:
            return target

        return self._folded.get(lowered)

    def resolve(self, role: Any) -> str:
        """Map ``role`` to a valid category, falling back to the default."""
        category = self.lookup(role)
        if category is None:
            logger.warning(
                "Unknown role %r, falling back to %r", role, self.default_category
            )
            return self.default_category
        return category


def parent_category(category: str) -> str:
    """``"lighting.timeOfDay"`` -> ``"lighting"``; parents map to themselves."""
    return category.split(".", 1)[0]


def is_attribute(category: str) -> bool:
    return "." in category


def _build_default() -> Taxonomy:
    valid = set(CATEGORY_ATTRIBUTES)
    for attributes in CATEGORY_ATTRIBUTES.values():
        valid.update(attributes)
    return Taxonomy(valid_categories=frozenset(valid), aliases=dict(LEGACY_ALIASES))


DEFAULT_TAXONOMY: Taxonomy = _build_default()


__all__ = [
    "TAXONOMY_VERSION",
    "CATEGORY_ATTRIBUTES",
    "LEGACY_ALIASES",
    "Taxonomy",
    "DEFAULT_TAXONOMY",
    "parent_category",
    "is_attribute",
]
