"""
Illustration style catalog for photobook pages.

Each style is a fixed set of visual traits plus a photo hint tying colours and
layout back to the reference photo. Pages illustrated from one of the user's
photos get both; pages without a photo get the traits alone.
"""

from enum import Enum
from typing import Optional

from ..types import StyleDefinition


class IllustrationStyleType(str, Enum):
    """Available illustration styles (the keys stored on a book)."""

    CARTOON_BRIGHTS = "cartoonBrights"
    SOFT_WATERCOLOR = "softWatercolor"
    CRAYON_SCRIBBLE = "crayonScribble"
    DIGITAL_GOUACHE = "digitalGouache"
    PAPER_CUT_COLLAGE = "paperCutCollage"
    PIXEL_QUEST = "pixelQuest"
    KAWAII_MINIMAL = "kawaiiMinimal"
    CHALKBOARD = "chalkboard"


ILLUSTRATION_STYLES: dict[IllustrationStyleType, StyleDefinition] = {

    IllustrationStyleType.CARTOON_BRIGHTS: StyleDefinition(
        label="Cartoon Brights",
        traits=(
            "bold flat shading",
            "thick 6-px clean black outlines",
            "smooth digital vector look",
        ),
        photo_hint="sample all colours and overall layout directly from the reference photo",
    ),

    IllustrationStyleType.SOFT_WATERCOLOR: StyleDefinition(
        label="Soft Watercolor",
        traits=(
            "loose watercolor wash on cold-press paper",
            "no hard outlines, soft edge bleeding",
            "subtle paper texture",
        ),
        photo_hint="reuse the hues and composition of the reference photo",
    ),

    IllustrationStyleType.CRAYON_SCRIBBLE: StyleDefinition(
        label="Crayon Scribble",
        traits=(
            "wax-crayon strokes with visible grain",
            "wobbly hand-drawn outlines",
            "uneven fill, child-like energy",
        ),
        photo_hint="colours should be sampled from the reference photo",
    ),

    IllustrationStyleType.DIGITAL_GOUACHE: StyleDefinition(
        label="Digital Gouache",
        traits=(
            "opaque gouache strokes with dry-brush texture",
            "chunky shapes, flat perspective",
            "soft paper tooth",
        ),
        photo_hint="colour choices and arrangement mirror the reference photo",
    ),

    IllustrationStyleType.PAPER_CUT_COLLAGE: StyleDefinition(
        label="Paper-Cut Collage",
        traits=(
            "layered coloured-paper shapes with subtle drop shadows",
            "crisp torn or scissor edges",
            "light grain, slight 3-D feel",
        ),
        photo_hint="replicate the colour palette and subject placement from the reference photo",
    ),

    IllustrationStyleType.PIXEL_QUEST: StyleDefinition(
        label="Pixel Quest",
        traits=(
            "retro 16-bit pixel art",
            "1-pixel black outlines, visible dithering",
            "blocky 64x64 base grid then upscaled",
        ),
        photo_hint="derive sprite colours and scene layout from the reference photo",
    ),

    IllustrationStyleType.KAWAII_MINIMAL: StyleDefinition(
        label="Kawaii Minimal",
        traits=(
            "super-deformed cute style, big round eyes",
            "2-px pastel outlines",
            "minimal details, soft gradients",
        ),
        photo_hint="take colours and object positions from the reference photo",
    ),

    IllustrationStyleType.CHALKBOARD: StyleDefinition(
        label="Chalkboard",
        traits=(
            "white chalk strokes on dusty dark-green chalkboard",
            "slightly smeared edges, hand lettering feel",
            "chalk dust particles",
        ),
        photo_hint="copy shapes and proportions seen in the reference photo",
    ),
}

DEFAULT_STYLE = IllustrationStyleType.CARTOON_BRIGHTS


def resolve_style(key: Optional[str]) -> StyleDefinition:
    """Look up a style by key, falling back to the default for unknown keys."""
    try:
        style_type = IllustrationStyleType(key)
    except ValueError:
        style_type = DEFAULT_STYLE
    return ILLUSTRATION_STYLES[style_type]


def get_style_options() -> list[dict[str, str]]:
    """Key/label pairs for presenting the catalog to a client."""
    return [
        {"key": style_type.value, "label": style.label}
        for style_type, style in ILLUSTRATION_STYLES.items()
    ]
