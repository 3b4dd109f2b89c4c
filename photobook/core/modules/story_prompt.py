"""
Story prompt construction for the vision text model.

The prompt is assembled from four independently built sections
(configuration, optional details, storyboard, instructions). The storyboard
interleaves page markers with the bound photos so the model can follow the
image sequence page by page.

The instructions section fixes the output contract: ONLY a JSON object
mapping page-number strings to page text. ``story_parser`` depends on it.
"""

from typing import Iterable

from ..types import ContentPart, PageBinding, PromptSection, StoryContext

SYSTEM_PROMPT = (
    "You are an expert children's picture book author with decades of experience, "
    "specializing in writing for toddlers (ages 2-5). Your task is to write engaging "
    "story text for a personalized picture book based on the user's photos and inputs."
)

NO_DETAILS_MARKER = "(None provided)"
STORYBOARD_END_MARKER = "--- End Storyboard ---"

INSTRUCTIONS = "\n".join([
    "# Instructions & Guiding Principles:",
    "- Craft a **cohesive story** following the image sequence precisely, with a clear beginning, middle, and end.",
    "- Write from a **toddler's perspective**, focusing on familiar experiences and relatable emotions (joy, frustration, silliness, pride).",
    "- Keep sentences **short, simple, and concrete**. Use strong verbs and vivid nouns.",
    "- Use **rhythm, repetition, and fun sounds** (onomatopoeia) where natural to create read-aloud appeal.",
    "- Incorporate **gentle, age-appropriate humor** (mild mischief, surprises) if fitting.",
    "- **Naturally weave in** the provided details: Child's Name, Title, Tone, Theme, People, Objects, and Excitement element. Match the requested Story Tone.",
    "- Generate **1-3 simple sentences per page number** (referring to the sequence above, e.g., Page 1, Page 2...).",
    '- Output ONLY a valid JSON object mapping page numbers (as strings, e.g., "1", "2", ...) to the story text string for that page. '
    'Example: {"1": "Leo and Mommy went to the park.", "2": "Leo saw a bright red ball!"}',
])


def page_marker(page_number: int) -> str:
    return f"--- Page {page_number} ---"


def missing_image_placeholder(page_number: int) -> str:
    return f"[No Image Provided for Page {page_number}]"


def build_configuration_section(context: StoryContext) -> PromptSection:
    """Child name, title, page count and tone."""
    lines = [
        "# Configuration",
        f"Child's Name: {context.child_name or 'the child'}",
        f"Book Title: {context.book_title or 'My Special Story'}",
        f"Page Count: {context.page_count}",
        f"Story Tone: {context.tone or 'Default (Engaging)'}",
    ]
    return PromptSection("configuration").add_text("\n".join(lines))


def build_optional_details_section(context: StoryContext) -> PromptSection:
    """Theme/people/objects/excitement, or an explicit marker when none are set."""
    details = [
        ("Theme", context.theme),
        ("Key People", context.people),
        ("Key Objects", context.objects),
        ("Excitement Element", context.excitement_element),
    ]
    lines = [f"{label}: {value.strip()}" for label, value in details if value and value.strip()]
    if not lines:
        lines = [NO_DETAILS_MARKER]
    return PromptSection("optional_details").add_text("\n".join(["# Optional Details", *lines]))


def build_storyboard_section(pages: Iterable[PageBinding]) -> PromptSection:
    """One marker per page followed by its photo or a placeholder."""
    section = PromptSection("storyboard").add_text("# Storyboard Sequence")
    for page in sorted(pages, key=lambda p: p.page_number):
        section.add_text(page_marker(page.page_number))
        if page.image_url:
            section.add_image(page.image_url, detail="high")
        else:
            section.add_text(missing_image_placeholder(page.page_number))
    return section.add_text(STORYBOARD_END_MARKER)


def build_instructions_section() -> PromptSection:
    return PromptSection("instructions").add_text(INSTRUCTIONS)


def build_story_sections(context: StoryContext, pages: Iterable[PageBinding]) -> list[PromptSection]:
    return [
        build_configuration_section(context),
        build_optional_details_section(context),
        build_storyboard_section(pages),
        build_instructions_section(),
    ]


def build_story_prompt(context: StoryContext, pages: Iterable[PageBinding]) -> list[ContentPart]:
    """
    Build the user-message content parts for story generation.

    Args:
        context: Book configuration (child name, title, tone, optional details)
        pages: Story pages with their bound photo URL (or None)

    Returns:
        Flat, ordered list of text and image parts
    """
    parts: list[ContentPart] = []
    for section in build_story_sections(context, pages):
        parts.extend(section.parts)
    return parts
