"""
Illustration prompt construction for the image model.

Story pages get the confirmed page text rendered once inside a soft caption
cloud; the title page gets the book title integrated as cover typography.
Prompts are capped at MAX_PROMPT_LENGTH characters. The fixed instructions
(style, caption, typography and negative constraints) always survive the cap;
optional book details are shortened or dropped to make room for them.
"""

from typing import NamedTuple, Optional

from ..types import IllustrationPromptInput
from .illustration_styles import resolve_style

MAX_PROMPT_LENGTH = 950
TRUNCATION_MARKER = "..."

# Detail lines that would be cut shorter than this are dropped instead
MIN_DETAIL_LENGTH = 24

IMAGE_FORMAT_LINE = "Return ONE square 1024x1024 image, nothing else."


class PromptLine(NamedTuple):
    text: Optional[str]
    optional: bool = False


def _detail(label: str, value: Optional[str]) -> PromptLine:
    return PromptLine(f"{label}: {value}." if value else None, optional=True)


def _title_page_lines(prompt_input: IllustrationPromptInput, style_block: str) -> list[PromptLine]:
    title = (prompt_input.book_title or "").strip()
    if prompt_input.has_reference_photo:
        layout = "Keep all colours, character poses and background layout from the provided reference photo."
    else:
        layout = "Compose a warm, uncluttered cover scene with the main character in the foreground."
    return [
        PromptLine("You are illustrating the TITLE PAGE for a toddler board book."),
        PromptLine(IMAGE_FORMAT_LINE),
        PromptLine(f"Apply this exact visual language: {style_block}."),
        PromptLine(layout),
        PromptLine(
            f'The book title is "{title}". Integrate this title text (exactly) seamlessly and '
            "artistically into the illustration itself, like a real book cover." if title else None
        ),
        PromptLine(
            "Make the title placement pleasing and very legible, without covering any important "
            "characters or details." if title else None
        ),
        _detail("Overall theme", prompt_input.theme),
        _detail("Mood", prompt_input.tone),
        PromptLine("Create a captivating image suitable for a cover/title page."),
    ]


def _story_page_lines(prompt_input: IllustrationPromptInput, style_block: str) -> list[PromptLine]:
    page_text = (prompt_input.page_text or "").strip()
    if prompt_input.has_reference_photo:
        composition = [
            PromptLine("Copy every face, pose, and object layout from the reference photo."),
            PromptLine("Do NOT crop or reposition main subjects."),
        ]
    else:
        composition = [
            PromptLine("Draw one simple scene that shows exactly what the sentence below describes."),
        ]
    return [
        PromptLine("You are illustrating a toddler board book."),
        PromptLine(IMAGE_FORMAT_LINE),
        PromptLine(f"Apply EXACTLY this visual language: {style_block}."),
        *composition,
        _detail("Main character", prompt_input.child_name),
        _detail("Key characters", prompt_input.key_characters),
        _detail("Special objects", prompt_input.special_objects),
        _detail("Mood", prompt_input.tone),
        _detail("Theme", prompt_input.theme),
        PromptLine("Add a single SOFT-EDGED cloud (white, 70% opacity) that does NOT cover faces or important scene elements."),
        PromptLine(f'Inside that cloud, print this sentence exactly once, clear and readable:\n"{page_text}"'),
        PromptLine("Use font Comic Neue Bold, navy colour (#1A2A6B), size about 80 pt."),
        PromptLine("No other text, watermarks, or duplicate words."),
        PromptLine("Do not invent new characters or props."),
    ]


def truncate_prompt(prompt: str, max_length: int = MAX_PROMPT_LENGTH) -> str:
    """Cap a prompt at max_length, ending truncated prompts with the marker."""
    if len(prompt) <= max_length:
        return prompt
    return prompt[: max_length - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def fit_prompt_lines(lines: list[PromptLine], max_length: int = MAX_PROMPT_LENGTH) -> str:
    """
    Join prompt lines, fitting optional lines into the space left by the fixed ones.

    Optional lines are taken in order. One that does not fit is shortened to
    the remaining space, or dropped if that would leave less than
    MIN_DETAIL_LENGTH. The joined prompt is only hard-truncated when the fixed
    lines alone exceed max_length.

    Args:
        lines: Prompt lines in output order; lines with empty text are skipped
        max_length: Maximum prompt length in characters

    Returns:
        Prompt string of at most max_length characters
    """
    present = [line for line in lines if line.text]
    fixed = [line.text for line in present if not line.optional]
    # Every line after the first costs its text plus one joining newline
    budget = max_length - len("\n".join(fixed))

    kept = []
    for line in present:
        text = line.text
        if line.optional:
            cost = len(text) + 1
            if cost <= budget:
                budget -= cost
            elif budget - 1 >= MIN_DETAIL_LENGTH:
                text = truncate_prompt(text, budget - 1)
                budget = 0
            else:
                continue
        kept.append(text)

    return truncate_prompt("\n".join(kept), max_length)


def build_illustration_prompt(prompt_input: IllustrationPromptInput) -> str:
    """
    Build the image-model prompt for one page.

    Args:
        prompt_input: Style key, tone, page text and book details for the page

    Returns:
        Prompt string of at most MAX_PROMPT_LENGTH characters
    """
    style = resolve_style(prompt_input.style)
    style_block = style.descriptor if prompt_input.has_reference_photo else style.text_only_descriptor

    if prompt_input.is_title_page:
        lines = _title_page_lines(prompt_input, style_block)
    else:
        lines = _story_page_lines(prompt_input, style_block)

    return fit_prompt_lines(lines)
