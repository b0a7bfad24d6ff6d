# backend/prompt_composer.py

from typing import Dict, List, Optional

from .model import GenerationRequest, StylePreset


PROMPT_SUFFIX = "16:9 aspect ratio, high quality, professional YouTube thumbnail"
SEPARATOR = ", "

STYLE_PRESETS: Dict[str, StylePreset] = {
    preset.id: preset
    for preset in (
        StylePreset(
            id="bold",
            name="Bold & Dramatic",
            description="High contrast, impactful visuals with strong typography",
            prompt="bold dramatic high contrast cinematic lighting intense colors impactful",
        ),
        StylePreset(
            id="minimal",
            name="Minimal & Clean",
            description="Simple, elegant design with plenty of white space",
            prompt="minimal clean simple elegant white space modern sophisticated",
        ),
        StylePreset(
            id="energetic",
            name="Energetic & Fun",
            description="Vibrant colors, dynamic elements, playful composition",
            prompt="energetic fun vibrant colorful dynamic playful exciting pop",
        ),
        StylePreset(
            id="professional",
            name="Professional & Trust",
            description="Credible, authoritative look with refined aesthetics",
            prompt="professional trustworthy credible authoritative refined corporate",
        ),
    )
}


def list_styles() -> List[StylePreset]:
    return list(STYLE_PRESETS.values())


def style_phrase(style_id: Optional[str]) -> str:
    """
    Keyword phrase for a style id.
    Unknown or missing ids give an empty phrase, same as no style.
    """
    if not style_id:
        return ""
    preset = STYLE_PRESETS.get(style_id)
    return preset.prompt if preset else ""


def _join(segments: List[Optional[str]]) -> str:
    return SEPARATOR.join(s for s in segments if s)


def _context(text: Optional[str]) -> str:
    # verbatim, but only if there is something besides whitespace
    if text and text.strip():
        return text
    return ""


def compose(request: GenerationRequest) -> str:
    """
    Build the generation prompt:
    main text, style, context, reference clause, fixed suffix.
    """
    reference = ""
    if request.reference_url:
        reference = f"inspired by video style from {request.reference_url}"

    return _join([
        f'YouTube thumbnail with text "{request.main_text}"',
        style_phrase(request.style_id),
        _context(request.context_text),
        reference,
        PROMPT_SUFFIX,
    ])


def compose_refinement(instruction: str, original: GenerationRequest) -> str:
    """
    Build a refinement prompt against the original request.
    Style and reference segments of the original are not repeated.
    """
    return _join([
        f"Refine YouTube thumbnail: {instruction}",
        f'Original text: "{original.main_text}"',
        _context(original.context_text),
        PROMPT_SUFFIX,
    ])
