"""Prompt composition for image, refinement, upscale and video requests."""

import re
from typing import Optional

from .models.style import ColorMode, StyleSettings

STYLE_DEFINITIONS: dict[str, str] = {
    "Pencil Sketch": "Rough graphite textures, visible cross-hatching, sketch paper grain, loose and expressive lines, artistic shading.",
    "Ink & Line Art": "Clean crisp black ink lines, cross-hatching shading, comic book inking style, high contrast, no gradients.",
    "Minimalist Vector": "Flat colors, geometric shapes, clean lines, no textures, high vector quality.",
    "Watercolor": "Bleeding wet paint edges, soaking paper texture, soft translucent colors, artistic brush blobs, dreamy atmosphere.",
    "Western Comic Book": "Thick black ink outlines, halftone dot shading, vibrant flat coloring, Ben-Day dots, dynamic action lines.",
    "Anime / Manga": "Cel-shaded, distinct line art, high-quality anime production, soft lighting, expressive character design.",
    "Retro 80s": "Neon grid aesthetics, synthwave colors (magenta, cyan), VHS noise grain, chrome reflections, retro-futurism.",
    "Ghibli Style": "Hand-painted backgrounds, lush greenery, soft natural lighting, gouache textures, whimsical and nostalgic atmosphere.",
    "Oil Painting": "Thick impasto brushstrokes, textured canvas visibility, visible mixing of paints, classical technique, rich depth.",
    "Frank Miller Style (High Contrast)": "Extreme high contrast, pure black shadows, stark white highlights, gritty noir atmosphere.",
    "Film Noir": "Cinematic high contrast black and white, dramatic shadows, dutch angles, foggy atmosphere, detective movie aesthetic.",
    "Claymation": "Plasticine textures, fingerprint marks on clay, stop-motion lighting, shallow depth of field.",
    "3D Animation (Pixar style)": "Subsurface scattering, soft ambient occlusion, bright vibrant colors, appealing character proportions.",
    "Cyberpunk": "Neon sign lighting, rain-slicked streets, metallic textures, holographic overlays, dark atmosphere.",
    "Digital Concept Art": "Speedpaint aesthetic, tablet brush strokes, epic scale, atmospheric perspective.",
    "Cinematic Realistic": "Photorealistic textures, ray-traced lighting, anamorphic lens flares, movie set production quality.",
    "Charcoal Drawing": "Rough charcoal texture, smudged shadows, deep blacks and greys, sketch paper texture, artistic messiness.",
}

ART_STYLES = list(STYLE_DEFINITIONS)

# Styles that only make sense in monochrome
BW_FORCED_STYLES = {
    "Pencil Sketch",
    "Ink & Line Art",
    "Charcoal Drawing",
    "Film Noir",
    "Frank Miller Style (High Contrast)",
}

UPSCALE_INSTRUCTION = (
    "Upscale this image. High resolution, 4K, sharpen details, enhance lighting. "
    "Maintain exact composition. Do not add text."
)

_LABEL_RE = re.compile(
    r"^(?:panel|scene|shot|storyboard|frame)\s*(?:(?:\d+|[A-Za-z]\b)\s*[:\-.]?|[:\-.])\s*",
    re.IGNORECASE,
)
_PREFIX_RE = re.compile(r"^(?:title|caption|action|description)\s*[:\-.]\s*", re.IGNORECASE)


def clean_prompt_text(text: Optional[str]) -> str:
    """Strip panel labels and short leading titles from a scene prompt.

    "PANEL 2: The Arrival. A ship lands in the fog." -> "A ship lands in the fog."
    """
    if not text:
        return ""

    cleaned = _LABEL_RE.sub("", text.strip())
    cleaned = _PREFIX_RE.sub("", cleaned)

    # A short first sentence followed by substantial text is treated as a title
    first_period = cleaned.find(".")
    if -1 < first_period < 50:
        remaining = cleaned[first_period + 1:].strip()
        if len(remaining) > 10:
            cleaned = remaining

    return cleaned.strip()


def style_description(style: StyleSettings) -> str:
    """Return the visual description for a style, preferring the master style."""
    return style.master_style or STYLE_DEFINITIONS.get(style.art_style, style.art_style)


def color_directive(style: StyleSettings) -> str:
    if not style.master_style and style.art_style in BW_FORCED_STYLES:
        return "Strictly Black and White, Monochromatic, Greyscale. NO COLOR."
    if style.color_mode == ColorMode.BLACK_AND_WHITE:
        return "Black and white, high contrast, monochromatic, no color."
    return "Full color, vibrant, professional lighting."


def build_image_prompt(
    prompt: str,
    style: StyleSettings,
    character_bible: Optional[str] = None,
) -> str:
    """Compose the final instruction: style, color, characters, then scene.

    The style header goes first; the image models weight the opening of the
    prompt most heavily.
    """
    lines = [
        "*** ART STYLE ENFORCEMENT ***",
        f"STYLE: {style.art_style}",
        f"VISUAL DESCRIPTION: {style_description(style)}",
        "STRICT RULE: Do NOT generate realistic photos. Do NOT generate photorealism.",
        f"Must look like a {style.art_style} illustration.",
        "",
        f"COLOR PALETTE: {color_directive(style)}",
    ]
    if character_bible:
        lines.append(f"CHARACTERS (MAINTAIN CONSISTENCY): {character_bible}")
    lines.extend([
        "",
        f"SCENE ACTION: {clean_prompt_text(prompt)}",
        "",
        "Ensure high quality, detailed composition. Do not render text, titles, or UI elements.",
    ])
    return "\n".join(lines)


def build_refine_prompt(instruction: str, strength: int, style: StyleSettings) -> str:
    """Compose a refinement instruction; strength above 60 allows a full redraw."""
    if strength > 60:
        approach = (
            "Based on the input image, but you must SIGNIFICANTLY REDRAW the composition "
            "to match the new request. Do not be constrained by the original positions or sizes."
        )
    else:
        approach = (
            "Modify the image to match the instruction, but MAINTAIN the original "
            "composition, pose, and structure as much as possible. Keep it subtle."
        )
    palette = "Black & White" if style.color_mode == ColorMode.BLACK_AND_WHITE else "Color"
    return (
        f"IMPORTANT: {approach} INSTRUCTION: {instruction}. "
        f"Style: {style.art_style}, {palette}. Do not add text."
    )


def build_video_prompt(prompt: str) -> str:
    return (
        "Cinematic camera movement. Simple animation, efficient style. "
        f"{clean_prompt_text(prompt)}. "
        "If a character is speaking they must have clear lip movement; "
        "if they are listening or observing, keep the mouth closed. "
        "Make the animation smooth and realistic."
    )
