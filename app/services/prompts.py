"""
Prompt Construction - Mode and style specific instructions for the image model.

Free-text instructions are sanitized (control characters removed, whitespace
collapsed) and wrapped in <user_instruction> delimiters before being appended.
"""

import re

from app.models.api import ArchitecturalStyle, GenerationMode

STYLE_PROMPTS: dict[ArchitecturalStyle, str] = {
    ArchitecturalStyle.MODERN: (
        "sleek modern style with neutral tones, clean lines, and contemporary furniture"
    ),
    ArchitecturalStyle.SCANDINAVIAN: (
        "scandinavian style with bright white walls, wooden accents, cozy textiles, "
        "and functional furniture"
    ),
    ArchitecturalStyle.INDUSTRIAL: (
        "industrial loft style with exposed textures, leather furniture, metal accents, "
        "and raw finishes"
    ),
    ArchitecturalStyle.BOHEMIAN: (
        "bohemian style with eclectic patterns, vibrant colors, many plants, and layered textures"
    ),
    ArchitecturalStyle.MINIMALIST: (
        "ultra-minimalist style with decluttered spaces, monochromatic color palette, "
        "and essential furniture only"
    ),
    ArchitecturalStyle.MID_CENTURY: (
        "mid-century modern style with organic curves, teak wood furniture, "
        "and retro color accents"
    ),
    ArchitecturalStyle.COASTAL: (
        "breezy coastal style with light blues, whites, natural fibers, and an airy atmosphere"
    ),
    ArchitecturalStyle.FARMHOUSE: (
        "modern farmhouse style with rustic wood beams, white shiplap walls, "
        "and comfortable traditional furniture"
    ),
}

DEFAULT_STYLE_INSTRUCTION = "modern and elegant design"

DRONE_TOUR_PROMPT = (
    "Cinematic drone shot of this luxury property, 4k, slow smooth motion, "
    "professional lighting, photorealistic"
)

STRUCTURAL_RULES = """
CRITICAL STRUCTURAL PRESERVATION RULES (MANDATORY):
1. ABSOLUTELY FORBIDDEN to move, resize, remove, or alter any existing walls, windows, doors, ceilings, or structural openings.
2. The geometry of the room and general layout MUST remain exactly the same.
3. Maintain the exact perspective, camera angle, and field of view of the original image.
4. Keep the original ceiling height, beam structures, and floor plan layout intact.
5. Structural integrity is PARAMOUNT; do not hallucinate new exits or close existing ones.
"""

ENVIRONMENT_ANALYSIS = """
ENVIRONMENT ANALYSIS & CONTEXT:
1. Analyze the room's structural cues:
   - If plumbing/tiling is visible -> It is a Kitchen or Bathroom.
   - If it's a large open space with multiple entry points -> It is a Living/Dining area.
   - If it's an enclosed private room -> It is a Bedroom or Office.
2. Preserve natural light sources and direction from the original windows.
"""

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_instruction(text: str) -> str:
    """Strip control characters and collapse whitespace."""
    return _WHITESPACE.sub(" ", _CONTROL_CHARS.sub("", text)).strip()


def _task_block(mode: GenerationMode, style_instruction: str) -> str:
    if mode == GenerationMode.VIRTUAL_STAGING:
        return f"""
TASK: Virtual Staging (Furnish Empty Room).
{STRUCTURAL_RULES}
{ENVIRONMENT_ANALYSIS}
INSTRUCTIONS:
- Detect the room type based on the structure and furnish it accordingly using a {style_instruction}.
- The room is currently empty or sparse; fill it with realistic furniture, rugs, curtains, and decor.
- DO NOT change the flooring material or wall paint unless explicitly asked.
- Ensure all added furniture casts realistic shadows and matches the lighting of the room.
- The result must be photorealistic, high-resolution architectural visualization.
"""
    if mode == GenerationMode.PAINT_ONLY:
        return f"""
TASK: Wall Painting Only (No Furniture Changes).
{STRUCTURAL_RULES}
{ENVIRONMENT_ANALYSIS}
INSTRUCTIONS:
- Your ONLY task is to change the wall paint color/texture.
- If a style is provided ({style_instruction}), interpret it as a color palette/texture guide for the walls.
- DO NOT ADD, REMOVE, OR CHANGE ANY FURNITURE.
- DO NOT CHANGE FLOORING OR CEILING (unless specifically asked in custom prompt).
- Existing furniture must remain exactly where it is, with the same design.
- Focus purely on the wall surfaces.
- The result must be photorealistic.
"""
    return f"""
TASK: Interior Redesign (Renovation).
{STRUCTURAL_RULES}
{ENVIRONMENT_ANALYSIS}
INSTRUCTIONS:
- completely redesign the interior style of this room to a {style_instruction}.
- You MAY update: wall colors, flooring materials, ceiling finishes, light fixtures, and all furniture/decor.
- You MUST NOT update: the position of walls, windows, doors, or the structural shell of the room.
- Replace existing furniture with new pieces that match the target style.
- Ensure the new design fits the exact same spatial boundaries as the original.
- The result must be photorealistic, high-resolution architectural visualization.
"""


def build_prompt(
    mode: GenerationMode,
    style: ArchitecturalStyle | None = None,
    custom_prompt: str | None = None,
) -> str:
    """Full image-edit prompt as a single whitespace-normalized line."""
    style_instruction = DEFAULT_STYLE_INSTRUCTION
    if style is not None:
        style_instruction = STYLE_PROMPTS.get(style, DEFAULT_STYLE_INSTRUCTION)
    prompt = _task_block(mode, style_instruction)

    instruction = sanitize_instruction(custom_prompt) if custom_prompt else ""
    if instruction:
        prompt += (
            "\nADDITIONAL USER REQUIREMENTS (Prioritize this instruction while strictly "
            f"adhering to structural rules): <user_instruction>{instruction}</user_instruction>"
        )

    return _WHITESPACE.sub(" ", prompt).strip()


def build_drone_prompt(custom_prompt: str | None = None) -> str:
    """Video prompt, optionally extended with a sanitized caller instruction."""
    instruction = sanitize_instruction(custom_prompt) if custom_prompt else ""
    if not instruction:
        return DRONE_TOUR_PROMPT
    return f"{DRONE_TOUR_PROMPT}. <user_instruction>{instruction}</user_instruction>"
