"""
Tests for prompt construction and instruction sanitizing.
"""

from hypothesis import given
from hypothesis import strategies as st

from app.models.api import ArchitecturalStyle, GenerationMode
from app.services.prompts import (
    DEFAULT_STYLE_INSTRUCTION,
    DRONE_TOUR_PROMPT,
    STYLE_PROMPTS,
    build_drone_prompt,
    build_prompt,
    sanitize_instruction,
)


class TestBuildPrompt:
    def test_redesign_default_style(self) -> None:
        prompt = build_prompt(GenerationMode.REDESIGN)

        assert "TASK: Interior Redesign (Renovation)." in prompt
        assert DEFAULT_STYLE_INSTRUCTION in prompt
        assert "<user_instruction>" not in prompt

    def test_virtual_staging_uses_style(self) -> None:
        prompt = build_prompt(GenerationMode.VIRTUAL_STAGING, ArchitecturalStyle.SCANDINAVIAN)

        assert "TASK: Virtual Staging" in prompt
        assert STYLE_PROMPTS[ArchitecturalStyle.SCANDINAVIAN] in prompt

    def test_paint_only_forbids_furniture_changes(self) -> None:
        prompt = build_prompt(GenerationMode.PAINT_ONLY, ArchitecturalStyle.COASTAL)

        assert "TASK: Wall Painting Only" in prompt
        assert "DO NOT ADD, REMOVE, OR CHANGE ANY FURNITURE." in prompt

    def test_every_style_has_a_prompt(self) -> None:
        assert set(STYLE_PROMPTS) == set(ArchitecturalStyle)

    def test_custom_prompt_is_delimited(self) -> None:
        prompt = build_prompt(GenerationMode.REDESIGN, custom_prompt="add a green   sofa\x00")

        assert prompt.endswith("<user_instruction>add a green sofa</user_instruction>")

    def test_blank_custom_prompt_ignored(self) -> None:
        assert build_prompt(GenerationMode.REDESIGN, custom_prompt=" \n\t ") == build_prompt(
            GenerationMode.REDESIGN
        )

    def test_prompt_is_single_line(self) -> None:
        assert "\n" not in build_prompt(GenerationMode.VIRTUAL_STAGING)


class TestDronePrompt:
    def test_default(self) -> None:
        assert build_drone_prompt() == DRONE_TOUR_PROMPT

    def test_custom_instruction(self) -> None:
        prompt = build_drone_prompt("slow orbit\x00 at dusk")

        assert prompt.startswith(DRONE_TOUR_PROMPT)
        assert prompt.endswith("<user_instruction>slow orbit at dusk</user_instruction>")


class TestSanitizeInstruction:
    @given(st.text())
    def test_no_control_characters(self, text: str) -> None:
        cleaned = sanitize_instruction(text)

        assert not any(ord(c) < 0x20 or ord(c) == 0x7F for c in cleaned)

    @given(st.text())
    def test_idempotent(self, text: str) -> None:
        once = sanitize_instruction(text)

        assert sanitize_instruction(once) == once

    @given(st.text())
    def test_no_surrounding_or_repeated_whitespace(self, text: str) -> None:
        cleaned = sanitize_instruction(text)

        assert cleaned == cleaned.strip()
        assert "  " not in cleaned
