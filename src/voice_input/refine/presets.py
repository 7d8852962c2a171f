"""Prompt templates for LLM refinement. ``{input}`` is replaced with the raw transcription."""

from enum import Enum


class PromptPreset(str, Enum):
    DEFAULT = "default"
    MEETING = "meeting"
    MEMO = "memo"
    CHAT = "chat"
    CUSTOM = "custom"


PRESET_PROMPTS = {
    PromptPreset.DEFAULT: (
        "Rewrite the following speech recognition output as natural, well-formed text.\n"
        "Fix typos and misrecognized words, add punctuation, and correct grammar.\n"
        "Output only the rewritten text, with no explanation.\n"
        "\n"
        "Input: {input}\n"
        "\n"
        "Output:"
    ),
    PromptPreset.MEETING: (
        "Format the following speech recognition output as meeting minutes.\n"
        "- Organize what was said as bullet points\n"
        "- Make key points and decisions explicit\n"
        "- Fix typos and misrecognized words\n"
        "Output only the formatted text.\n"
        "\n"
        "Input: {input}\n"
        "\n"
        "Output:"
    ),
    PromptPreset.MEMO: (
        "Turn the following speech recognition output into a concise memo.\n"
        "- Summarize the main points briefly\n"
        "- Drop filler words\n"
        "- Fix typos and misrecognized words\n"
        "Output only the formatted text.\n"
        "\n"
        "Input: {input}\n"
        "\n"
        "Output:"
    ),
    PromptPreset.CHAT: (
        "Rewrite the following speech recognition output as a casual chat message.\n"
        "- Keep the conversational tone\n"
        "- Add punctuation where it helps\n"
        "- Only fix typos and misrecognized words\n"
        "Output only the rewritten text.\n"
        "\n"
        "Input: {input}\n"
        "\n"
        "Output:"
    ),
    PromptPreset.CUSTOM: "",
}


def parse_preset(name: str) -> PromptPreset:
    """Unknown names fall back to the default preset."""
    try:
        return PromptPreset(name.strip().lower())
    except ValueError:
        return PromptPreset.DEFAULT


def get_prompt_template(preset: PromptPreset, custom_prompt: str = "") -> str:
    if preset is PromptPreset.CUSTOM:
        return custom_prompt if custom_prompt else PRESET_PROMPTS[PromptPreset.DEFAULT]
    return PRESET_PROMPTS[preset]
