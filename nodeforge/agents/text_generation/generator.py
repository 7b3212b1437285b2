"""
Text generation agent.
"""
from typing import Any

from ...errors import ValidationError
from ...llm.base import GenerationService


def normalize_prompt(value: Any) -> str:
    """Coerce an upstream value into prompt text."""
    if value is None:
        return ""
    if isinstance(value, list):
        return "\n\n".join(str(item) for item in value if item is not None and str(item).strip())
    if isinstance(value, dict):
        # Structured {image, text} results contribute their text part
        return str(value.get("text") or "")
    return str(value)


async def generate_text(service: GenerationService, prompt: Any) -> str:
    """
    Complete a prompt with the text model.

    Raises:
        ValidationError: If the prompt is empty
        ExternalCallError: If the completion call fails
    """
    text = normalize_prompt(prompt)
    if not text.strip():
        raise ValidationError("Prompt is empty.")
    return await service.generate_text(text)
