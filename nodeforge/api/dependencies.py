"""
FastAPI dependencies for the generation service.

Usage:
    @router.post("/execute")
    async def execute(service: GenerationService = Depends(get_generation_service)):
        ...

Tests override ``get_generation_service`` with a fake service.
"""

from functools import lru_cache

from fastapi import HTTPException, status

from nodeforge.errors import ConfigurationError
from nodeforge.llm.base import GenerationService


@lru_cache(maxsize=1)
def _default_service() -> GenerationService:
    from nodeforge.llm.gemini import GeminiGenerationService

    return GeminiGenerationService()


def get_generation_service() -> GenerationService:
    """
    Return the shared Gemini-backed generation service.

    Raises:
        HTTPException: 400 if the service is not configured (no API key)
    """
    try:
        return _default_service()
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
