from openai import OpenAI, OpenAIError
from fastapi import HTTPException, status
from typing import Optional
from tripcrew.core.config import settings
from tripcrew.core.logger import logger

_client: Optional[OpenAI] = None


def get_llm_client() -> OpenAI:
    global _client
    if not settings.OPENROUTER_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Menu parsing is not configured on this server"
        )
    if _client is None:
        _client = OpenAI(
            api_key=settings.OPENROUTER_API_KEY,
            base_url=settings.BASE_URL,
        )
    return _client


def get_ai_completion(prompt: str, system_prompt: str) -> str:
    client = get_llm_client()
    try:
        response = client.chat.completions.create(
            model=settings.LLM_MODEL,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            temperature=0.2
        )
    except OpenAIError as e:
        logger.error(f"LLM backend error: {e}")
        raise HTTPException(status_code=502, detail="AI model is temporarily unavailable.")

    if not response.choices:
        logger.error("No choices returned from LLM")
        raise HTTPException(status_code=502, detail="AI model returned no content.")

    logger.info("LLM response received")
    return response.choices[0].message.content
