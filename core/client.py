from openai import AsyncOpenAI
from core.config import settings

def get_client():
    return AsyncOpenAI(
        api_key=settings.API_KEY,
        base_url=settings.AI_GATEWAY_URL,
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_retries=settings.LLM_MAX_RETRIES,
    )
