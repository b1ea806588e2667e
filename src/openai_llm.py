# src/openai_llm.py
import os, time, random
from typing import Dict, Optional
from openai import OpenAI, APIError, RateLimitError

from src.exceptions import ConfigurationError
from src.logging_setup import get_logger

logger = get_logger(__name__)

RECOMMENDATIONS_SCHEMA: Dict = {
    "name": "recommendations_schema",
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "recommendations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "title": {"type": "string"},
                        "text": {"type": "string"},
                    },
                    "required": ["title", "text"]
                }
            }
        },
        "required": ["recommendations"]
    },
    "strict": True,
}

_SYSTEM = (
    "You rewrite analyst findings about a virtual-land portfolio into concise recommendations. "
    "Never change a number. "
    "Your output MUST be valid JSON and should match the provided JSON schema."
)

DEFAULT_MODEL = "gpt-4o-mini"
MAX_ATTEMPTS = 4

_client: Optional[OpenAI] = None
def _get_client(api_key: Optional[str] = None) -> OpenAI:
    global _client
    if api_key:  # explicit key wins
        return OpenAI(api_key=api_key)
    if _client is None:
        key = os.getenv("OPENAI_API_KEY")
        if not key:
            raise ConfigurationError("Set OPENAI_API_KEY or pass api_key to openai_llm_call().")
        _client = OpenAI(api_key=key)
    return _client

def openai_llm_call(prompt: str, model: str = DEFAULT_MODEL, api_key: Optional[str] = None) -> str:
    """
    Calls Chat Completions with a strict JSON schema response format and
    retries rate-limit/API errors with exponential backoff.
    Returns the JSON string.
    """
    client = _get_client(api_key)

    for attempt in range(MAX_ATTEMPTS):
        try:
            resp = client.chat.completions.create(
                model=model,
                temperature=0.2,
                response_format={"type": "json_schema", "json_schema": RECOMMENDATIONS_SCHEMA},
                messages=[
                    {"role": "system", "content": _SYSTEM},
                    {"role": "user", "content": prompt},
                ],
            )
            return resp.choices[0].message.content  # JSON string
        except (RateLimitError, APIError) as e:
            if attempt == MAX_ATTEMPTS - 1:
                raise
            delay = 1.2 * (2 ** attempt) + random.random() * 0.4
            logger.warning("OpenAI call failed (%s); retry %d in %.1fs", type(e).__name__, attempt + 1, delay)
            time.sleep(delay)
