# © [2025] EDT&Partners. Licensed under CC BY 4.0.

import openai
from typing import List, Dict

from constants import DEFAULT_MODEL, DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE


def _as_float(value, default: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _as_int(value, default: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(default)


def get_chat_completion(
    api_key: str,
    base_url: str,
    system_message: str,
    messages: List[Dict[str, str]],
    model: str = DEFAULT_MODEL,
    temperature=DEFAULT_TEMPERATURE,
    max_tokens=DEFAULT_MAX_TOKENS,
) -> str:
    """
        Generate a chat completion using the OpenAI API with a course's own API key.

    Args:
        api_key (str): The decrypted API key configured for the course.
        base_url (str): Base URL of the chat completion API.
        system_message (str): The system prompt built from the course configuration.
        messages (List[Dict[str, str]]): The conversation so far, as role/content pairs.
        model (str, optional): The model configured for the course. Defaults to "gpt-4".
        temperature (optional): Sampling temperature, stored as text on the course.
        max_tokens (optional): Completion token limit, stored as text on the course.

    Returns:
        str: The assistant's reply.

    Raises:
        openai.OpenAIError: When the provider rejects or fails the request.
    """
    client = openai.OpenAI(api_key=api_key, base_url=base_url)
    response = client.chat.completions.create(
        model=model or DEFAULT_MODEL,
        temperature=_as_float(temperature, DEFAULT_TEMPERATURE),
        max_tokens=_as_int(max_tokens, DEFAULT_MAX_TOKENS),
        messages=[{"role": "system", "content": system_message}, *messages],
    )
    return response.choices[0].message.content or ""
