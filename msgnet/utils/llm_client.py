"""LLM client creation factory.

The extractor talks to a local inference server through its OpenAI-compatible
API (Ollama serves one under ``/v1``), so a single OpenAI client factory covers
every model the configuration can name.
"""

import os
from typing import Any, Optional

from loguru import logger
from openai import OpenAI

# Local servers ignore the key, but the client refuses to start without one.
LOCAL_PLACEHOLDER_KEY = "ollama"


def create_openai_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    max_retries: int = 0,
    **kwargs: Any,
) -> OpenAI:
    """Create and configure an OpenAI-compatible client.

    Args:
        api_key: The API key. If None, tries OPENAI_API_KEY, then a local placeholder.
        base_url: The base URL. If None, tries OPENAI_BASE_URL.
        timeout: Request timeout in seconds.
        max_retries: Number of transport-level retries (retry policy lives in the caller).
        **kwargs: Additional arguments to pass to the OpenAI constructor.

    Returns:
        Configured OpenAI client.
    """
    final_api_key = api_key or os.getenv("OPENAI_API_KEY") or LOCAL_PLACEHOLDER_KEY
    final_base_url = base_url or os.getenv("OPENAI_BASE_URL")

    masked_key = (
        f"{final_api_key[:4]}...{final_api_key[-4:]}" if len(final_api_key) > 8 else final_api_key
    )
    logger.debug(
        f"Creating OpenAI client: base_url={final_base_url}, "
        f"api_key={masked_key}, timeout={timeout}"
    )

    return OpenAI(
        api_key=final_api_key,
        base_url=final_base_url,
        timeout=timeout,
        max_retries=max_retries,
        **kwargs,
    )
