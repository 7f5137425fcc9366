from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Protocol

import httpx

from ..core.config import get_settings

logger = logging.getLogger(__name__)


class PromptEnhancer(Protocol):
    def enhance(self, prompt: str) -> str: ...


class HttpPromptEnhancer:
    def __init__(self, base_url: str, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client()

    def enhance(self, prompt: str) -> str:
        response = self._client.post(f"{self.base_url}/enhance", json={"prompt": prompt})
        response.raise_for_status()
        return response.json().get("prompt") or prompt


def get_prompt_enhancer() -> PromptEnhancer | None:
    settings = get_settings()
    if not settings.prompt_enhancer_url:
        return None
    return HttpPromptEnhancer(settings.prompt_enhancer_url)


def enhance_prompt(prompt: str, enhancer: PromptEnhancer | None, timeout: float | None = None) -> str:
    """Return the enhanced prompt, or the original one if enhancement is slow or fails."""
    if enhancer is None or not prompt.strip():
        return prompt
    if timeout is None:
        timeout = get_settings().prompt_enhancement_timeout_seconds

    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(enhancer.enhance, prompt)
    try:
        enhanced = future.result(timeout=timeout)
    except FutureTimeout:
        logger.warning("Prompt enhancement timed out after %ss; using original prompt", timeout)
        return prompt
    except Exception:
        logger.warning("Prompt enhancement failed; using original prompt", exc_info=True)
        return prompt
    finally:
        # A timed-out call keeps running in its worker; do not wait for it.
        executor.shutdown(wait=False)
    return enhanced.strip() or prompt
