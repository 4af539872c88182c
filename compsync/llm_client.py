"""
LLM Client for Response Drafting
================================

Supports OpenAI-compatible chat-completions endpoints:
- OpenAI
- OpenRouter

Used for:
- Drafting examiner-ready responses to MRA findings

NOT required for basic operation: without an API key the drafting layer
falls back to a templated response and never calls this client.
"""

import json
import logging
import hashlib
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass, field

import httpx

from .config import Settings, get_settings
from .schemas import LLMMode

logger = logging.getLogger(__name__)


# =============================================================================
# Robust JSON Parser
# =============================================================================

def parse_json_robust(content: str) -> Tuple[Optional[Dict], bool, str]:
    """
    Parse JSON content robustly, handling common LLM output issues.

    Handles:
    - Empty content
    - Markdown code blocks (```json...```)
    - Prefix text before JSON
    - Multiple JSON objects (takes largest)

    Args:
        content: Raw content from LLM

    Returns:
        Tuple of (parsed_dict, success, error_message)
    """
    if not content:
        return None, False, "Empty content"

    content = content.strip()

    # Step 1: Remove markdown code blocks
    if "```json" in content:
        start = content.find("```json") + 7
        end = content.find("```", start)
        if end > start:
            content = content[start:end].strip()
    elif "```" in content:
        start = content.find("```") + 3
        end = content.find("```", start)
        if end > start:
            content = content[start:end].strip()

    # Step 2: Try direct parsing
    if content:
        try:
            data = json.loads(content)
            if isinstance(data, dict):
                return data, True, ""
        except json.JSONDecodeError:
            pass

    # Step 3: Find largest {...} block
    brace_blocks = []
    depth = 0
    start_idx = None

    for i, char in enumerate(content):
        if char == '{':
            if depth == 0:
                start_idx = i
            depth += 1
        elif char == '}' and depth > 0:
            depth -= 1
            if depth == 0 and start_idx is not None:
                brace_blocks.append(content[start_idx:i + 1])
                start_idx = None

    for block in sorted(brace_blocks, key=len, reverse=True):
        try:
            data = json.loads(block)
            return data, True, ""
        except json.JSONDecodeError:
            continue

    return None, False, "No JSON object found in content"


def safe_log_content(content: str, max_chars: int = 120) -> str:
    """
    Create a safe log representation of content.

    Args:
        content: Content to log
        max_chars: Maximum characters to show

    Returns:
        Safe log string with length and hash
    """
    if not content:
        return "(empty)"

    content_hash = hashlib.sha256(content.encode()).hexdigest()[:12]
    preview = content[:max_chars].replace('\n', ' ')

    return f"len={len(content)} hash={content_hash} preview='{preview}...'"


@dataclass
class LLMCallResult:
    """Result from an LLM API call"""
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    raw_response: Optional[Dict] = None
    success: bool = True
    error: Optional[str] = None


class LLMClient:
    """
    Async client for OpenAI-compatible chat completions.

    Usage:
        client = LLMClient()
        result = await client.generate("Draft a response...", system_prompt=SYSTEM_PROMPT)
        if result.success:
            print(result.content)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return self.settings.llm_configured()

    @property
    def model(self) -> str:
        return self.settings.active_model()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.llm_timeout)
        return self._http_client

    async def close(self):
        """Close HTTP client"""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _headers(self, api_key: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if self.settings.llm_mode == LLMMode.OPENROUTER:
            headers["X-Title"] = "CompSync MRA Tracker"
        return headers

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMCallResult:
        """
        Generate a completion.

        Args:
            prompt: User prompt
            system_prompt: System prompt (optional)
            json_mode: Request JSON response
            max_tokens: Maximum tokens (default from settings)
            temperature: Sampling temperature (default from settings)

        Returns:
            LLMCallResult; success=False with error message on any failure
        """
        api_key = self.settings.active_api_key()
        if api_key is None:
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error="API key not configured",
            )

        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.settings.llm_temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.settings.llm_max_tokens,
        }

        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        url = f"{self.settings.active_base_url().rstrip('/')}/chat/completions"

        try:
            client = await self._get_client()
            response = await client.post(url, json=payload, headers=self._headers(api_key))
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.error(f"LLM API error: {e.response.status_code} - {message}")
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error=f"HTTP {e.response.status_code}: {message}",
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"LLM request failed: {e}")
            return LLMCallResult(content="", model=self.model, success=False, error=str(e) or "Request failed")

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"LLM response missing content: {e}")
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error="No response content from API",
                raw_response=data,
            )

        if not content:
            logger.warning("LLM returned empty or null content")
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error="No response content from API",
                raw_response=data,
            )

        logger.debug(f"LLM response: {safe_log_content(content)}")

        usage = data.get("usage") or {}
        return LLMCallResult(
            content=content,
            model=self.model,
            usage={
                "input_tokens": usage.get("prompt_tokens", 0),
                "output_tokens": usage.get("completion_tokens", 0),
            },
            raw_response=data,
        )


def _error_message(response: httpx.Response) -> str:
    """Pull the provider's error message out of an error body"""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or "API request failed"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return "API request failed"


# Singleton
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get singleton LLM client"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
