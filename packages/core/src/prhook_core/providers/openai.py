from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from prhook_core.providers.base import BaseAnalyzer


class OpenAIAnalyzer(BaseAnalyzer):
    MODEL = "gpt-4o-mini"
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, timeout: float = 120, max_diff_chars: int = 2000):
        super().__init__(max_diff_chars=max_diff_chars)
        if _OpenAI is None:
            raise ImportError("The 'openai' package is required for this provider. Install it with: pip install openai")
        self.client = _OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.MODEL,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            # JSON mode guarantees a syntactically valid object.
            response_format={"type": "json_object"},
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        return response.choices[0].message.content or ""
