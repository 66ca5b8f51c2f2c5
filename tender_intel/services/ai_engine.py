import inspect
import json
import logging
import re
from typing import Any, Callable, Optional, Tuple

import httpx
from openai import AsyncOpenAI

from tender_intel.core.config import settings
from tender_intel.models.schemas import AIResponse, TokenUsage

logger = logging.getLogger(__name__)

UsageRecorder = Callable[[TokenUsage], Any]

NOT_CONFIGURED = "AI not configured"
PARSE_ERROR = "Failed to parse AI response as JSON"

_FENCE_PATTERN = re.compile(r"```(?:json)?")


class AIEngine:
    """
    Stateless AI capability built once from settings and injected where needed.

    Every call returns an AIResponse instead of raising, and forwards its
    token usage to the usage recorder.
    - OpenAI when AI_PROVIDER=openai and OPENAI_API_KEY is set
    - Ollama when AI_PROVIDER=ollama (local development)
    """

    def __init__(
        self,
        usage_recorder: Optional[UsageRecorder] = None,
        provider: Optional[str] = None,
        openai_client: Optional[AsyncOpenAI] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.usage_recorder = usage_recorder
        self.provider = (settings.AI_PROVIDER if provider is None else provider).lower()
        self.http_client = http_client
        self.openai = openai_client

        if self.provider == "openai":
            self.model = settings.OPENAI_MODEL
            self.embedding_model = settings.OPENAI_EMBEDDING_MODEL
            if self.openai is None and settings.OPENAI_API_KEY:
                self.openai = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
            if self.openai is None:
                logger.warning("⚠️ OPENAI_API_KEY not configured. AI features will be disabled.")
                self.provider = ""
        elif self.provider == "ollama":
            self.model = settings.OLLAMA_MODEL
            self.embedding_model = settings.OLLAMA_EMBEDDING_MODEL
            self.base_url = settings.OLLAMA_HOST
        else:
            logger.warning("⚠️ AI_PROVIDER not set. AI features will be disabled.")
            self.provider = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.provider)

    async def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        feature: Optional[str] = None
    ) -> AIResponse:
        """Generate free text"""
        if not self.is_configured:
            return AIResponse(success=False, error=NOT_CONFIGURED)

        try:
            text, usage = await self._complete(prompt, system_instruction, feature, "completion")
        except Exception as e:
            logger.error(f"AI Generation Error: {str(e)}")
            return AIResponse(success=False, error=str(e))

        await self._record_usage(usage)
        return AIResponse(success=True, data=text, usage=usage)

    async def generate_json(
        self,
        prompt: str,
        schema_description: str,
        feature: Optional[str] = None
    ) -> AIResponse:
        """Generate structured data; unparsable output is a failed response, never an exception"""
        if not self.is_configured:
            return AIResponse(success=False, error=NOT_CONFIGURED)

        full_prompt = (
            f"{prompt}\n\nIMPORTANT: Respond ONLY with valid JSON matching this structure: "
            f"{schema_description}. Do not include markdown formatting like ```json."
        )

        try:
            text, usage = await self._complete(full_prompt, None, feature, "analysis")
        except Exception as e:
            logger.error(f"AI JSON Generation Error: {str(e)}")
            return AIResponse(success=False, error=str(e))

        await self._record_usage(usage)

        try:
            data = json.loads(clean_json_text(text))
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"JSON Parse Error: {e}. Raw text: {text[:500] if text else text}")
            return AIResponse(success=False, error=PARSE_ERROR, usage=usage)

        return AIResponse(success=True, data=data, usage=usage)

    async def generate_embedding(self, text: str, feature: Optional[str] = None) -> AIResponse:
        """Embedding vector for semantic search"""
        if not self.is_configured:
            return AIResponse(success=False, error=NOT_CONFIGURED)

        try:
            if self.provider == "openai":
                response = await self.openai.embeddings.create(
                    model=self.embedding_model,
                    input=text
                )
                vector = list(response.data[0].embedding)
                prompt_tokens = getattr(response.usage, "prompt_tokens", 0) or 0
                usage = self._usage(prompt_tokens, 0, feature, "embedding")
            else:
                data = await self._ollama_post("/api/embeddings", {
                    "model": self.embedding_model,
                    "prompt": text
                })
                vector = data["embedding"]
                usage = self._usage(data.get("prompt_eval_count", 0) or 0, 0, feature, "embedding")
        except Exception as e:
            logger.error(f"Embedding Generation Error: {str(e)}")
            return AIResponse(success=False, error=str(e))

        await self._record_usage(usage)
        return AIResponse(success=True, data=vector, usage=usage)

    async def _complete(
        self,
        prompt: str,
        system_instruction: Optional[str],
        feature: Optional[str],
        request_type: str
    ) -> Tuple[str, TokenUsage]:
        if self.provider == "openai":
            messages = []
            if system_instruction:
                messages.append({"role": "system", "content": system_instruction})
            messages.append({"role": "user", "content": prompt})

            response = await self.openai.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.2
            )
            text = response.choices[0].message.content or ""
            usage = response.usage
            return text, self._usage(
                getattr(usage, "prompt_tokens", 0) or 0,
                getattr(usage, "completion_tokens", 0) or 0,
                feature,
                request_type
            )

        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False
        }
        if system_instruction:
            payload["system"] = system_instruction

        data = await self._ollama_post("/api/generate", payload)
        return data["response"], self._usage(
            data.get("prompt_eval_count", 0) or 0,
            data.get("eval_count", 0) or 0,
            feature,
            request_type
        )

    async def _ollama_post(self, path: str, payload: dict) -> dict:
        if self.http_client is not None:
            response = await self.http_client.post(f"{self.base_url}{path}", json=payload)
            response.raise_for_status()
            return response.json()

        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(f"{self.base_url}{path}", json=payload)
            response.raise_for_status()
            return response.json()

    def _usage(self, prompt_tokens: int, completion_tokens: int, feature: Optional[str], request_type: str) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            model=self.embedding_model if request_type == "embedding" else self.model,
            provider=self.provider,
            feature=feature,
            request_type=request_type
        )

    async def _record_usage(self, usage: TokenUsage) -> None:
        if self.usage_recorder is None:
            return
        try:
            result = self.usage_recorder(usage)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error recording token usage: {str(e)}")


def clean_json_text(text: str) -> str:
    """Strip markdown code fences around a JSON payload"""
    return _FENCE_PATTERN.sub("", text or "").strip()
