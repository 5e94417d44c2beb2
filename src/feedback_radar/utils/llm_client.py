import asyncio
import instructor
import openai
from pydantic import BaseModel
from typing import TypeVar, Type, Optional, Literal, Any, Dict, List
import logging
import time
from ..config import settings
from .secrets import get_openai_key

T = TypeVar('T', bound=BaseModel)
logger = logging.getLogger(__name__)


class LLMClient:
    """Wrapper around OpenAI-compatible chat models: raw text completions plus Instructor extraction."""

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        role: Literal["summary", "grouping"] = "summary",
        timeout: Optional[float] = None,
    ) -> None:
        """
        Initialize LLM client.

        Args:
            model: Explicit model name (overrides config)
            base_url: Explicit base URL for a local/OpenAI-compatible server
            temperature: Sampling temperature (None = config default)
            role: 'summary' uses llm_summary_model, 'grouping' uses llm_grouping_model
            timeout: Per-call timeout in seconds

        For OpenAI models (gpt-*), loads the API key from secrets.
        Anything else is sent to base_url (Ollama, Gemini's OpenAI endpoint, ...).
        """
        if model:
            self.model = model
        elif role == "summary":
            self.model = settings.llm_summary_model
        else:
            self.model = settings.llm_grouping_model

        # gpt-5 family only supports the default temperature
        if self.model.startswith("gpt-5"):
            self.temperature = None
        else:
            self.temperature = temperature if temperature is not None else settings.llm_temperature

        self.role = role
        self.timeout = timeout if timeout is not None else settings.llm_timeout

        if self.model.startswith("gpt-"):
            self.raw_client = openai.AsyncOpenAI(api_key=get_openai_key())
            self.client = instructor.from_openai(self.raw_client, mode=instructor.Mode.TOOLS)
            self.base_url = None
            self.provider = "openai"
        else:
            self.base_url = base_url or settings.llm_base_url
            self.raw_client = openai.AsyncOpenAI(
                base_url=self.base_url,
                api_key=settings.openai_api_key or "local"  # Local servers ignore the key
            )
            self.client = instructor.from_openai(self.raw_client, mode=instructor.Mode.JSON)
            self.provider = "compatible"

        logger.info(
            f"EFFECTIVE_CONFIG provider={self.provider} model={self.model} role={role} "
            f"base_url={self.base_url}"
        )

    def _messages(self, prompt: str, system_prompt: Optional[str]) -> List[Dict[str, str]]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _temperature_kwargs(self, temperature: Optional[float]) -> Dict[str, Any]:
        if self.model.startswith("gpt-5"):
            return {}
        temp = temperature if temperature is not None else self.temperature
        return {"temperature": temp} if temp is not None else {}

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None
    ) -> str:
        """
        Free-form completion. The caller owns parsing of the returned text.

        Raises:
            asyncio.TimeoutError: If the call exceeds the per-call timeout
            openai.OpenAIError: On API failure
        """
        request_ts = time.time()
        logger.info(f"LLM_REQUEST provider={self.provider} model={self.model} kind=complete")

        try:
            resp = await asyncio.wait_for(
                self.raw_client.chat.completions.create(
                    model=self.model,
                    messages=self._messages(prompt, system_prompt),  # type: ignore[arg-type]
                    **self._temperature_kwargs(temperature),
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            duration_ms = int((time.time() - request_ts) * 1000)
            logger.error(f"LLM_RESPONSE provider={self.provider} model={self.model} status=error duration_ms={duration_ms} error={str(e)[:100]}")
            raise

        duration_ms = int((time.time() - request_ts) * 1000)
        logger.info(f"LLM_RESPONSE provider={self.provider} model={self.model} status=success duration_ms={duration_ms}")
        return resp.choices[0].message.content or ""

    async def extract(
        self,
        prompt: str,
        response_model: Type[T],
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None
    ) -> T:
        """
        Extract structured data from text using LLM.

        Args:
            prompt: User prompt text
            response_model: Pydantic model to extract
            system_prompt: Optional system instructions
            temperature: Sampling temperature (overrides default)

        Returns:
            Instance of response_model with extracted data

        Raises:
            Exception: If extraction fails
        """
        request_ts = time.time()

        try:
            logger.info(f"LLM_REQUEST provider={self.provider} model={self.model} timestamp={int(request_ts)} response_model={response_model.__name__}")

            kwargs: Dict[str, Any] = {
                "model": self.model,
                "messages": self._messages(prompt, system_prompt),
                "response_model": response_model,
                **self._temperature_kwargs(temperature),
            }

            resp = await asyncio.wait_for(
                self.client.chat.completions.create(**kwargs),
                timeout=self.timeout,
            )

            duration_ms = int((time.time() - request_ts) * 1000)
            logger.info(f"LLM_RESPONSE provider={self.provider} model={self.model} status=success duration_ms={duration_ms}")

            return resp
        except Exception as e:
            duration_ms = int((time.time() - request_ts) * 1000)
            logger.error(f"LLM_RESPONSE provider={self.provider} model={self.model} status=error duration_ms={duration_ms} error={str(e)[:100]}")
            raise
