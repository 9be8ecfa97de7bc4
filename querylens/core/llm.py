from typing import List, Dict, Any, Optional
from openai import AsyncOpenAI, OpenAIError
from querylens.core.config import LLMConfig
from querylens.core.errors import TransportError
from querylens.core.models import ModelParams
import logging

logger = logging.getLogger(__name__)

class LLMService:
    def __init__(self, config: LLMConfig):
        self.config = config
        self.provider = config.default_provider

        # Get provider config
        provider_config = getattr(config, self.provider, None)
        if not provider_config:
            raise ValueError(f"Configuration for LLM provider '{self.provider}' not found")

        self.client = AsyncOpenAI(
            api_key=provider_config.api_key,
            base_url=provider_config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )
        self.model = provider_config.model
        logger.info(f"Initialized LLM Service with provider: {self.provider}, model: {self.model}")

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        params: Optional[ModelParams] = None,
    ):
        """
        Send a chat completion request to the LLM.
        Retries and timeouts are handled by the OpenAI client itself.
        """
        params = params or ModelParams()
        try:
            kwargs = {
                "model": params.model or self.model,
                "messages": messages,
                "temperature": params.temperature,
                "max_tokens": params.max_tokens,
            }
            if tools:
                kwargs["tools"] = tools
                kwargs["tool_choice"] = "auto"

            return await self.client.chat.completions.create(**kwargs)

        except OpenAIError as e:
            logger.error(f"Error calling LLM: {e}")
            raise TransportError(f"LLM request failed: {e}") from e
