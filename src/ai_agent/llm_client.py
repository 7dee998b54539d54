"""
LLM client for the scheduling engine: natural-language request -> Intent
"""
import json
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional, Sequence
from zoneinfo import ZoneInfo

from openai import OpenAI, OpenAIError

from config.settings import Config
from src.ai_agent.mock_llm_client import MockLLMClient
from src.scheduler.models import Intent

logger = logging.getLogger(__name__)


class LLMClient:
    """OpenAI chat-completions intent source with rule-based fallback"""

    def __init__(self, model_name: str = None, config: Config = None, client: OpenAI = None):
        self.config = config or Config()
        self.model_config = self.config.get_model_config(model_name)
        self.model_name = self.model_config["model"]
        self.max_tokens = self.model_config["max_tokens"]
        self.temperature = self.model_config["temperature"]

        self.client = client or OpenAI(
            api_key=self.config.OPENAI_API_KEY,
            base_url=self.model_config["base_url"],
            timeout=self.config.LLM_TIMEOUT,
            max_retries=self.config.LLM_MAX_RETRIES,
        )
        self.fallback = MockLLMClient(config=self.config)

        logger.info(f"Initialized OpenAI intent source: {self.model_name}")

    def _make_chat_request(self, system_prompt: str, user_prompt: str, temperature: float,
                           max_tokens: int, json_output: bool = False) -> str:
        start_time = time.time()
        request = dict(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if json_output:
            request["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(**request)
        content = response.choices[0].message.content
        if not content:
            raise ValueError("Empty response from model")

        logger.info(f"OpenAI response: {time.time() - start_time:.2f}s")
        return content.strip()

    def _system_prompt(self, context: Optional[Dict[str, Any]]) -> str:
        context = context or {}
        timezone = context.get("timezone") or self.config.TIMEZONE
        current_time = context.get("currentTime") or datetime.now(ZoneInfo(timezone)).isoformat()
        return self.config.INTENT_PARSING_PROMPT.format(current_time=current_time, timezone=timezone)

    def parse_intent(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> Intent:
        """Parse a request with the model; falls back to rule-based parsing on any failure"""
        logger.info(f"🤖 Parsing intent with {self.model_name}")

        try:
            content = self._make_chat_request(self._system_prompt(context), prompt,
                                              self.temperature, self.max_tokens, json_output=True)
            data = json.loads(content)
            if not isinstance(data, dict):
                raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
            intent = Intent.from_dict(data)
        except (OpenAIError, ValueError, TypeError, KeyError) as e:
            logger.warning(f"⚠️  LLM intent parsing failed ({e}), using rule-based fallback")
            return self.fallback.parse_intent(prompt, context)

        ambiguities = list(intent.ambiguities)
        if intent.start is None and "start_time" not in ambiguities:
            ambiguities.append("start_time")
        if not data.get("title") and "title" not in ambiguities:
            ambiguities.append("title")

        confidence = 0.9 if not ambiguities else 0.6
        intent = Intent.from_dict(dict(data, ambiguities=ambiguities,
                                       confidence=data.get("confidence", confidence)))

        logger.info(f"✅ Parsed '{intent.title}' (confidence {intent.confidence}, "
                    f"ambiguities: {', '.join(intent.ambiguities) or 'none'})")
        return intent

    def generate_clarification(self, prompt: str, ambiguities: Sequence[str]) -> str:
        """Ask the model for one clarifying question; default question on failure"""
        system_prompt = self.config.CLARIFICATION_PROMPT.format(ambiguities=", ".join(ambiguities))
        try:
            return self._make_chat_request(system_prompt, prompt, self.config.CLARIFICATION_TEMPERATURE, 100)
        except (OpenAIError, ValueError) as e:
            logger.warning(f"⚠️  Clarification request failed: {e}")
            return self.config.DEFAULT_CLARIFICATION


def get_intent_source(provider: str = None):
    """Intent source selected by AI_PROVIDER"""
    provider = (provider or Config.AI_PROVIDER).lower()
    if provider == "openai":
        logger.info("✅ Using OpenAI intent source")
        return LLMClient()

    logger.info("🔄 Using rule-based mock intent source")
    return MockLLMClient()
