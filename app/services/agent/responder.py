"""LLM response generator."""
import logging
from typing import Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError, RateLimitError

from app.core.config import settings
from app.services.agent.constants import FALLBACK_REPLIES
from app.services.agent.context import AppointmentContext, ConversationContext
from app.services.agent.intent import classify_cue
from app.services.agent.prompt import get_system_prompt

logger = logging.getLogger(__name__)


def get_fallback_response(user_input: str, context) -> str:
    """Rule-based reply used whenever the language model is unavailable."""
    table = "appointment" if isinstance(context, AppointmentContext) else "follow_up"
    return FALLBACK_REPLIES[table][classify_cue(user_input)]


class ResponseGenerator:
    """Service for generating short spoken replies with an LLM."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.service_timeout_seconds,
        )
        self.model = model or settings.llm_model

    async def generate_response(
        self,
        user_input: str,
        context: ConversationContext,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """
        Generate a reply to what the caller just said.

        Args:
            user_input: Recognized caller text
            context: Conversation context of the call
            history: Earlier chat messages of this call, oldest first

        Returns:
            A short (1-3 sentence) reply. Never raises: upstream failures,
            rate limiting in particular, fall back to a canned reply.
        """
        messages = [{"role": "system", "content": get_system_prompt(context)}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": user_input})

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.7,
                max_tokens=150,
                top_p=0.9,
            )
        except RateLimitError:
            logger.warning("[RESPONDER] Rate limit reached, using fallback response")
            return get_fallback_response(user_input, context)
        except OpenAIError as e:
            logger.error(f"[RESPONDER] Generation failed: {type(e).__name__}: {e}")
            return get_fallback_response(user_input, context)

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not content:
            logger.warning("[RESPONDER] Empty completion, using fallback response")
            return get_fallback_response(user_input, context)

        logger.info(f"[RESPONDER] Reply: '{content}'")
        return content
