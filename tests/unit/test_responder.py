"""Unit tests for the response generator and prompts."""
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from openai import APIConnectionError, RateLimitError

from app.services.agent.constants import FALLBACK_REPLIES
from app.services.agent.prompt import get_system_prompt
from app.services.agent.responder import ResponseGenerator, get_fallback_response


def rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(429, request=request)
    return RateLimitError("Rate limit reached", response=response, body=None)


class TestSystemPrompt:
    """Test get_system_prompt."""

    def test_appointment_prompt(self, appointment_context):
        prompt = get_system_prompt(appointment_context)

        assert "Asha Rao" in prompt
        assert "Dr. Mehta" in prompt
        assert "03/11/2026" in prompt
        assert "10:30 AM" in prompt
        assert "confirm this appointment" in prompt

    def test_follow_up_prompt(self, follow_up_context):
        prompt = get_system_prompt(follow_up_context)

        assert "Post-visit check" in prompt
        assert "Monitor sugar levels" in prompt
        assert "diabetes" in prompt
        assert "metformin" in prompt

    def test_patient_prompt_without_follow_up(self, patient_context):
        prompt = get_system_prompt(patient_context)

        assert "General wellness check" in prompt
        assert "the doctor" in prompt

    def test_unknown_context(self):
        with pytest.raises(TypeError):
            get_system_prompt({"kind": "appointment"})


class TestFallbackResponse:
    """Test get_fallback_response."""

    def test_appointment_table(self, appointment_context):
        assert get_fallback_response("yes", appointment_context) == FALLBACK_REPLIES["appointment"]["affirmative"]
        assert get_fallback_response("cancel", appointment_context) == FALLBACK_REPLIES["appointment"]["negative"]
        assert get_fallback_response("hmm", appointment_context) == FALLBACK_REPLIES["appointment"]["default"]

    def test_follow_up_table(self, follow_up_context, patient_context):
        assert get_fallback_response("I feel better", follow_up_context) == FALLBACK_REPLIES["follow_up"]["affirmative"]
        assert get_fallback_response("not good", patient_context) == FALLBACK_REPLIES["follow_up"]["negative"]


class TestResponseGenerator:
    """Test ResponseGenerator."""

    @pytest.mark.asyncio
    async def test_generate_response(self, mock_openai, appointment_context):
        """Test prompt, history and caller text are sent in order."""
        generator = ResponseGenerator(client=mock_openai, model="gpt-4o-mini")
        history = [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "Hi Asha, this is the clinic."},
        ]

        reply = await generator.generate_response("yes I confirm", appointment_context, history)

        assert reply == "Thank you, Asha. Your appointment is confirmed."
        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        messages = kwargs["messages"]
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 150
        assert messages[0]["role"] == "system"
        assert messages[1:3] == history
        assert messages[-1] == {"role": "user", "content": "yes I confirm"}

    @pytest.mark.asyncio
    async def test_rate_limit_falls_back(self, appointment_context):
        """Test rate limiting yields the canned reply instead of raising."""
        client = Mock()
        client.chat.completions.create = AsyncMock(side_effect=rate_limit_error())
        generator = ResponseGenerator(client=client)

        reply = await generator.generate_response("yes I confirm", appointment_context)

        assert reply == FALLBACK_REPLIES["appointment"]["affirmative"]

    @pytest.mark.asyncio
    async def test_connection_error_falls_back(self, follow_up_context):
        client = Mock()
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        client.chat.completions.create = AsyncMock(side_effect=APIConnectionError(request=request))
        generator = ResponseGenerator(client=client)

        reply = await generator.generate_response("hmm", follow_up_context)

        assert reply == FALLBACK_REPLIES["follow_up"]["default"]

    @pytest.mark.asyncio
    async def test_empty_completion_falls_back(self, mock_openai, appointment_context):
        mock_openai.chat.completions.create.return_value.choices[0].message.content = "  "
        generator = ResponseGenerator(client=mock_openai)

        reply = await generator.generate_response("cancel", appointment_context)

        assert reply == FALLBACK_REPLIES["appointment"]["negative"]
