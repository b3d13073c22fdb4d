"""
E-Permitted Backend — Gemini Service Unit Tests (Mocked)
=========================================================

What:  Tests for GeminiService with mocked Google Generative AI SDK.
Why:   Tests should not make real API calls (costs money, requires network).
How:   Patches the genai module and model to simulate success/failure.

What we test:
    ✅ Successful call returns the analysis text
    ✅ API failure surfaces as LLMServiceError and counts towards the breaker
    ✅ Circuit breaker opens after consecutive failures
    ✅ Circuit breaker resets after recovery timeout
    ❌ Real API calls
"""

import time

import pytest
from unittest.mock import patch, MagicMock, AsyncMock

from epermitted.services.gemini_service import GeminiService, CircuitBreaker
from epermitted.exceptions import CircuitBreakerOpenError, LLMServiceError


class TestCircuitBreaker:
    """Tests for the CircuitBreaker resilience pattern."""

    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == "closed"
        assert cb.can_execute() is True

    def test_opens_at_threshold(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            cb.record_failure()
        assert cb.state == "open"

    def test_open_circuit_rejects_calls(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        cb.record_failure()

        with pytest.raises(CircuitBreakerOpenError):
            cb.can_execute()

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()
        assert cb.failure_count == 2

        cb.record_success()
        assert cb.failure_count == 0
        assert cb.state == "closed"

    def test_half_open_after_recovery_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        assert cb.state == "open"

        time.sleep(0.01)
        assert cb.can_execute() is True
        assert cb.state == "half_open"

    def test_failure_in_half_open_reopens(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=0)
        for _ in range(3):
            cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()

        cb.record_failure()
        assert cb.state == "open"

    def test_success_after_half_open_closes(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()

        cb.record_success()
        assert cb.state == "closed"
        assert cb.failure_count == 0


def _mock_model(response_text=None, error=None):
    model = MagicMock()
    if error is not None:
        model.generate_content_async = AsyncMock(side_effect=error)
    else:
        response = MagicMock()
        response.text = response_text
        model.generate_content_async = AsyncMock(return_value=response)
    return model


class TestGeminiServiceMocked:
    """Tests for GeminiService with mocked Gemini API."""

    @pytest.mark.asyncio
    async def test_generate_analysis_success(self):
        with patch('epermitted.services.gemini_service.genai') as mock_genai:
            mock_model = _mock_model("  Complete application. Risk: low.  ")
            mock_genai.GenerativeModel.return_value = mock_model

            service = GeminiService(model_name="gemini-test")
            result = await service.generate_analysis("Analyze this permit application")

            assert result == "Complete application. Risk: low."
            assert service.model_name == "gemini-test"
            mock_model.generate_content_async.assert_awaited_once()
            assert mock_model.generate_content_async.call_args.args[0] == (
                "Analyze this permit application"
            )

    @pytest.mark.asyncio
    async def test_model_is_built_with_system_instruction(self):
        with patch('epermitted.services.gemini_service.genai') as mock_genai:
            GeminiService(model_name="gemini-test")

            kwargs = mock_genai.GenerativeModel.call_args.kwargs
            assert "local government permitting" in kwargs["system_instruction"]
            assert kwargs["generation_config"]["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_api_failure_raises_llm_service_error(self):
        with patch('epermitted.services.gemini_service.genai') as mock_genai:
            mock_genai.GenerativeModel.return_value = _mock_model(
                error=RuntimeError("quota exceeded")
            )
            service = GeminiService()

            with pytest.raises(LLMServiceError) as exc_info:
                await service.generate_analysis("prompt")

            assert "quota exceeded" in exc_info.value.message
            assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_generate_analysis_circuit_breaker_open(self):
        with patch('epermitted.services.gemini_service.genai') as mock_genai:
            mock_model = _mock_model("unused")
            mock_genai.GenerativeModel.return_value = mock_model
            service = GeminiService()

            for _ in range(service.circuit_breaker.failure_threshold):
                service.circuit_breaker.record_failure()

            with pytest.raises(CircuitBreakerOpenError):
                await service.generate_analysis("prompt")
            mock_model.generate_content_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_health_check_returns_bool(self):
        with patch('epermitted.services.gemini_service.genai') as mock_genai:
            mock_genai.list_models.return_value = [MagicMock()]

            service = GeminiService()
            result = await service.health_check()
            assert result is True

    @pytest.mark.asyncio
    async def test_health_check_handles_errors(self):
        with patch('epermitted.services.gemini_service.genai') as mock_genai:
            mock_genai.list_models.side_effect = ConnectionError("offline")

            service = GeminiService()
            assert await service.health_check() is False
