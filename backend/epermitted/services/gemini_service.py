"""
E-Permitted Backend — Google Gemini Service Implementation
===========================================================

What:  Concrete LLM service that asks Gemini for a permit-application review.
How:   Sends the system instruction + application prompt to Gemini, with
       tenacity retry, a circuit breaker and latency logging.
Who:   Created by the app factory and handed to the AnalysisQueue.
When:  After an application is committed; never on the request path.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
    2. Circuit breaker so a Gemini outage fails analyses fast
    3. Per-call timeout
    4. Failures surface as LLMServiceError for the queue to record
"""

import logging
import time
import uuid
from typing import Optional

import google.generativeai as genai
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential_jitter,
    retry_if_exception_type,
    before_sleep_log,
    RetryError,
)

from epermitted.config import settings
from epermitted.exceptions import LLMServiceError, CircuitBreakerOpenError
from epermitted.services.llm_base import LLMService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Implements the circuit breaker pattern to prevent cascade failures.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; all callers share one event loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        # HALF_OPEN: allow the test request through
        return True

    def record_success(self) -> None:
        """Record a successful API call. Resets the circuit breaker to CLOSED."""
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        """Record a failed API call. May trigger CLOSED → OPEN transition."""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(LLMService):
    """
    Google Gemini implementation of application analysis.

    Error Handling Chain:
        API call fails → tenacity retries (3 attempts with backoff)
        → All retries fail → record circuit breaker failure → LLMServiceError
        → Circuit breaker threshold reached → future calls rejected instantly
        → Recovery timeout → allow test call (HALF_OPEN)
    """

    SYSTEM_INSTRUCTION = (
        "You are an expert in local government permitting. Analyze permit "
        "applications thoroughly and provide actionable insights."
    )

    # Generation settings: short, low-temperature reviews
    GENERATION_CONFIG = {
        "max_output_tokens": 1000,
        "temperature": 0.3,
    }

    def __init__(self, model_name: Optional[str] = None):
        if settings.gemini_api_key and settings.gemini_api_key != "your_gemini_api_key_here":
            genai.configure(api_key=settings.gemini_api_key)

        self.model_name = model_name or settings.gemini_model
        self.model = genai.GenerativeModel(
            self.model_name,
            system_instruction=self.SYSTEM_INSTRUCTION,
            generation_config=self.GENERATION_CONFIG,
        )

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            self.model_name,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    async def generate_analysis(self, prompt: str) -> str:
        """
        Ask Gemini to review one application.

        Flow:
            1. Check circuit breaker → may raise CircuitBreakerOpenError
            2. Call Gemini with retry logic (3 attempts, exponential backoff)
            3. Record success/failure in circuit breaker
            4. Return the analysis text

        Raises:
            CircuitBreakerOpenError: Circuit is open (too many recent failures)
            LLMServiceError: Gemini failed after all retry attempts
        """
        call_id = str(uuid.uuid4())[:8]

        self.circuit_breaker.can_execute()  # Raises CircuitBreakerOpenError if open

        logger.info("[%s] Requesting Gemini analysis (%d prompt chars)", call_id, len(prompt))

        try:
            result = await self._call_gemini_with_retry(prompt, call_id)
            self.circuit_breaker.record_success()
            return result

        except CircuitBreakerOpenError:
            raise
        except RetryError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] All Gemini retries exhausted: %s",
                call_id,
                str(e.last_attempt.exception()) if e.last_attempt else "Unknown error",
            )
            raise LLMServiceError(
                message="AI analysis failed after multiple attempts.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"call_id": call_id, "attempts": settings.retry_max_attempts},
            )
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Gemini analysis error: %s",
                call_id,
                str(e),
                exc_info=True,
            )
            raise LLMServiceError(
                message=f"AI analysis failed: {e}",
                context={"call_id": call_id, "error_type": type(e).__name__},
            )

    @retry(
        # The Gemini SDK raises generic exceptions for API errors
        retry=retry_if_exception_type((
            ConnectionError,
            TimeoutError,
            Exception,
        )),
        stop=stop_after_attempt(settings.retry_max_attempts),
        # wait = min(max_wait, min_wait * 2^attempt) + random(0, 1)
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_gemini_with_retry(self, prompt: str, call_id: str) -> str:
        """
        Makes the actual Gemini API call. Retried by tenacity; the circuit
        breaker check in generate_analysis() is deliberately outside the retry.
        """
        start_time = time.time()

        try:
            response = await self.model.generate_content_async(
                prompt,
                request_options={"timeout": 60},
            )
            duration_ms = (time.time() - start_time) * 1000
            analysis = response.text.strip() if response.text else ""

            logger.info(
                "[%s] Gemini analysis completed in %.0fms, %d chars",
                call_id,
                duration_ms,
                len(analysis),
            )
            return analysis

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                call_id,
                duration_ms,
                str(e),
            )
            raise  # Let tenacity handle the retry

    async def health_check(self) -> bool:
        """
        Check if Gemini API is reachable by listing models (no token cost).
        """
        try:
            models = genai.list_models()
            model_names = [m.name for m in models]
            target = f"models/{self.model_name}"
            if target not in model_names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False
