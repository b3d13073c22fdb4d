"""
E-Permitted Backend — Abstract LLM Service Interface
=====================================================

What:  Abstract base class for the AI provider that analyses applications.
How:   Concrete implementations inherit from LLMService and implement
       generate_analysis() and health_check().
Who:   Called by the AnalysisQueue worker; tests substitute a fake provider.
"""

from abc import ABC, abstractmethod


class LLMService(ABC):
    """
    Abstract interface for AI-generated application analysis.

    Contract:
        - generate_analysis() accepts a prompt and returns the model's text
        - Implementations handle their own retry logic and error translation
        - Provider-specific errors are wrapped in LLMServiceError
        - `model_name` identifies the model recorded alongside each analysis

    Implementations:
        - GeminiService: Google Gemini (default)
    """

    model_name: str = "unknown"

    @abstractmethod
    async def generate_analysis(self, prompt: str) -> str:
        """
        Produce a natural-language analysis for the given prompt.

        Returns:
            The analysis text. Empty string if the model returned nothing.

        Raises:
            LLMServiceError: When the AI service fails after all retries.
            CircuitBreakerOpenError: When recent failures opened the circuit.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the LLM service is reachable and operational.

        Lightweight (does not consume generation quota). Never raises.
        """
        ...
