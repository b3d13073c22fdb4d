"""
E-Permitted Backend — Services Layer
=====================================

Business logic between routes (HTTP) and the database.

Service Inventory:
    - ReferenceAllocator: next `<PREFIX>-<YYYY>-<NNNNN>` reference per council/year
    - ApplicationService: intake, lookup, listing and status lifecycle
    - AnalysisQueue: background AI review of submitted applications
    - LLMService (abstract): interface for the AI provider
    - GeminiService: Google Gemini implementation with retry + circuit breaker
    - AuthService: registration and login
    - UserService / CouncilService: account, council and permit type CRUD

Services receive the session they work in and never touch HTTP objects, so
the seed script and the tests call them directly.
"""
