"""
E-Permitted Backend — Middleware Package
=========================================

Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    1. Rate Limit first: reject abusive clients before any processing
    2. Request ID: correlation ID for logs and error envelopes
    3. Logging: access log line with status and duration
"""
