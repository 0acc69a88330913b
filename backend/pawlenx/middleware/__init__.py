# Middleware package init
"""
PawLenx Backend — Middleware Package
======================================

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    - Rate Limit: per-IP sliding window on credential and submission paths
    - Request ID: X-Request-ID in and out, stored in a ContextVar
    - Logging:    one access line per request with status and duration
"""
