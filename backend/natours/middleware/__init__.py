"""
Natours Backend: Middleware Package
====================================

Middleware Chain (execution order):
    Request → [Request ID] → [Rate Limit] → [Security Headers] → [Logging]
            → [GZip] → [CORS] → Route Handler

    1. Request ID first: every later log line and error body, a 429
       included, carries the correlation id.
    2. Rate Limit: reject abusive clients before any other work.
    3. Security Headers: refuse oversized bodies, harden every response.
    4. Logging: method, path, status and duration per request.
"""
