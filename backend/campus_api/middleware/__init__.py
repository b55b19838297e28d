# Middleware package init
"""
Campus API — Request Pipeline Package
======================================

What:  Cross-cutting concerns applied to every API route.
Why:   Each route declares what it needs (auth, roles, quota, schema) in a
       RouteConfig; the pipeline does the rest without code in the handler.

Stage order (fixed, see pipeline.py):
    Request → [RequestLogger] → [Security headers] → [Verb check]
            → [RateLimiter] → [AuthGate] → [Validator] → Business handler

    Why this order:
    1. Logger FIRST: every request gets a correlation id, even rejected ones
    2. Rate limit before auth: an anonymous flood spends its quota before 401
    3. Validation last: no parsing work for callers who may not call the route

Modules:
    - context.py:    RequestContext, RouteConfig, Ok / Rejected results
    - request_id.py: correlation id ContextVar and logging filter
    - logging.py:    RequestLogger stage
    - security.py:   security headers and input sanitization
    - rate_limit.py: RateLimiter stage, cleanup sweep
    - auth.py:       AuthGate stage, admin check
    - validation.py: Validator stage
    - pipeline.py:   PipelineComposer (api / public / admin variants)
"""
