"""
Campus API — API Routes Package
================================

What:  Business handlers and the routers that mount them.
How:   Each module exposes build_router(pipeline). Handlers are plain
       `async (ctx, data) -> Response` functions; the pipeline around them
       does logging, rate limiting, auth, CSRF and validation.
       Cookie-authenticated writes must echo the CSRF cookie in a header.

Route Inventory:
    - health.py:  GET    /health                     (plain route, no pipeline)
    - me.py:      GET    /api/me                     (api, authenticated)
                  GET    /api/csrf-token             (public)
    - news.py:    GET    /api/news                   (api, optional auth)
                  POST   /api/news                   (api, ADMIN/INSTRUCTOR)
                  GET    /api/news/{news_id}         (api, optional auth)
                  PUT    /api/news/{news_id}         (api, ADMIN/INSTRUCTOR)
                  DELETE /api/news/{news_id}         (api, ADMIN)
    - admin.py:   DELETE /api/admin/rate-limits      (admin pipeline)

Design Principle:
    Handlers stay THIN: read ctx.principal and the validated data, call a
    service, and return success_response(). Business logic lives in services.
"""
