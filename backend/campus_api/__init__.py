"""
Campus API — Application Package Initializer
============================================

What: The JSON API behind the association platform (users, news, events...).
Why:  Every API route runs through one request pipeline; this package holds the
      pipeline, its collaborators, and the routes that use it.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← thin business handlers
    ├─────────────────────────────────────┤
    │     Middleware Pipeline (per route) │  ← log → secure → rate → auth → validate
    ├─────────────────────────────────────┤
    │   Services (counter store, sessions,│  ← external collaborators behind
    │   data access)                      │    small interfaces
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Collaborators are constructed once in create_app() and injected into the
    PipelineComposer, so tests swap them for in-memory fakes.
"""

__version__ = "1.0.0"
