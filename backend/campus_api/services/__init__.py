# Services package init
"""
Campus API — Services Layer
============================

What:  External collaborators of the request pipeline and the business logic
       behind the routes.
Why:   The pipeline depends on small interfaces, not on Redis or SQL, so tests
       swap in in-memory fakes.

Service Inventory:
    - CounterStore (abstract) / RedisCounterStore: rate-limit counters
    - SessionProvider (abstract) / SqlSessionProvider: token → Principal
    - NewsService: campus news CRUD
"""
