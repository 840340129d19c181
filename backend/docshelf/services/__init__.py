# Services package init
"""
DocShelf Backend — Services Layer
===================================

What:  Business logic between the routes (HTTP) and the database.
How:   Services take an AsyncSession from the route, build a PageStore around
       it, and return response schemas.

Service Inventory:
    - PageStore (abstract): storage interface for pages
    - PageRepository: SQLAlchemy implementation of PageStore
    - reindexer: pure position arithmetic (reindex, compact)
    - PartitionLocks: per-API mutual exclusion for writes
    - PageService: CRUD, reorder and compaction of an API's pages
"""
