# Routes package init
"""
DocShelf Backend — API Routes Package
=======================================

Route Inventory:
    - pages.py:   /api/apis/{api_id}/pages[...]   (page CRUD, reorder, compact)
    - health.py:  GET /health                     (service health check)

Routes are thin: they extract request data, call PageService, and set
status codes and headers. Business logic lives in services.
"""
