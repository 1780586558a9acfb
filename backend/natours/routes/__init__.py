"""
Natours Backend: API Routes Package
====================================

Route Inventory:
    - tours.py:    /api/v1/tours    (CRUD, aliases, stats, geo, nested reviews)
    - users.py:    /api/v1/users    (auth flow, self-service, admin)
    - reviews.py:  /api/v1/reviews  (CRUD)
    - health.py:   /health

Routes stay thin: read the request, call a service, wrap the result.
"""
