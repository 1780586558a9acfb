"""
Natours Backend
===============

Tour-booking REST API: tours, users and reviews behind JWT authentication.

Package map:
    config, database        settings and the async SQLAlchemy engine
    models, schemas         ORM tables and the camelCase JSON contract
    services                tours, reviews, users, auth, email, images, geo
    routes, dependencies    /api/v1 handlers and their auth guards
    middleware, main        request pipeline and the FastAPI factory

Run with `uvicorn natours.main:app` from the backend/ directory.
"""

__version__ = "1.0.0"
