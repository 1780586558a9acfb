"""
Natours Backend: Services Package
==================================

Business logic, one stateless class per concern with a module-level
singleton (tour_service, review_service, user_service, auth_service,
email_service, image_service). query_features and geo are plain helpers.
Services raise NatoursError subclasses and never see a Request.
"""
