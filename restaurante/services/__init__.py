"""
                        Services Module

Business logic, one service per concern. External providers follow the
hybrid pattern: a Mock implementation for development and a Real one for
staging/production, chosen by a cached factory.

Services:
    - auth_service: registration, login and tokens
    - catalog_service: categories and dishes
    - order_service: checkout and order management
    - rating_service: dish ratings and top-rated ranking
    - user_service: user administration
    - notifications: SMS delivery (Twilio)
    - verification: pending registration store (memory / Redis)
    - excel_manager: process-safe Excel order ledger
"""
