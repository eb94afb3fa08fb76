# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for one part of the platform:
#
#   article_service     - query engine, CRUD and cache for Article
#   engagement_service  - like / save toggles and the saved-articles list
#   user_service        - credential store and profile updates
#   auth_service        - registration, login and token resolution
#   chat_relay          - in-process WebSocket room fan-out
#
# Database-backed service functions accept an AsyncSession as their first
# argument so that the router layer controls the transaction boundary via
# the ``get_db`` dependency.
