"""
Review sync server.

Responsibilities:
- Keep the shared, soft-delete based review store and the user table.
- Merge pushed review batches from devices (last-write-wins by
  ``(restaurant_id, user_id)``) and hand back the authoritative set.
- Serve single-row review CRUD with ownership and staleness checks.
- Keep emoji reaction counts and user avatars next to the reviews.
"""
