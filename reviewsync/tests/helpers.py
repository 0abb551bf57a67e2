from __future__ import annotations

from datetime import date

from reviewsync.client.models import Review


def review_body(restaurant_id: int = 1001, user_id: str = "user-a", **overrides) -> dict:
    """camelCase request body for the review endpoints."""
    body = {
        "restaurantId": restaurant_id,
        "restaurantName": "Zum Roten Ochsen",
        "restaurantLat": 49.41206,
        "restaurantLon": 8.71064,
        "restaurantAddress": "Hauptstraße 217, 69117 Heidelberg",
        "rating": 4.0,
        "comment": "Good",
        "visitDate": "2024-05-01",
        "userId": user_id,
        "userName": "Alice",
    }
    body.update(overrides)
    return body


def local_review(restaurant_id: int = 1001, **overrides) -> Review:
    fields = {
        "restaurant_id": restaurant_id,
        "restaurant_name": "Zum Roten Ochsen",
        "restaurant_lat": 49.41206,
        "restaurant_lon": 8.71064,
        "restaurant_address": "Hauptstraße 217, 69117 Heidelberg",
        "rating": 4.0,
        "comment": "Good",
        "visit_date": date(2024, 5, 1),
    }
    fields.update(overrides)
    return Review(**fields)
