import pytest
from pymongo.errors import PyMongoError

from marketplace import ratings


@pytest.fixture
def shop(register_shop):
    return register_shop(name="Review Shop")


def post_review(client, shop, rating=None, **fields):
    payload = {"customerName": "Sam", "rating": rating, "comment": "Nice"}
    payload.update(fields)
    return client.post(f"/api/shops/{shop['slug']}/reviews", json=payload)


def shop_rating(client, shop):
    return client.get(f"/api/shops/{shop['id']}").get_json()["rating"]


def test_rating_follows_reviews(client, shop):
    assert shop_rating(client, shop) == 0

    first = post_review(client, shop, 4)
    assert first.status_code == 201
    assert first.get_json()["rating"] == 4.0
    assert first.get_json()["totalReviews"] == 1
    assert shop_rating(client, shop) == 4.0

    second = post_review(client, shop, 5)
    assert second.get_json()["rating"] == 4.5
    assert second.get_json()["totalReviews"] == 2
    assert shop_rating(client, shop) == 4.5


def test_rating_rounds_half_up(client, shop):
    for value in (4, 4, 4, 5):
        response = post_review(client, shop, value)
    assert response.get_json()["rating"] == 4.3


@pytest.mark.parametrize("value", [0, 6, -1, "4.5", "four", 3.5, True, "²"])
def test_out_of_domain_rating_is_rejected(client, db, shop, value):
    response = post_review(client, shop, value)
    assert response.status_code == 400
    assert db.reviews.count_documents({}) == 0


@pytest.mark.parametrize("value", [1, 5, "3"])
def test_boundary_ratings_are_accepted(client, shop, value):
    response = post_review(client, shop, value)
    assert response.status_code == 201
    assert response.get_json()["review"]["rating"] == int(value)


@pytest.mark.parametrize("field", ["customerName", "comment", "rating"])
def test_review_requires_fields(client, db, shop, field):
    response = post_review(client, shop, **{"rating": 4, field: ""})
    assert response.status_code == 400
    assert db.reviews.count_documents({}) == 0


def test_review_for_unknown_shop(client):
    response = client.post("/api/shops/nowhere/reviews", json={"customerName": "A", "rating": 3, "comment": "x"})
    assert response.status_code == 404


def test_list_reviews(client, shop, clock):
    post_review(client, shop, 2, comment="Meh")
    clock.advance(minutes=1)
    post_review(client, shop, 5, comment="Great")
    body = client.get(f"/api/shops/{shop['slug']}/reviews").get_json()
    assert [review["comment"] for review in body["reviews"]] == ["Great", "Meh"]
    assert body["averageRating"] == 3.5
    assert body["totalReviews"] == 2


def test_list_reviews_empty(client, shop):
    body = client.get(f"/api/shops/{shop['slug']}/reviews").get_json()
    assert body == {"reviews": [], "averageRating": 0.0, "totalReviews": 0}


def test_review_kept_when_rating_refresh_fails(client, db, shop, monkeypatch):
    post_review(client, shop, 2)

    def broken(shop_id):
        raise PyMongoError("aggregate failed")

    monkeypatch.setattr(ratings, "summarize_reviews", broken)
    response = post_review(client, shop, 5)
    assert response.status_code == 201
    body = response.get_json()
    assert body["rating"] is None
    assert body["totalReviews"] is None
    assert db.reviews.count_documents({}) == 2
    assert shop_rating(client, shop) == 2.0


def test_round_rating():
    assert ratings.round_rating(0, 0) == 0.0
    assert ratings.round_rating(17, 4) == 4.3
    assert ratings.round_rating(14, 3) == 4.7
    assert ratings.round_rating(5, 1) == 5.0
