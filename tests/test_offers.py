import io
import re

import pytest


@pytest.fixture
def shop(register_shop):
    return register_shop(name="Offer Shop")


def create_offer(client, shop_id, **fields):
    payload = {
        "shopId": shop_id,
        "title": "Summer sale",
        "description": "Everything must go",
        "startDate": "2024-06-01",
        "endDate": "2024-06-10",
        "discount": "20%",
    }
    payload.update(fields)
    return client.post("/api/offers", data=payload)


def test_create_offer_by_slug(client, shop):
    response = create_offer(client, shop["slug"])
    assert response.status_code == 201
    offer = response.get_json()["offer"]
    assert offer["shopId"] == shop["id"]
    assert offer["shopName"] == "Offer Shop"
    assert offer["startDate"] == "2024-06-01T00:00:00Z"
    assert offer["endDate"] == "2024-06-10T00:00:00Z"
    assert offer["imageUrl"] is None


def test_end_before_start_is_rejected(client, db, shop):
    response = create_offer(client, shop["id"], startDate="2024-06-10", endDate="2024-06-09")
    assert response.status_code == 400
    assert db.offers.count_documents({}) == 0


def test_end_equal_to_start_is_accepted(client, shop):
    response = create_offer(client, shop["id"], startDate="2024-06-10", endDate="2024-06-10")
    assert response.status_code == 201


def test_offer_validation(client, shop):
    assert create_offer(client, shop["id"], title="").status_code == 400
    assert create_offer(client, shop["id"], endDate="next tuesday").status_code == 400
    assert create_offer(client, "missing-shop").status_code == 404


def test_aware_dates_are_stored_as_utc(client, shop):
    response = create_offer(
        client, shop["id"], startDate="2024-06-05T10:00:00+02:00", endDate="2024-06-06T00:00:00Z"
    )
    offer = response.get_json()["offer"]
    assert offer["startDate"] == "2024-06-05T08:00:00Z"
    assert offer["endDate"] == "2024-06-06T00:00:00Z"


def test_offer_image_upload(client, shop):
    response = client.post(
        "/api/offers",
        data={
            "shopId": shop["id"],
            "title": "Photo deal",
            "description": "With a picture",
            "startDate": "2024-06-01",
            "endDate": "2024-06-02",
            "discount": "10%",
            "image": (io.BytesIO(b"jpeg-bytes"), "deal.JPG"),
        },
        content_type="multipart/form-data",
    )
    assert response.status_code == 201
    image_url = response.get_json()["offer"]["imageUrl"]
    assert re.match(r"^/uploads/offer-deal-\d+\.jpg$", image_url), image_url


def test_active_offers_exclude_expired(client, shop, clock):
    create_offer(client, shop["id"], title="Short", endDate="2024-06-02")
    clock.advance(minutes=1)
    create_offer(client, shop["id"], title="Long", endDate="2024-06-20")

    titles = [offer["title"] for offer in client.get("/api/offers").get_json()]
    assert titles == ["Long", "Short"]

    clock.advance(days=3)
    offers = client.get("/api/offers").get_json()
    assert [offer["title"] for offer in offers] == ["Long"]
    assert offers[0]["shopName"] == "Offer Shop"


def test_offer_ending_exactly_now_is_still_active(client, shop, clock):
    create_offer(client, shop["id"], startDate="2024-06-01T12:00:00", endDate="2024-06-01T12:00:00")
    assert len(client.get("/api/offers").get_json()) == 1
    clock.advance(seconds=1)
    assert client.get("/api/offers").get_json() == []


def test_shop_offers(client, register_shop, shop):
    other = register_shop(name="Other Shop")
    create_offer(client, shop["id"], title="Mine")
    create_offer(client, other["id"], title="Theirs")
    offers = client.get(f"/api/shops/{shop['slug']}/offers").get_json()
    assert [offer["title"] for offer in offers] == ["Mine"]


def test_delete_expired_offers(client, db, shop, clock):
    create_offer(client, shop["id"], title="Old", endDate="2024-06-02")
    create_offer(client, shop["id"], title="Current", endDate="2024-07-01")
    clock.advance(days=5)

    response = client.delete("/api/offers/expired")
    assert response.status_code == 200
    assert response.get_json()["deletedCount"] == 1
    assert db.offers.count_documents({"end_date": {"$lt": clock.now()}}) == 0
    assert db.offers.count_documents({}) == 1

    again = client.delete("/api/offers/expired")
    assert again.get_json()["deletedCount"] == 0
