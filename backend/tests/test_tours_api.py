"""
Natours Backend: Tour Endpoint Tests (HTTP level)
==================================================

What we test:
    ✅ Listing: filtering, IN on repeated params, sorting, fields, paging
    ✅ Secret tours never show up
    ✅ Create / update / delete with role checks and validation
    ✅ Multipart image upload on update
    ✅ top-5-cheap, tour-stats and monthly-plan
    ✅ tours-within and distances
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from natours.config import settings

TOURS = "/api/v1/tours"

LA_POINT = {"type": "Point", "coordinates": [-118.2437, 34.0522], "address": "Los Angeles"}
SF_POINT = {"type": "Point", "coordinates": [-122.4194, 37.7749], "address": "San Francisco"}
MIAMI_POINT = {"type": "Point", "coordinates": [-80.1918, 25.7617], "address": "Miami"}


def tour_body(**overrides):
    body = {
        "name": "The Forest Hiker",
        "duration": 5,
        "maxGroupSize": 25,
        "difficulty": "easy",
        "price": 397,
        "summary": "Breathtaking hike through the Canadian Banff National Park",
        "imageCover": "tour-1-cover.jpg",
        "startDates": ["2021-04-25T09:00:00Z", "2021-07-20T09:00:00Z"],
    }
    body.update(overrides)
    return body


class TestListTours:

    @pytest.mark.asyncio
    async def test_list_excludes_secret_tours(self, test_client, make_tour):
        await make_tour(name="The Sea Explorer")
        await make_tour(name="The Secret Voyage", secret_tour=True)

        response = await test_client.get(TOURS)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["results"] == 1
        assert [t["name"] for t in body["data"]] == ["The Sea Explorer"]

    @pytest.mark.asyncio
    async def test_response_shape(self, test_client, make_tour):
        await make_tour(name="The Sea Explorer", duration=14)
        tour = (await test_client.get(TOURS)).json()["data"][0]

        assert tour["slug"] == "the-sea-explorer"
        assert tour["durationWeeks"] == 2
        assert tour["ratingsAverage"] == 4.5
        assert "createdAt" not in tour

    @pytest.mark.asyncio
    async def test_filter_by_operator(self, test_client, make_tour):
        await make_tour(name="The Cheap One Tour", price=300)
        await make_tour(name="The Pricey One Tour", price=2000)

        response = await test_client.get(TOURS, params={"price[lt]": "1000"})

        assert [t["name"] for t in response.json()["data"]] == ["The Cheap One Tour"]

    @pytest.mark.asyncio
    async def test_repeated_whitelisted_param_matches_any(self, test_client, make_tour):
        await make_tour(name="The Easy Walk Tour", difficulty="easy")
        await make_tour(name="The Medium Walk Tour", difficulty="medium")
        await make_tour(name="The Hard Climb Tour", difficulty="difficult")

        response = await test_client.get(f"{TOURS}?difficulty=easy&difficulty=medium&sort=name")

        assert [t["name"] for t in response.json()["data"]] == [
            "The Easy Walk Tour",
            "The Medium Walk Tour",
        ]

    @pytest.mark.asyncio
    async def test_repeated_sort_keeps_last(self, test_client, make_tour):
        await make_tour(name="The Cheap One Tour", price=300)
        await make_tour(name="The Pricey One Tour", price=2000)

        response = await test_client.get(f"{TOURS}?sort=price&sort=-price")

        assert response.json()["data"][0]["name"] == "The Pricey One Tour"

    @pytest.mark.asyncio
    async def test_fields_and_pagination(self, test_client, make_tour):
        for price in (100, 200, 300):
            await make_tour(name=f"Tour Priced At {price}", price=price)

        response = await test_client.get(
            TOURS, params={"sort": "price", "fields": "name,price", "page": "2", "limit": "1"}
        )

        body = response.json()
        assert body["results"] == 1
        assert body["data"][0] == {
            "id": body["data"][0]["id"],
            "name": "Tour Priced At 200",
            "price": 200.0,
        }

    @pytest.mark.asyncio
    async def test_unknown_filter_field(self, test_client):
        response = await test_client.get(TOURS, params={"secretTour": "true"})
        assert response.status_code == 400
        assert response.json()["status"] == "fail"

    @pytest.mark.asyncio
    async def test_top_5_cheap(self, test_client, make_tour):
        for i in range(6):
            await make_tour(name=f"Alias Tour Number {i}", price=100 + i, ratings_average=4.8)

        response = await test_client.get(f"{TOURS}/top-5-cheap")

        body = response.json()
        assert body["results"] == 5
        assert body["data"][0]["name"] == "Alias Tour Number 0"
        assert set(body["data"][0]) == {"id", "name", "price", "ratingsAverage", "summary", "difficulty"}


class TestGetTour:

    @pytest.mark.asyncio
    async def test_get_with_guides_and_reviews(self, test_client, make_tour, make_user):
        guide = await make_user(role="lead-guide", name="Steven Miller")
        tour = await make_tour(name="The Park Camper", guides=[guide])

        response = await test_client.get(f"{TOURS}/{tour.id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["name"] == "The Park Camper"
        assert data["guides"][0]["name"] == "Steven Miller"
        assert "password" not in data["guides"][0]
        assert data["reviews"] == []
        assert data["startDates"][0].startswith("2021-06-19T09:00:00")

    @pytest.mark.asyncio
    async def test_not_found(self, test_client):
        response = await test_client.get(f"{TOURS}/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404
        assert response.json()["message"] == "No tour found with that ID"

    @pytest.mark.asyncio
    async def test_malformed_id(self, test_client):
        response = await test_client.get(f"{TOURS}/not-a-uuid")
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid tour_id: not-a-uuid."

    @pytest.mark.asyncio
    async def test_secret_tour_is_not_found(self, test_client, make_tour):
        tour = await make_tour(name="The Secret Voyage", secret_tour=True)
        response = await test_client.get(f"{TOURS}/{tour.id}")
        assert response.status_code == 404


class TestCreateTour:

    @pytest.mark.asyncio
    async def test_create_as_admin(self, test_client, make_user, auth_headers):
        admin = await make_user(role="admin")
        guide = await make_user(role="guide")

        response = await test_client.post(
            TOURS,
            headers=auth_headers(admin),
            json=tour_body(guides=[str(guide.id)], startLocation=LA_POINT),
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["slug"] == "the-forest-hiker"
        assert data["ratingsAverage"] == 4.5
        assert data["ratingsQuantity"] == 0
        assert data["startLocation"]["coordinates"] == [-118.2437, 34.0522]
        assert [g["id"] for g in data["guides"]] == [str(guide.id)]
        assert len(data["startDates"]) == 2

    @pytest.mark.asyncio
    async def test_create_requires_login(self, test_client):
        response = await test_client.post(TOURS, json=tour_body())
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_create_forbidden_for_users(self, test_client, make_user, auth_headers):
        user = await make_user(role="user")
        response = await test_client.post(TOURS, headers=auth_headers(user), json=tour_body())
        assert response.status_code == 403
        assert response.json()["message"] == "You do not have permission to perform this action"

    @pytest.mark.asyncio
    async def test_name_too_short(self, test_client, make_user, auth_headers):
        admin = await make_user(role="admin")
        response = await test_client.post(
            TOURS, headers=auth_headers(admin), json=tour_body(name="Short")
        )
        assert response.status_code == 400
        assert "A tour name must have at least 10 characters" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_name_length_counts_escaped_form(self, test_client, make_user, auth_headers):
        admin = await make_user(role="admin")

        # 40 characters as typed, 70 once the brackets are escaped
        over = await test_client.post(
            TOURS, headers=auth_headers(admin), json=tour_body(name="<" * 10 + "a" * 30)
        )
        assert over.status_code == 400
        assert "A tour name must not be more than 40 characters" in over.json()["message"]

        at_limit = await test_client.post(
            TOURS, headers=auth_headers(admin), json=tour_body(name="<<" + "a" * 32)
        )
        assert at_limit.status_code == 201
        assert at_limit.json()["data"]["name"] == "&lt;&lt;" + "a" * 32

    @pytest.mark.asyncio
    async def test_invalid_difficulty(self, test_client, make_user, auth_headers):
        admin = await make_user(role="admin")
        response = await test_client.post(
            TOURS, headers=auth_headers(admin), json=tour_body(difficulty="extreme")
        )
        assert response.status_code == 400
        assert "Difficulty is either: easy, medium, difficult" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_discount_must_be_below_price(self, test_client, make_user, auth_headers):
        admin = await make_user(role="admin")
        response = await test_client.post(
            TOURS, headers=auth_headers(admin), json=tour_body(price=500, priceDiscount=600)
        )
        assert response.status_code == 400
        assert "Discount price (600) should be lower than regular price" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_duplicate_name(self, test_client, make_user, make_tour, auth_headers):
        admin = await make_user(role="admin")
        await make_tour(name="The Forest Hiker")
        response = await test_client.post(TOURS, headers=auth_headers(admin), json=tour_body())
        assert response.status_code == 400
        assert response.json()["message"].startswith("Duplicate field value")

    @pytest.mark.asyncio
    async def test_regular_user_cannot_be_guide(self, test_client, make_user, auth_headers):
        admin = await make_user(role="admin")
        user = await make_user(role="user")
        response = await test_client.post(
            TOURS, headers=auth_headers(admin), json=tour_body(guides=[str(user.id)])
        )
        assert response.status_code == 400


class TestUpdateTour:

    @pytest.mark.asyncio
    async def test_update_price_and_name(self, test_client, make_user, make_tour, auth_headers):
        lead = await make_user(role="lead-guide")
        tour = await make_tour(name="The Snow Adventurer", price=997)

        response = await test_client.patch(
            f"{TOURS}/{tour.id}",
            headers=auth_headers(lead),
            json={"price": 899, "name": "The Snowy Adventurer"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["price"] == 899
        assert data["slug"] == "the-snowy-adventurer"

    @pytest.mark.asyncio
    async def test_price_below_existing_discount(self, test_client, make_user, make_tour, auth_headers):
        admin = await make_user(role="admin")
        tour = await make_tour(name="The Snow Adventurer", price=997, price_discount=500)

        response = await test_client.patch(
            f"{TOURS}/{tour.id}", headers=auth_headers(admin), json={"price": 400}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Discount price (500) should be lower than regular price"

    @pytest.mark.asyncio
    async def test_required_field_cannot_be_nulled(self, test_client, make_user, make_tour, auth_headers):
        admin = await make_user(role="admin")
        tour = await make_tour()
        response = await test_client.patch(
            f"{TOURS}/{tour.id}", headers=auth_headers(admin), json={"summary": None}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_multipart_images(self, test_client, make_user, make_tour, auth_headers, sample_jpeg):
        admin = await make_user(role="admin")
        tour = await make_tour()

        response = await test_client.patch(
            f"{TOURS}/{tour.id}",
            headers=auth_headers(admin),
            data={"price": "450"},
            files=[
                ("imageCover", ("cover.jpg", sample_jpeg, "image/jpeg")),
                ("images", ("a.jpg", sample_jpeg, "image/jpeg")),
                ("images", ("b.jpg", sample_jpeg, "image/jpeg")),
            ],
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["price"] == 450
        assert data["imageCover"].startswith(f"tour-{tour.id}-")
        assert data["imageCover"].endswith("-cover.jpeg")
        assert len(data["images"]) == 2

    @pytest.mark.asyncio
    async def test_multipart_rejects_non_image(self, test_client, make_user, make_tour, auth_headers):
        admin = await make_user(role="admin")
        tour = await make_tour()

        response = await test_client.patch(
            f"{TOURS}/{tour.id}",
            headers=auth_headers(admin),
            files=[("imageCover", ("notes.txt", b"hello", "text/plain"))],
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Not an image! Please upload only images."

    @pytest.mark.asyncio
    async def test_failed_gallery_leaves_no_files(
        self, test_client, make_user, make_tour, auth_headers, sample_jpeg
    ):
        admin = await make_user(role="admin")
        tour = await make_tour()

        response = await test_client.patch(
            f"{TOURS}/{tour.id}",
            headers=auth_headers(admin),
            files=[
                ("imageCover", ("cover.jpg", sample_jpeg, "image/jpeg")),
                ("images", ("a.jpg", sample_jpeg, "image/jpeg")),
                ("images", ("broken.jpg", b"not really a jpeg", "image/jpeg")),
            ],
        )

        assert response.status_code == 400
        leftovers = list((Path(settings.storage_root) / "tours").glob(f"tour-{tour.id}-*"))
        assert leftovers == []


class TestDeleteTour:

    @pytest.mark.asyncio
    async def test_delete(self, test_client, make_user, make_tour, auth_headers):
        admin = await make_user(role="admin")
        tour = await make_tour()

        response = await test_client.delete(f"{TOURS}/{tour.id}", headers=auth_headers(admin))

        assert response.status_code == 204
        assert response.content == b""
        assert (await test_client.get(f"{TOURS}/{tour.id}")).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_forbidden_for_guides(self, test_client, make_user, make_tour, auth_headers):
        guide = await make_user(role="guide")
        tour = await make_tour()
        response = await test_client.delete(f"{TOURS}/{tour.id}", headers=auth_headers(guide))
        assert response.status_code == 403


class TestReports:

    @pytest.mark.asyncio
    async def test_tour_stats(self, test_client, make_tour):
        await make_tour(name="Easy Tour Number A", difficulty="easy", price=400, ratings_average=4.8, ratings_quantity=3)
        await make_tour(name="Easy Tour Number B", difficulty="easy", price=600, ratings_average=4.6, ratings_quantity=2)
        await make_tour(name="Hard Tour Number A", difficulty="difficult", price=2000, ratings_average=4.9)
        await make_tour(name="Low Rated Tour One", difficulty="medium", price=100, ratings_average=3.0)

        response = await test_client.get(f"{TOURS}/tour-stats")

        assert response.status_code == 200
        stats = response.json()["data"]["stats"]
        assert [s["difficulty"] for s in stats] == ["EASY", "DIFFICULT"]
        easy = stats[0]
        assert easy["numTours"] == 2
        assert easy["numRatings"] == 5
        assert easy["avgPrice"] == 500
        assert easy["minPrice"] == 400
        assert easy["maxPrice"] == 600
        assert easy["avgRating"] == pytest.approx(4.7)

    @pytest.mark.asyncio
    async def test_monthly_plan(self, test_client, make_tour, make_user, auth_headers):
        guide = await make_user(role="guide")
        await make_tour(
            name="The Forest Hiker",
            start_dates=[
                datetime(2021, 4, 25, 9, tzinfo=timezone.utc),
                datetime(2021, 7, 20, 9, tzinfo=timezone.utc),
                datetime(2022, 7, 5, 9, tzinfo=timezone.utc),
            ],
        )
        await make_tour(
            name="The Sea Explorer",
            start_dates=[datetime(2021, 7, 1, 9, tzinfo=timezone.utc)],
        )

        response = await test_client.get(f"{TOURS}/monthly-plan/2021", headers=auth_headers(guide))

        assert response.status_code == 200
        plan = response.json()["data"]["plan"]
        assert plan[0]["month"] == 7
        assert plan[0]["numTourStarts"] == 2
        assert sorted(plan[0]["tours"]) == ["The Forest Hiker", "The Sea Explorer"]
        assert plan[1] == {"month": 4, "numTourStarts": 1, "tours": ["The Forest Hiker"]}
        assert len(plan) == 2

    @pytest.mark.asyncio
    async def test_monthly_plan_forbidden_for_users(self, test_client, make_user, auth_headers):
        user = await make_user(role="user")
        response = await test_client.get(f"{TOURS}/monthly-plan/2021", headers=auth_headers(user))
        assert response.status_code == 403


class TestGeo:

    async def _seed(self, make_tour):
        await make_tour(name="The Los Angeles Tour", start_location=LA_POINT)
        await make_tour(name="The San Francisco Tour", start_location=SF_POINT)
        await make_tour(name="The Miami Beach Tour", start_location=MIAMI_POINT)
        await make_tour(name="The Nowhere Tour Yet")

    @pytest.mark.asyncio
    async def test_tours_within(self, test_client, make_tour):
        await self._seed(make_tour)

        response = await test_client.get(f"{TOURS}/tours-within/400/center/34.05,-118.24/unit/mi")

        assert response.status_code == 200
        body = response.json()
        names = sorted(t["name"] for t in body["data"]["data"])
        assert names == ["The Los Angeles Tour", "The San Francisco Tour"]
        assert body["results"] == 2

    @pytest.mark.asyncio
    async def test_tours_within_km(self, test_client, make_tour):
        await self._seed(make_tour)
        response = await test_client.get(f"{TOURS}/tours-within/100/center/34.05,-118.24/unit/km")
        assert [t["name"] for t in response.json()["data"]["data"]] == ["The Los Angeles Tour"]

    @pytest.mark.asyncio
    async def test_distances(self, test_client, make_tour):
        await self._seed(make_tour)

        response = await test_client.get(f"{TOURS}/distances/34.0522,-118.2437/unit/km")

        data = response.json()["data"]["data"]
        assert [d["name"] for d in data] == [
            "The Los Angeles Tour",
            "The San Francisco Tour",
            "The Miami Beach Tour",
        ]
        assert data[0]["distance"] == pytest.approx(0, abs=0.001)
        assert data[1]["distance"] == pytest.approx(559, rel=0.01)

    @pytest.mark.asyncio
    async def test_bad_unit(self, test_client):
        response = await test_client.get(f"{TOURS}/distances/34.05,-118.24/unit/m")
        assert response.status_code == 400
        assert response.json()["message"] == "Unit must be either 'mi' or 'km'."

    @pytest.mark.asyncio
    async def test_bad_latlng(self, test_client):
        response = await test_client.get(f"{TOURS}/tours-within/10/center/34.05/unit/mi")
        assert response.status_code == 400
        assert response.json()["message"] == (
            "Please provide latitude and longitude in the format lat,lng."
        )
