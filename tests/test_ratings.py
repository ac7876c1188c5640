"""Rating upsert, listing, deletion and the top-rated ranking."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from restaurante.core.errors import DuplicateError, NotFoundError
from restaurante.models import Dish, Rating
from restaurante.services.rating_service import RANDOM_PICK_MESSAGE, RatingService


async def rate(client, dish_id, headers, stars, comment=None):
    body = {"calificacion": stars}
    if comment is not None:
        body["comentario"] = comment
    return await client.post(f"/platillos/{dish_id}/calificaciones", json=body, headers=headers)


async def rating_rows(session_maker, dish_id):
    async with session_maker() as session:
        result = await session.execute(select(Rating).where(Rating.dish_id == dish_id))
        return list(result.scalars().all())


async def test_first_rating_is_created_then_updated(client, catalog, shopper_headers, session_maker):
    dish = catalog["dishes"][0]

    response = await rate(client, dish.id, shopper_headers, 4.6, "Muy rico")
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["stars"] == 5
    assert data["comment"] == "Muy rico"
    assert data["user_name"] == "Ana"
    assert data["dish_name"] == "Taco al pastor"

    response = await rate(client, dish.id, shopper_headers, 4.4)
    assert response.status_code == 200
    assert response.json()["data"]["stars"] == 4
    assert response.json()["data"]["comment"] is None

    rows = await rating_rows(session_maker, dish.id)
    assert len(rows) == 1
    assert rows[0].stars == 4


async def test_half_star_rounds_up(client, catalog, shopper_headers):
    response = await rate(client, catalog["dishes"][0].id, shopper_headers, 4.5)
    assert response.json()["data"]["stars"] == 5


@pytest.mark.parametrize("stars", [0, 6, "cinco", None, "nan", float("nan")])
async def test_invalid_stars_are_rejected(client, catalog, shopper_headers, session_maker, stars):
    dish = catalog["dishes"][0]

    response = await rate(client, dish.id, shopper_headers, stars)
    assert response.status_code == 400
    assert await rating_rows(session_maker, dish.id) == []


async def test_rating_unknown_dish(client, shopper_headers):
    response = await rate(client, 999, shopper_headers, 5)
    assert response.status_code == 404


async def test_rating_requires_token(client, catalog):
    response = await rate(client, catalog["dishes"][0].id, {}, 5)
    assert response.status_code == 401


async def test_list_ratings_with_average(client, catalog, shopper_headers, make_user, auth_headers):
    dish = catalog["dishes"][1]
    other = await make_user("Beto", "+525522222222")

    await rate(client, dish.id, shopper_headers, 5)
    await rate(client, dish.id, auth_headers(other), 4)

    response = await client.get(f"/platillos/{dish.id}/calificaciones")
    assert response.status_code == 200
    body = response.json()
    assert body["average"] == "4.5"
    assert body["count"] == 2
    # Newest first
    assert [r["user_name"] for r in body["ratings"]] == ["Beto", "Ana"]


async def test_list_ratings_of_unrated_dish(client, catalog):
    response = await client.get(f"/platillos/{catalog['dishes'][2].id}/calificaciones")
    assert response.json() == {"success": True, "ratings": [], "average": "0.0", "count": 0}


async def test_list_ratings_unknown_dish(client):
    assert (await client.get("/platillos/999/calificaciones")).status_code == 404


async def test_owner_deletes_rating(client, catalog, shopper_headers, session_maker):
    dish = catalog["dishes"][0]
    rating_id = (await rate(client, dish.id, shopper_headers, 3)).json()["data"]["id"]

    response = await client.delete(f"/calificaciones/{rating_id}", headers=shopper_headers)
    assert response.status_code == 200
    assert await rating_rows(session_maker, dish.id) == []


async def test_non_owner_cannot_delete(client, catalog, shopper_headers, make_user, auth_headers, session_maker):
    dish = catalog["dishes"][0]
    rating_id = (await rate(client, dish.id, shopper_headers, 3)).json()["data"]["id"]
    intruder = await make_user("Intruso", "+525544444444")

    response = await client.delete(f"/calificaciones/{rating_id}", headers=auth_headers(intruder))
    assert response.status_code == 403
    assert len(await rating_rows(session_maker, dish.id)) == 1


async def test_deleting_missing_rating_is_forbidden(client, shopper_headers):
    response = await client.delete("/calificaciones/999", headers=shopper_headers)
    assert response.status_code == 403


async def test_unique_constraint_reports_duplicate(db, catalog, shopper, monkeypatch):
    """A concurrent first rating that loses the insert race gets DuplicateError."""
    dish = catalog["dishes"][0]
    db.add(Rating(user_id=shopper.id, dish_id=dish.id, stars=3))
    await db.commit()

    service = RatingService(db)
    real_execute = db.execute
    calls = {"n": 0}

    async def execute_hiding_existing(statement, *args, **kwargs):
        # The existence check runs before the other request's insert is visible
        calls["n"] += 1
        result = await real_execute(statement, *args, **kwargs)
        if calls["n"] == 1:
            return EmptyResult()
        return result

    monkeypatch.setattr(db, "execute", execute_hiding_existing)

    with pytest.raises(DuplicateError):
        await service.submit_rating(dish.id, shopper.id, 5)


async def test_missing_rater_is_not_reported_as_duplicate(db, catalog):
    service = RatingService(db)

    with pytest.raises(NotFoundError) as excinfo:
        await service.submit_rating(catalog["dishes"][0].id, 999, 4)

    assert not isinstance(excinfo.value, DuplicateError)
    assert excinfo.value.message == "Usuario no encontrado"


class EmptyResult:
    def scalar_one_or_none(self):
        return None


# =============================================================================
# TOP RATED
# =============================================================================

@pytest.fixture
async def twenty_dishes(db, catalog):
    category_id = catalog["categories"][0].id
    extra = [Dish(name=f"Platillo {i}", price=Decimal("10.00"), category_id=category_id) for i in range(17)]
    db.add_all(extra)
    await db.commit()
    return catalog["dishes"] + extra


async def test_top_rated_pads_with_random_dishes(client, twenty_dishes, shopper_headers, make_user, auth_headers):
    best, second, third = twenty_dishes[5], twenty_dishes[0], twenty_dishes[12]
    other = auth_headers(await make_user("Beto", "+525522222222"))

    await rate(client, best.id, shopper_headers, 5)
    await rate(client, best.id, other, 5)
    await rate(client, second.id, shopper_headers, 5)
    await rate(client, second.id, other, 4)
    await rate(client, third.id, shopper_headers, 3)

    response = await client.get("/platillos/mejores", params={"limit": 10})
    assert response.status_code == 200
    top = response.json()

    assert len(top) == 10
    assert len({d["id"] for d in top}) == 10
    assert [(d["id"], d["average"], d["count"]) for d in top[:3]] == [
        (best.id, 5.0, 2),
        (second.id, 4.5, 2),
        (third.id, 3.0, 1),
    ]
    assert all(d["count"] == 0 and d["average"] == 0 for d in top[3:])
    assert not {d["id"] for d in top[3:]} & {best.id, second.id, third.id}


async def test_ties_broken_by_rating_count(client, twenty_dishes, shopper_headers, make_user, auth_headers):
    once, twice = twenty_dishes[3], twenty_dishes[4]
    other = auth_headers(await make_user("Beto", "+525522222222"))

    await rate(client, once.id, shopper_headers, 4)
    await rate(client, twice.id, shopper_headers, 4)
    await rate(client, twice.id, other, 4)

    top = (await client.get("/api/platillos/mejores-calificados", params={"limit": 2})).json()
    assert [d["id"] for d in top] == [twice.id, once.id]


async def test_without_ratings_random_dishes_are_returned(client, twenty_dishes):
    top = (await client.get("/platillos/mejores", params={"limit": 4})).json()

    assert len(top) == 4
    assert len({d["id"] for d in top}) == 4
    assert all(d["message"] == RANDOM_PICK_MESSAGE for d in top)


async def test_default_limit(client, twenty_dishes):
    top = (await client.get("/platillos/mejores")).json()
    assert len(top) == 5


async def test_limit_larger_than_catalog(client, catalog, shopper_headers):
    await rate(client, catalog["dishes"][0].id, shopper_headers, 5)

    top = (await client.get("/platillos/mejores", params={"limit": 10})).json()
    assert len(top) == 3


@pytest.mark.parametrize("limit", [0, 51])
async def test_limit_bounds(client, limit):
    response = await client.get("/platillos/mejores", params={"limit": limit})
    assert response.status_code == 400


async def test_rating_images_are_data_urls(client, catalog, shopper_headers):
    suadero = catalog["dishes"][1]
    await rate(client, suadero.id, shopper_headers, 5)

    top = (await client.get("/platillos/mejores", params={"limit": 1})).json()
    assert top[0]["image"].startswith("data:image/jpeg;base64,")


async def test_aggregate_matches_rows(db, catalog, shopper, make_user):
    """The stored mean and count agree with the raw rows."""
    dish = catalog["dishes"][0]
    other = await make_user("Beto", "+525522222222")
    service = RatingService(db)
    await service.submit_rating(dish.id, shopper.id, 2)
    await service.submit_rating(dish.id, other.id, 5)

    summary = await service.list_ratings(dish.id)
    raw = await db.scalar(select(func.avg(Rating.stars)).where(Rating.dish_id == dish.id))
    assert summary.count == 2
    assert summary.average == "3.5"
    assert float(raw) == 3.5
