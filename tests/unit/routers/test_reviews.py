"""Review endpoint tests."""

from __future__ import annotations

import pytest

from tests.helpers import ALICE, BOB, CAROL, DAVE, auth
from tests.unit.routers.conftest import (
    create_task_id,
    notifications_for,
    submit_work,
    task_in_progress,
)


async def completed_task(client, owner=ALICE, freelancer=BOB) -> str:
    """A task worked on, submitted and approved. Returns its ID."""
    task_id, _ = await task_in_progress(client, owner, freelancer)
    response = await submit_work(client, freelancer, task_id)
    assert response.status_code == 200, response.text
    response = await client.post(f"/tasks/{task_id}/approve", headers=auth(owner))
    assert response.status_code == 200, response.text
    return task_id


async def post_review(client, reviewer, task_id, *, rating=5, comment="Delivered on time, great work."):
    """Leave a review via POST /reviews and return the response."""
    return await client.post(
        "/reviews",
        json={"task_id": task_id, "rating": rating, "comment": comment},
        headers=auth(reviewer),
    )


async def review_id_for(client, reviewer, task_id, **kwargs) -> str:
    response = await post_review(client, reviewer, task_id, **kwargs)
    assert response.status_code == 201, response.text
    return response.json()["review_id"]


class TestCreateReview:
    """POST /reviews — REV-01 to REV-10."""

    @pytest.mark.unit
    async def test_rev_01_owner_reviews_freelancer(self, client):
        """REV-01: The owner of a completed task reviews the freelancer."""
        task_id = await completed_task(client)

        response = await post_review(client, ALICE, task_id, rating=4)
        assert response.status_code == 201
        review = response.json()
        assert review["review_id"].startswith("rev-")
        assert review["task_id"] == task_id
        assert review["review_type"] == "client_to_freelancer"
        assert review["reviewer_id"] == ALICE["id"]
        assert review["reviewer_name"] == ALICE["full_name"]
        assert review["reviewee_id"] == BOB["id"]
        assert review["reviewee_name"] == BOB["full_name"]
        assert review["rating"] == 4
        assert review["comment"] == "Delivered on time, great work."

    @pytest.mark.unit
    async def test_rev_02_freelancer_reviews_owner(self, client):
        """REV-02: The assigned freelancer reviews the owner."""
        task_id = await completed_task(client)

        response = await post_review(client, BOB, task_id, comment="Clear brief, paid promptly.")
        assert response.status_code == 201
        review = response.json()
        assert review["review_type"] == "freelancer_to_client"
        assert review["reviewee_id"] == ALICE["id"]
        assert review["reviewee_name"] == ALICE["full_name"]

    @pytest.mark.unit
    async def test_rev_03_reviewee_notified(self, client):
        """REV-03: The reviewed party gets a review_received notification."""
        task_id = await completed_task(client)
        await review_id_for(client, ALICE, task_id, rating=3)

        received = [n for n in await notifications_for(client, BOB) if n["type"] == "review_received"]
        assert len(received) == 1
        assert received[0]["priority"] == "medium"
        assert received[0]["task_id"] == task_id
        assert "3-star" in received[0]["message"]
        alice_types = {n["type"] for n in await notifications_for(client, ALICE)}
        assert "review_received" not in alice_types

    @pytest.mark.unit
    async def test_rev_04_one_review_per_party(self, client):
        """REV-04: A second review of the same task by the same party is refused."""
        task_id = await completed_task(client)
        await review_id_for(client, ALICE, task_id)
        await review_id_for(client, BOB, task_id)

        response = await post_review(client, ALICE, task_id, rating=1)
        assert response.status_code == 409
        assert response.json()["error"] == "REVIEW_ALREADY_EXISTS"

        listing = (await client.get(f"/reviews?task_id={task_id}")).json()
        assert listing["pagination"]["total"] == 2

    @pytest.mark.unit
    async def test_rev_05_task_not_completed(self, client):
        """REV-05: Work still in progress cannot be reviewed."""
        task_id, _ = await task_in_progress(client, ALICE, BOB)

        response = await post_review(client, ALICE, task_id)
        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_STATUS"
        assert response.json()["details"]["current_status"] == "in-progress"

    @pytest.mark.unit
    async def test_rev_06_outsider_forbidden(self, client):
        """REV-06: Only the two parties of the task may review it."""
        task_id = await completed_task(client)

        response = await post_review(client, CAROL, task_id)
        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    @pytest.mark.unit
    async def test_rev_07_unassigned_task_forbidden(self, client):
        """REV-07: An open task has no counterpart, so even its owner cannot review it."""
        task_id = await create_task_id(client, ALICE)

        response = await post_review(client, ALICE, task_id)
        assert response.status_code == 403

    @pytest.mark.unit
    async def test_rev_08_task_not_found(self, client):
        """REV-08: Reviewing a missing task returns TASK_NOT_FOUND."""
        response = await post_review(client, ALICE, "t-missing")
        assert response.status_code == 404
        assert response.json()["error"] == "TASK_NOT_FOUND"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("rating", "comment"),
        [(0, "Fine."), (6, "Fine."), (4.5, "Fine."), (4, ""), (4, "x" * 501)],
    )
    async def test_rev_09_invalid_payload(self, client, rating, comment):
        """REV-09: Ratings are whole stars 1-5 and comments 1-500 characters."""
        task_id = await completed_task(client)

        response = await post_review(client, ALICE, task_id, rating=rating, comment=comment)
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PAYLOAD"

    @pytest.mark.unit
    async def test_rev_10_requires_authentication(self, client):
        response = await client.post("/reviews", json={"task_id": "t-1", "rating": 5, "comment": "Good"})
        assert response.status_code == 401


class TestReadReviews:
    """GET /reviews, /reviews/mine, /reviews/stats, /reviews/{id} — RRD-01 to RRD-06."""

    @pytest.mark.unit
    async def test_rrd_01_public_listing_with_filters(self, client):
        """RRD-01: Anyone can list reviews, filtered by task, reviewee and rating."""
        first = await completed_task(client)
        second = await completed_task(client, owner=DAVE, freelancer=BOB)
        await review_id_for(client, ALICE, first, rating=5)
        await review_id_for(client, BOB, first, rating=4)
        await review_id_for(client, DAVE, second, rating=2)

        everything = (await client.get("/reviews")).json()
        assert everything["pagination"]["total"] == 3

        about_bob = (await client.get(f"/reviews?reviewee_id={BOB['id']}")).json()
        assert {r["task_id"] for r in about_bob["reviews"]} == {first, second}

        low = (await client.get("/reviews?rating=2")).json()
        assert [r["reviewer_id"] for r in low["reviews"]] == [DAVE["id"]]

        for_task = (await client.get(f"/reviews?task_id={first}&sort_by=rating&sort_order=asc")).json()
        assert [r["rating"] for r in for_task["reviews"]] == [4, 5]

    @pytest.mark.unit
    async def test_rrd_02_invalid_filters(self, client):
        """RRD-02: Bad rating filters and unknown sort fields are rejected."""
        response = await client.get("/reviews?rating=9")
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PAYLOAD"

        response = await client.get("/reviews?sort_by=comment")
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_SORT_FIELD"

    @pytest.mark.unit
    async def test_rrd_03_get_by_id(self, client):
        """RRD-03: A single review is public; unknown IDs are 404."""
        task_id = await completed_task(client)
        review_id = await review_id_for(client, ALICE, task_id)

        response = await client.get(f"/reviews/{review_id}")
        assert response.status_code == 200
        assert response.json()["review_id"] == review_id

        response = await client.get("/reviews/rev-missing")
        assert response.status_code == 404
        assert response.json()["error"] == "REVIEW_NOT_FOUND"

    @pytest.mark.unit
    async def test_rrd_04_mine_lists_written_reviews(self, client):
        """RRD-04: /reviews/mine lists the reviews the caller wrote."""
        task_id = await completed_task(client)
        alice_review = await review_id_for(client, ALICE, task_id)
        await review_id_for(client, BOB, task_id)

        response = await client.get("/reviews/mine", headers=auth(ALICE))
        assert response.status_code == 200
        assert [r["review_id"] for r in response.json()["reviews"]] == [alice_review]

        response = await client.get("/reviews/mine")
        assert response.status_code == 401

    @pytest.mark.unit
    async def test_rrd_05_stats(self, client):
        """RRD-05: Stats report totals, the mean rating and a per-star breakdown."""
        first = await completed_task(client)
        second = await completed_task(client, owner=DAVE, freelancer=BOB)
        await review_id_for(client, ALICE, first, rating=5)
        await review_id_for(client, DAVE, second, rating=2)
        await review_id_for(client, BOB, first, rating=4)

        stats = (await client.get(f"/reviews/stats?reviewee_id={BOB['id']}")).json()
        assert stats["total_reviews"] == 2
        assert stats["average_rating"] == 3.5
        assert stats["rating_breakdown"] == {"1": 0, "2": 1, "3": 0, "4": 0, "5": 1}
        assert len(stats["recent_reviews"]) == 2
        assert stats["recent_reviews"][0]["reviewer_id"] == DAVE["id"]

        overall = (await client.get("/reviews/stats")).json()
        assert overall["total_reviews"] == 3

    @pytest.mark.unit
    async def test_rrd_06_stats_empty(self, client):
        """RRD-06: With no reviews the average is zero."""
        stats = (await client.get("/reviews/stats")).json()
        assert stats["total_reviews"] == 0
        assert stats["average_rating"] == 0.0
        assert stats["recent_reviews"] == []


class TestChangeReview:
    """PATCH and DELETE /reviews/{id} — RCH-01 to RCH-05."""

    @pytest.mark.unit
    async def test_rch_01_reviewer_updates(self, client):
        """RCH-01: The reviewer can change the rating and comment."""
        task_id = await completed_task(client)
        review_id = await review_id_for(client, ALICE, task_id, rating=3)

        response = await client.patch(
            f"/reviews/{review_id}",
            json={"rating": 5, "comment": "Revisited, excellent work."},
            headers=auth(ALICE),
        )
        assert response.status_code == 200
        review = response.json()
        assert review["rating"] == 5
        assert review["comment"] == "Revisited, excellent work."
        assert review["updated_at"] >= review["created_at"]

    @pytest.mark.unit
    async def test_rch_02_only_reviewer_may_update(self, client):
        """RCH-02: The reviewee cannot edit a review about them."""
        task_id = await completed_task(client)
        review_id = await review_id_for(client, ALICE, task_id, rating=2)

        response = await client.patch(f"/reviews/{review_id}", json={"rating": 5}, headers=auth(BOB))
        assert response.status_code == 403
        assert (await client.get(f"/reviews/{review_id}")).json()["rating"] == 2

    @pytest.mark.unit
    @pytest.mark.parametrize("body", [{}, {"rating": None}, {"rating": 7}, {"reviewer_id": "u-x"}])
    async def test_rch_03_invalid_update(self, client, body):
        """RCH-03: Updates need at least one valid, non-null field."""
        task_id = await completed_task(client)
        review_id = await review_id_for(client, ALICE, task_id)

        response = await client.patch(f"/reviews/{review_id}", json=body, headers=auth(ALICE))
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PAYLOAD"

    @pytest.mark.unit
    async def test_rch_04_reviewer_deletes(self, client):
        """RCH-04: Deleting a review frees the slot for a new one."""
        task_id = await completed_task(client)
        review_id = await review_id_for(client, ALICE, task_id)

        response = await client.delete(f"/reviews/{review_id}", headers=auth(BOB))
        assert response.status_code == 403

        response = await client.delete(f"/reviews/{review_id}", headers=auth(ALICE))
        assert response.status_code == 200
        assert response.json() == {"review_id": review_id, "deleted": True}
        assert (await client.get(f"/reviews/{review_id}")).status_code == 404

        response = await post_review(client, ALICE, task_id)
        assert response.status_code == 201

    @pytest.mark.unit
    async def test_rch_05_missing_review(self, client):
        response = await client.delete("/reviews/rev-missing", headers=auth(ALICE))
        assert response.status_code == 404
        assert response.json()["error"] == "REVIEW_NOT_FOUND"

        response = await client.patch("/reviews/rev-missing", json={"rating": 3}, headers=auth(ALICE))
        assert response.status_code == 404
