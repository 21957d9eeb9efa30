"""
Group schedules function: Unit Tests
"""

import pytest

from common import store
from group_schedules.handler import handler
from conftest import OTHER_USER, USER, _make_event, _parse_response, client_error, seed_event

THIRD_USER = "user-789"


@pytest.fixture
def event_row():
    return seed_event()


def _create_group(event_id, name="Crew", user=USER):
    return _parse_response(handler(_make_event(
        "POST", "/group-schedules", body={"name": name, "event_id": event_id}, user=user), None))


@pytest.fixture
def group(event_row):
    _, body = _create_group(event_row["id"])
    return body["group_schedule"]


def _invite(group_id, user_id, by=USER, **extra):
    return _parse_response(handler(_make_event(
        "POST", f"/group-schedules/{group_id}/members", body=dict({"user_id": user_id}, **extra), user=by), None))


def _member_row(group_id, user_id):
    return store.query("group_member", store.where(group_id=group_id, user_id=user_id))[0]


class TestCreateGroup:
    def test_creates_group_and_creator_membership(self, event_row, table):
        status, body = _create_group(event_row["id"])
        assert status == 201
        assert body["success"] is True
        assert body["message"] == "Group and initial membership created successfully."
        assert body["group_schedule"]["created_by"] == USER

        assert len(table.rows("group")) == 1
        members = table.rows("group_member")
        assert len(members) == 1
        assert members[0]["user_id"] == USER
        assert members[0]["is_admin"] is True
        assert members[0]["status"] == "accepted"
        assert members[0]["joined_at"]

    def test_membership_failure_removes_group(self, event_row, table, fake_table):
        real_put = fake_table.put_item

        def put_item(Item, **kwargs):
            if Item.get("entityType") == "GROUP_MEMBER":
                raise client_error("InternalServerError", "PutItem")
            return real_put(Item=Item, **kwargs)

        table.put_item.side_effect = put_item
        status, body = _create_group(event_row["id"])
        assert status == 500
        assert body == {"error": "Failed to save group member"}
        assert table.rows("group") == []
        assert not any(k[0].startswith("UNIQUE#GROUP_MEMBER") for k in fake_table.items)

    def test_store_policy_rejection(self, event_row, table):
        table.put_item.side_effect = client_error("AccessDeniedException", "PutItem", "not allowed")
        status, body = _create_group(event_row["id"])
        assert status == 403
        assert body["details"] == "not allowed"
        assert "suggestion" in body
        assert table.rows("group") == []

    def test_event_must_exist(self):
        status, body = _create_group(42)
        assert (status, body) == (404, {"error": "Event not found"})

    def test_fields_required(self):
        status, body = _parse_response(handler(_make_event(
            "POST", "/group-schedules", body={"name": "x"}), None))
        assert status == 400

    def test_admin_key_is_not_enough(self, event_row):
        status, _ = _parse_response(handler(_make_event(
            "POST", "/group-schedules", body={"name": "x", "event_id": event_row["id"]},
            user=None, admin=True), None))
        assert status == 401


class TestReadGroups:
    def test_get_embeds_event_and_members(self, group, event_row):
        status, body = _parse_response(handler(_make_event("GET", f"/group-schedules/{group['id']}"), None))
        assert status == 200
        assert body["event"]["name"] == event_row["name"]
        assert [m["user_id"] for m in body["members"]] == [USER]

    def test_event_summary_carries_venue_and_image(self):
        event_row = seed_event(venue="Park", city="Oslo", country="NO", image_url="https://img/1.jpg")
        _, created_body = _create_group(event_row["id"])
        group_id = created_body["group_schedule"]["id"]

        _, body = _parse_response(handler(_make_event("GET", f"/group-schedules/{group_id}"), None))
        assert body["event"] == {
            "id": event_row["id"], "name": "Summer Fest",
            "date_start": "2026-07-01", "date_end": "2026-07-03",
            "venue": "Park", "city": "Oslo", "country": "NO", "image_url": "https://img/1.jpg",
        }

        _, body = _parse_response(handler(_make_event("GET", "/group-schedules"), None))
        assert body["group_schedules"][0]["event"]["image_url"] == "https://img/1.jpg"

    def test_declined_member_can_list_and_read(self, group):
        _, invited = _invite(group["id"], OTHER_USER)
        status, _ = _parse_response(handler(_make_event(
            "PUT", f"/group-schedules/{group['id']}/members/{invited['member']['id']}",
            body={"status": "declined"}, user=OTHER_USER), None))
        assert status == 200

        _, body = _parse_response(handler(_make_event("GET", "/group-schedules", user=OTHER_USER), None))
        assert [g["id"] for g in body["group_schedules"]] == [group["id"]]

        status, _ = _parse_response(handler(_make_event(
            "GET", f"/group-schedules/{group['id']}", user=OTHER_USER), None))
        assert status == 200

    def test_non_member_gets_not_found(self, group):
        status, body = _parse_response(handler(_make_event(
            "GET", f"/group-schedules/{group['id']}", user=OTHER_USER), None))
        assert status == 404
        assert body == {"error": "Group schedule not found or you don't have access"}

    def test_list_created_and_member_groups(self, event_row):
        other_event = seed_event(name="Other")
        _, mine = _create_group(event_row["id"], name="Mine")
        _, theirs = _create_group(other_event["id"], name="Theirs", user=OTHER_USER)
        _create_group(event_row["id"], name="Private", user=THIRD_USER)
        _invite(theirs["group_schedule"]["id"], USER, by=OTHER_USER)

        status, body = _parse_response(handler(_make_event("GET", "/group-schedules"), None))
        assert status == 200
        names = [g["name"] for g in body["group_schedules"]]
        assert sorted(names) == ["Mine", "Theirs"]
        assert body["pagination"]["totalCount"] == 2
        assert all("members" in g and "event" in g for g in body["group_schedules"])

        _, body = _parse_response(handler(_make_event(
            "GET", "/group-schedules", query={"event_id": str(event_row["id"])}), None))
        assert [g["name"] for g in body["group_schedules"]] == ["Mine"]


class TestUpdateDeleteGroup:
    def test_creator_renames(self, group):
        status, body = _parse_response(handler(_make_event(
            "PUT", f"/group-schedules/{group['id']}", body={"name": "New", "created_by": OTHER_USER}), None))
        assert status == 200
        assert body["group_schedule"]["name"] == "New"
        assert body["group_schedule"]["created_by"] == USER

    def test_plain_member_cannot_rename(self, group):
        _invite(group["id"], OTHER_USER)
        status, _ = _parse_response(handler(_make_event(
            "PUT", f"/group-schedules/{group['id']}", body={"name": "x"}, user=OTHER_USER), None))
        assert status == 401

    def test_admin_member_cannot_delete(self, group):
        _invite(group["id"], OTHER_USER, is_admin=True)
        status, _ = _parse_response(handler(_make_event(
            "DELETE", f"/group-schedules/{group['id']}", user=OTHER_USER), None))
        assert status == 401

    def test_creator_deletes_with_members(self, group, table):
        _invite(group["id"], OTHER_USER)
        status, _ = _parse_response(handler(_make_event("DELETE", f"/group-schedules/{group['id']}"), None))
        assert status == 200
        assert table.rows("group") == []
        assert table.rows("group_member") == []


class TestMembers:
    def test_invite_and_list(self, group):
        status, body = _invite(group["id"], OTHER_USER)
        assert status == 201
        assert body["member"]["status"] == "invited"
        assert body["member"]["is_admin"] is False

        status, body = _parse_response(handler(_make_event(
            "GET", f"/group-schedules/{group['id']}/members", user=OTHER_USER), None))
        assert status == 200
        assert [m["user_id"] for m in body] == [USER, OTHER_USER]

    def test_duplicate_invite(self, group):
        _invite(group["id"], OTHER_USER)
        status, body = _invite(group["id"], OTHER_USER)
        assert (status, body) == (409, {"error": "This user is already a member of this group"})

    def test_member_cannot_invite(self, group):
        _invite(group["id"], OTHER_USER)
        status, _ = _invite(group["id"], THIRD_USER, by=OTHER_USER)
        assert status == 401

    def test_accept_invitation(self, group):
        _, body = _invite(group["id"], OTHER_USER)
        member_id = body["member"]["id"]
        status, body = _parse_response(handler(_make_event(
            "PUT", f"/group-schedules/{group['id']}/members/{member_id}",
            body={"status": "accepted"}, user=OTHER_USER), None))
        assert status == 200
        assert body["member"]["status"] == "accepted"
        assert body["member"]["joined_at"]

    def test_invalid_status(self, group):
        _, body = _invite(group["id"], OTHER_USER)
        status, _ = _parse_response(handler(_make_event(
            "PUT", f"/group-schedules/{group['id']}/members/{body['member']['id']}",
            body={"status": "maybe"}, user=OTHER_USER), None))
        assert status == 400

    def test_member_cannot_promote_self(self, group):
        _, body = _invite(group["id"], OTHER_USER)
        status, _ = _parse_response(handler(_make_event(
            "PUT", f"/group-schedules/{group['id']}/members/{body['member']['id']}",
            body={"is_admin": True}, user=OTHER_USER), None))
        assert status == 401

    def test_creator_cannot_be_demoted_or_removed(self, group):
        creator = _member_row(group["id"], USER)
        path = f"/group-schedules/{group['id']}/members/{creator['id']}"
        status, _ = _parse_response(handler(_make_event("PUT", path, body={"is_admin": False}), None))
        assert status == 409
        status, _ = _parse_response(handler(_make_event("PUT", path, body={"status": "declined"}), None))
        assert status == 409
        status, _ = _parse_response(handler(_make_event("DELETE", path), None))
        assert status == 409

    def test_member_leaves(self, group, table):
        _, body = _invite(group["id"], OTHER_USER)
        status, _ = _parse_response(handler(_make_event(
            "DELETE", f"/group-schedules/{group['id']}/members/{body['member']['id']}", user=OTHER_USER), None))
        assert status == 200
        assert [m["user_id"] for m in table.rows("group_member")] == [USER]

    def test_member_of_other_group(self, group, event_row):
        _, other = _create_group(event_row["id"], name="Other")
        outsider_row = _member_row(other["group_schedule"]["id"], USER)
        status, _ = _parse_response(handler(_make_event(
            "DELETE", f"/group-schedules/{group['id']}/members/{outsider_row['id']}"), None))
        assert status == 404
