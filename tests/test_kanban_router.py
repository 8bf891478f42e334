"""Kanban endpoints: boards, lanes, cards, metrics, the ticket board and the import sweep."""

import pytest

from ticketflow.schemas.kanban import BoardCreate
from ticketflow.services import board_service, ticket_service


@pytest.fixture
async def board(authed_client, published):
    response = await authed_client.post("/kanban/boards", json={"name": "Suporte", "is_default": True})
    assert response.status_code == 201
    return response.json()


async def test_new_board_comes_with_lanes(board):
    assert [lane["name"] for lane in board["lanes"]] == ["Pendente", "Em Atendimento", "Concluído"]
    assert board["is_default"] is True


async def test_create_board_requires_csrf_header(authed_client):
    response = await authed_client.post(
        "/kanban/boards", json={"name": "X"}, headers={"X-Requested-With": ""}
    )
    assert response.status_code == 403


async def test_card_lifecycle_over_http(authed_client, board):
    first_lane, second_lane, _ = board["lanes"]

    created = await authed_client.post(f"/kanban/lanes/{first_lane['id']}/cards", json={"title": "Pedido"})
    assert created.status_code == 201
    card = created.json()
    assert card["metadata"] == {}

    moved = await authed_client.post(f"/kanban/cards/{card['id']}/move", json={"lane_id": second_lane["id"]})
    assert moved.status_code == 200
    assert moved.json()["lane_id"] == second_lane["id"]
    assert moved.json()["metadata"]["previousLaneId"] == first_lane["id"]

    deleted = await authed_client.delete(f"/kanban/cards/{card['id']}")
    assert deleted.json() == {"deleted": True, "archived": False}


async def test_full_lane_renders_limit_error(authed_client, board):
    lane_id = board["lanes"][0]["id"]
    await authed_client.patch(f"/kanban/lanes/{lane_id}", json={"card_limit": 1})
    await authed_client.post(f"/kanban/lanes/{lane_id}/cards", json={"title": "Um"})

    response = await authed_client.post(f"/kanban/lanes/{lane_id}/cards", json={"title": "Dois"})

    assert response.status_code == 409
    assert response.json()["code"] == "ERR_LIMIT_REACHED"


async def test_partial_lane_reorder_is_rejected(authed_client, board):
    lanes = board["lanes"]

    response = await authed_client.put(
        f"/kanban/boards/{board['id']}/lanes/order",
        json=[{"id": lanes[0]["id"], "position": 1}, {"id": lanes[1]["id"], "position": 0}],
    )

    assert response.status_code == 422
    assert response.json()["code"] == "ERR_SET_MISMATCH"


async def test_lane_move_out_of_range(authed_client, board):
    lane_id = board["lanes"][0]["id"]

    response = await authed_client.post(f"/kanban/lanes/{lane_id}/move", json={"position": 7})

    assert response.status_code == 422
    assert response.json()["code"] == "ERR_INVALID_POSITION"


async def test_board_metrics_endpoint(authed_client, board):
    response = await authed_client.get(f"/kanban/boards/{board['id']}/metrics")

    assert response.status_code == 200
    body = response.json()
    assert body["board_id"] == board["id"]
    assert len(body["lanes"]) == 3
    assert body["completed_cards"] == 0


async def test_board_metrics_reject_inverted_period(authed_client, board):
    response = await authed_client.get(
        f"/kanban/boards/{board['id']}/metrics",
        params={"start": "2026-02-01T00:00:00Z", "end": "2026-01-01T00:00:00Z"},
    )
    assert response.status_code == 422


async def test_board_metrics_accept_naive_and_mixed_bounds(authed_client, board):
    naive = await authed_client.get(
        f"/kanban/boards/{board['id']}/metrics", params={"start": "2020-01-01T00:00:00"}
    )
    assert naive.status_code == 200
    assert naive.json()["period"]["start"] == "2020-01-01T00:00:00+00:00"

    mixed = await authed_client.get(
        f"/kanban/boards/{board['id']}/metrics",
        params={"start": "2020-01-01T00:00:00Z", "end": "2030-01-01T00:00:00"},
    )
    assert mixed.status_code == 200

    inverted = await authed_client.get(
        f"/kanban/boards/{board['id']}/metrics",
        params={"start": "2030-01-01T00:00:00", "end": "2020-01-01T00:00:00Z"},
    )
    assert inverted.status_code == 422


async def test_board_of_other_company_is_not_found(authed_client, db, other_company, published):
    foreign = board_service.create_board(db, other_company.id, BoardCreate(name="Deles"))

    response = await authed_client.get(f"/kanban/boards/{foreign.id}")

    assert response.status_code == 404


async def test_import_sweep_is_admin_only(agent_client):
    response = await agent_client.post("/kanban/sync/import", json={})
    assert response.status_code == 403


async def test_import_sweep_reports_counts(authed_client, published):
    response = await authed_client.post("/kanban/sync/import", json={"hours": 12})

    assert response.status_code == 200
    assert response.json() == {"created": 0, "skipped": 0, "failed": 0}


async def test_card_search_returns_total_and_honors_repeated_filters(authed_client, board):
    lane_id = board["lanes"][0]["id"]
    for title, tags, priority in (("Um", ["vip"], 2), ("Dois", ["vip"], 0), ("Tres", [], 2)):
        await authed_client.post(
            f"/kanban/lanes/{lane_id}/cards", json={"title": title, "tags": tags, "priority": priority}
        )

    response = await authed_client.get("/kanban/cards", params={"limit": 1})
    assert response.status_code == 200
    assert response.json()["total"] == 3
    assert len(response.json()["items"]) == 1

    response = await authed_client.get("/kanban/cards", params=[("tag", "vip"), ("priority", "2")])
    body = response.json()
    assert [item["title"] for item in body["items"]] == ["Um"]
    assert body["total"] == 1


async def test_ticket_board_lists_and_moves_tickets(
    authed_client, db, company, contact, channel, admin_user, published, sent_messages
):
    ticket = ticket_service.find_or_create_ticket(db, company.id, contact.id, channel.id)

    board = await authed_client.get("/kanban/tickets")
    assert board.status_code == 200
    pending, opened = board.json()["lanes"]
    assert pending["id"] == "pending"
    assert [item["id"] for item in pending["tickets"]] == [str(ticket.id)]
    assert opened["tickets"] == []

    moved = await authed_client.post(f"/kanban/tickets/{ticket.id}/move", json={"lane_id": "open"})
    assert moved.status_code == 200
    assert moved.json()["status"] == "open"
    assert moved.json()["user_id"] == str(admin_user.id)


async def test_ticket_board_rejects_unknown_lane(authed_client, db, company, contact, channel, published):
    ticket = ticket_service.find_or_create_ticket(db, company.id, contact.id, channel.id)

    response = await authed_client.post(f"/kanban/tickets/{ticket.id}/move", json={"lane_id": "tag-1"})
    assert response.status_code == 422
