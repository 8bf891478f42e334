"""Ticket endpoints: auth, CSRF and error rendering."""

from uuid import uuid4

import pytest


@pytest.fixture
def payload(contact, channel):
    return {"contact_id": str(contact.id), "channel_id": str(channel.id), "unread_messages": 2}


async def test_find_or_create_returns_same_ticket(authed_client, payload, published, sent_messages):
    first = await authed_client.post("/tickets", json=payload)
    second = await authed_client.post("/tickets", json=payload)

    assert first.status_code == 201
    assert first.json()["status"] == "pending"
    assert second.json()["id"] == first.json()["id"]


async def test_mutation_without_csrf_header_is_rejected(authed_client, payload):
    response = await authed_client.post("/tickets", json=payload, headers={"X-Requested-With": ""})

    assert response.status_code == 403


async def test_accept_ticket(authed_client, payload, agent_user, published, sent_messages):
    ticket_id = (await authed_client.post("/tickets", json=payload)).json()["id"]

    response = await authed_client.put(
        f"/tickets/{ticket_id}", json={"status": "open", "user_id": str(agent_user.id)}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["old_status"] == "pending"
    assert body["ticket"]["status"] == "open"
    assert body["ticket"]["user_id"] == str(agent_user.id)
    assert body["replaced_ticket_id"] is None

    tracking = await authed_client.get(f"/tickets/{ticket_id}/tracking")
    assert tracking.status_code == 200
    assert tracking.json()[0]["user_id"] == str(agent_user.id)


async def test_unknown_ticket_renders_error_code(authed_client):
    response = await authed_client.put(f"/tickets/{uuid4()}", json={"status": "open"})

    assert response.status_code == 404
    assert response.json()["code"] == "ERR_NOT_FOUND"


async def test_conflicting_transfer_renders_409(
    authed_client, agent_client, contact, channel, second_channel, other_agent, published, sent_messages
):
    busy = await authed_client.post(
        "/tickets", json={"contact_id": str(contact.id), "channel_id": str(second_channel.id)}
    )
    busy_id = busy.json()["id"]
    await authed_client.put(f"/tickets/{busy_id}", json={"status": "open", "user_id": str(other_agent.id)})
    ticket_id = (
        await authed_client.post("/tickets", json={"contact_id": str(contact.id), "channel_id": str(channel.id)})
    ).json()["id"]

    response = await agent_client.put(
        f"/tickets/{ticket_id}", json={"channel_id": str(second_channel.id), "is_transfer": True}
    )

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "ERR_CONFLICTING_TICKET"
    assert body["ticket_id"] == busy_id
    assert body["agent_name"] == other_agent.name


async def test_rating_out_of_range_is_422(authed_client, payload, published, sent_messages):
    ticket_id = (await authed_client.post("/tickets", json=payload)).json()["id"]

    response = await authed_client.post(f"/tickets/{ticket_id}/rating", json={"rate": 6})

    assert response.status_code == 422


async def test_rating_without_request_renders_domain_error(authed_client, payload, published, sent_messages):
    ticket_id = (await authed_client.post("/tickets", json=payload)).json()["id"]

    response = await authed_client.post(f"/tickets/{ticket_id}/rating", json={"rate": 5})

    assert response.status_code == 422
    assert response.json()["code"] == "ERR_VALIDATION"


async def test_tickets_of_other_company_are_invisible(authed_client, db, other_company, channel):
    from conftest import make_contact

    stranger = make_contact(db, other_company, name="Estranho")

    response = await authed_client.post(
        "/tickets", json={"contact_id": str(stranger.id), "channel_id": str(channel.id)}
    )

    assert response.status_code == 404
    listed = await authed_client.get("/tickets")
    assert listed.json() == []
