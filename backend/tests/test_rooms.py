from __future__ import annotations
import asyncio
from httpx import AsyncClient
import pytest


async def _register_login(ac: AsyncClient, username: str) -> dict:
    r = await ac.post("/auth/register", json={"username": username, "password": "supersecret"})
    assert r.status_code == 201, r.text
    r = await ac.post("/auth/login", json={"username": username, "password": "supersecret"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access']}"}


async def _room_with_players(ac: AsyncClient, *names: str) -> tuple[str, dict[str, dict]]:
    """Owner is names[0]; everybody else is invited and joins."""
    hdrs = {n: await _register_login(ac, n) for n in names}
    r = await ac.post("/rooms", headers=hdrs[names[0]])
    assert r.status_code == 201, r.text
    room_id = r.json()["id"]
    for n in names[1:]:
        assert (await ac.post(f"/rooms/{room_id}/invite", headers=hdrs[names[0]], json={"username": f"@{n}"})).status_code == 201
        assert (await ac.post(f"/rooms/{room_id}/join", headers=hdrs[n])).status_code == 200
    return room_id, hdrs


@pytest.mark.asyncio
async def test_create_room_seats_owner(ac):
    hdrs = await _register_login(ac, "alice")
    r = await ac.post("/rooms", headers=hdrs)
    assert r.status_code == 201
    room = r.json()
    assert len(room["id"]) == 6 and room["id"].isalnum()
    assert room["owner_username"] == "alice"
    assert room["is_owner"] is True
    assert room["settled"] is False
    assert room["players"] == [
        {"username": "alice", "joined": True, "buy_in": "0.00", "cash_out": None, "history": []}
    ]

    r = await ac.get("/rooms", headers=hdrs)
    assert r.json() == [{"id": room["id"], "role": "owner"}]


@pytest.mark.asyncio
async def test_unknown_room_is_404(ac):
    hdrs = await _register_login(ac, "alice")
    assert (await ac.get("/rooms/zzzzzz", headers=hdrs)).status_code == 404
    assert (await ac.post("/rooms/zzzzzz/settle", headers=hdrs)).status_code == 404
    assert (await ac.get("/rooms/zzzzzz/settlement", headers=hdrs)).status_code == 404
    assert (await ac.delete("/rooms/zzzzzz", headers=hdrs)).status_code == 404


@pytest.mark.asyncio
async def test_invite_and_join_rules(ac):
    owner = await _register_login(ac, "alice")
    bob = await _register_login(ac, "bob")
    eve = await _register_login(ac, "eve")
    room_id = (await ac.post("/rooms", headers=owner)).json()["id"]

    # only the owner invites
    r = await ac.post(f"/rooms/{room_id}/invite", headers=bob, json={"username": "bob"})
    assert r.status_code == 403

    r = await ac.post(f"/rooms/{room_id}/invite", headers=owner, json={"username": "@Bob"})
    assert r.status_code == 201
    assert r.json()["username"] == "bob" and r.json()["joined"] is False
    assert (await ac.post(f"/rooms/{room_id}/invite", headers=owner, json={"username": "bob"})).status_code == 409

    # not invited
    assert (await ac.post(f"/rooms/{room_id}/join", headers=eve)).status_code == 403
    assert (await ac.get(f"/rooms/{room_id}", headers=eve)).status_code == 403

    # invited but not joined yet: cannot buy in
    r = await ac.post(f"/rooms/{room_id}/buyins", headers=bob, json={"amount": "10"})
    assert r.status_code == 403

    assert (await ac.post(f"/rooms/{room_id}/join", headers=bob)).status_code == 200
    assert (await ac.post(f"/rooms/{room_id}/join", headers=bob)).status_code == 409

    r = await ac.get("/rooms", headers=bob)
    assert r.json() == [{"id": room_id, "role": "player"}]


@pytest.mark.asyncio
async def test_buy_in_add_remove_and_history(ac):
    room_id, hdrs = await _room_with_players(ac, "alice", "bob")

    r = await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "100"})
    assert r.status_code == 200
    assert r.json()["total"] == "100.00"
    r = await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": 50.5})
    assert r.json()["total"] == "150.50"

    r = await ac.post(f"/rooms/{room_id}/buyins/remove", headers=hdrs["bob"], json={"amount": "200"})
    assert r.status_code == 409
    r = await ac.post(f"/rooms/{room_id}/buyins/remove", headers=hdrs["bob"], json={"amount": "0.50"})
    assert r.status_code == 200
    assert r.json()["total"] == "150.00"

    # amounts must be positive with at most two decimals
    assert (await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "0"})).status_code == 422
    assert (await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "-5"})).status_code == 422
    assert (await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "1.234"})).status_code == 422

    room = (await ac.get(f"/rooms/{room_id}", headers=hdrs["alice"])).json()
    bob = next(p for p in room["players"] if p["username"] == "bob")
    assert bob["buy_in"] == "150.00"
    assert [(h["action"], h["amount"]) for h in bob["history"]] == [
        ("remove", "0.50"), ("add", "50.50"), ("add", "100.00"),
    ]


@pytest.mark.asyncio
async def test_remove_without_buy_in(ac):
    room_id, hdrs = await _room_with_players(ac, "alice")
    r = await ac.post(f"/rooms/{room_id}/buyins/remove", headers=hdrs["alice"], json={"amount": "1"})
    assert r.status_code == 409
    assert "no buy-in" in r.json()["detail"]


@pytest.mark.asyncio
async def test_settle_waits_for_cash_outs(ac):
    room_id, hdrs = await _room_with_players(ac, "alice", "bob", "carol")
    for n in ("alice", "bob", "carol"):
        await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs[n], json={"amount": "100"})
    await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["alice"], json={"amount": "200"})

    r = await ac.post(f"/rooms/{room_id}/settle", headers=hdrs["alice"])
    assert r.status_code == 409
    assert sorted(r.json()["detail"]["pending"]) == ["bob", "carol"]

    # preview still works and lists who is missing
    r = await ac.get(f"/rooms/{room_id}/settlement", headers=hdrs["bob"])
    assert r.status_code == 200
    assert sorted(r.json()["pending"]) == ["bob", "carol"]
    assert r.json()["settled"] is False


@pytest.mark.asyncio
async def test_full_session_settles(ac):
    room_id, hdrs = await _room_with_players(ac, "alice", "bob", "carol")
    for n in ("alice", "bob", "carol"):
        await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs[n], json={"amount": "100"})

    r = await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["alice"], json={"amount": "200"})
    assert r.json() == {"room_id": room_id, "username": "alice", "buy_in": "100.00", "cash_out": "200.00", "pnl": "100.00"}
    await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["bob"], json={"amount": "50"})
    # busted is a recorded cash-out, not a pending one
    r = await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["carol"], json={"amount": "0"})
    assert r.json()["pnl"] == "-100.00"
    # cash-out overwrites
    await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["carol"], json={"amount": "50"})

    # a player can settle (read) without closing the room
    r = await ac.post(f"/rooms/{room_id}/settle", headers=hdrs["bob"])
    assert r.status_code == 200
    assert r.json()["settled"] is False

    r = await ac.post(f"/rooms/{room_id}/settle", headers=hdrs["alice"])
    assert r.status_code == 200
    body = r.json()
    assert body["settled"] is True
    assert body["total_buy_in"] == "300.00"
    assert body["total_cash_out"] == "300.00"
    assert body["mismatch"] == "0.00"
    assert [(p["username"], p["pnl"]) for p in body["players"]] == [
        ("alice", "100.00"), ("bob", "-50.00"), ("carol", "-50.00"),
    ]
    assert sorted((s["from"], s["to"], s["amount"]) for s in body["settlements"]) == [
        ("bob", "alice", "50.00"), ("carol", "alice", "50.00"),
    ]

    # settled rooms are frozen
    r = await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["bob"], json={"amount": "60"})
    assert r.status_code == 409
    r = await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "10"})
    assert r.status_code == 409

    r = await ac.post(f"/rooms/{room_id}/settle?format=text", headers=hdrs["alice"])
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "@alice wins ₹100.00 in total" in r.text


@pytest.mark.asyncio
async def test_mismatch_is_surfaced(ac):
    room_id, hdrs = await _room_with_players(ac, "alice", "bob")
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["alice"], json={"amount": "100"})
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "100"})
    await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["alice"], json={"amount": "200"})
    await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["bob"], json={"amount": "80"})

    body = (await ac.post(f"/rooms/{room_id}/settle", headers=hdrs["alice"])).json()
    assert body["mismatch"] == "80.00"
    assert [(s["from"], s["to"], s["amount"]) for s in body["settlements"]] == [("bob", "alice", "20.00")]


@pytest.mark.asyncio
async def test_empty_room_settles_to_nothing(ac):
    room_id, hdrs = await _room_with_players(ac, "alice")
    body = (await ac.post(f"/rooms/{room_id}/settle", headers=hdrs["alice"])).json()
    assert body["total_buy_in"] == "0.00"
    assert body["mismatch"] == "0.00"
    assert body["settlements"] == []


@pytest.mark.asyncio
async def test_summary(ac):
    room_id, hdrs = await _room_with_players(ac, "alice", "bob")
    await ac.post(f"/rooms/{room_id}/invite", headers=hdrs["alice"], json={"username": "dave"})
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["alice"], json={"amount": "75"})
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "25"})

    body = (await ac.get(f"/rooms/{room_id}/summary", headers=hdrs["bob"])).json()
    assert body["total_buy_in"] == "100.00"
    # invited-but-not-joined players with no money are not active
    assert [(p["username"], p["share_pct"]) for p in body["players"]] == [("alice", 75.0), ("bob", 25.0)]

    r = await ac.get(f"/rooms/{room_id}/summary?format=text", headers=hdrs["bob"])
    assert "@alice: ₹75.00 (75.0%)" in r.text


@pytest.mark.asyncio
async def test_delete_room_owner_only(ac):
    room_id, hdrs = await _room_with_players(ac, "alice", "bob")
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "10"})

    assert (await ac.delete(f"/rooms/{room_id}", headers=hdrs["bob"])).status_code == 403
    assert (await ac.delete(f"/rooms/{room_id}", headers=hdrs["alice"])).status_code == 204
    assert (await ac.get(f"/rooms/{room_id}", headers=hdrs["alice"])).status_code == 404
    assert (await ac.get("/rooms", headers=hdrs["bob"])).json() == []


@pytest.mark.asyncio
async def test_calculate_room_settlement_from_store(ac):
    from stac.db import SessionLocal
    from stac.services.rooms import calculate_room_settlement

    room_id, hdrs = await _room_with_players(ac, "alice", "bob")
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["alice"], json={"amount": "100"})
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "100"})
    await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["alice"], json={"amount": "150"})
    await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["bob"], json={"amount": "50"})

    async with SessionLocal() as session:
        assert await calculate_room_settlement(session, "nope00") is None
        assert await calculate_room_settlement(session, "not a room id") is None
        res = await calculate_room_settlement(session, room_id.upper())

    assert res is not None
    assert (res.total_buy_in, res.total_cash_out, res.mismatch) == (20000, 20000, 0)
    assert [(s.from_player, s.to_player, s.amount) for s in res.settlements] == [("bob", "alice", 5000)]


@pytest.mark.asyncio
async def test_concurrent_buy_ins_all_count(ac):
    room_id, hdrs = await _room_with_players(ac, "alice", "bob")
    rs = await asyncio.gather(*[
        ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "100"}) for _ in range(5)
    ])
    assert [r.status_code for r in rs] == [200] * 5
    assert sorted(r.json()["total"] for r in rs) == ["100.00", "200.00", "300.00", "400.00", "500.00"]

    room = (await ac.get(f"/rooms/{room_id}", headers=hdrs["alice"])).json()
    bob = next(p for p in room["players"] if p["username"] == "bob")
    assert bob["buy_in"] == "500.00"
    assert len(bob["history"]) == 5


@pytest.mark.asyncio
async def test_concurrent_removes_never_go_negative(ac):
    room_id, hdrs = await _room_with_players(ac, "alice", "bob")
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "100"})
    rs = await asyncio.gather(*[
        ac.post(f"/rooms/{room_id}/buyins/remove", headers=hdrs["bob"], json={"amount": "60"}) for _ in range(3)
    ])
    assert sorted(r.status_code for r in rs) == [200, 409, 409]

    room = (await ac.get(f"/rooms/{room_id}", headers=hdrs["alice"])).json()
    bob = next(p for p in room["players"] if p["username"] == "bob")
    assert bob["buy_in"] == "40.00"
    assert [h["action"] for h in bob["history"]] == ["remove", "add"]


@pytest.mark.asyncio
async def test_owner_settle_sees_cash_out_committed_after_load(ac):
    from sqlalchemy import select
    from stac.db import SessionLocal
    from stac.models.user import User
    from stac.services import rooms as svc

    room_id, hdrs = await _room_with_players(ac, "alice", "bob")
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["alice"], json={"amount": "100"})
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "100"})
    await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["alice"], json={"amount": "150"})

    async with SessionLocal() as session:
        alice = await session.scalar(select(User).where(User.username == "alice"))
        room = await svc.get_room(session, room_id)
        assert svc.pending_cash_outs(svc.active_ledgers(room)) == ["bob"]

        # bob cashes out while this session still holds the old rows
        r = await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["bob"], json={"amount": "50"})
        assert r.status_code == 200

        result = await svc.settle_room(session, room, alice)
        await session.commit()

    assert [(s.from_player, s.to_player, s.amount) for s in result.settlements] == [("bob", "alice", 5000)]
    assert (await ac.get(f"/rooms/{room_id}", headers=hdrs["alice"])).json()["settled"] is True


@pytest.mark.asyncio
async def test_failed_owner_settle_leaves_room_open(ac):
    room_id, hdrs = await _room_with_players(ac, "alice", "bob")
    await ac.post(f"/rooms/{room_id}/buyins", headers=hdrs["bob"], json={"amount": "100"})

    assert (await ac.post(f"/rooms/{room_id}/settle", headers=hdrs["alice"])).status_code == 409
    assert (await ac.get(f"/rooms/{room_id}", headers=hdrs["alice"])).json()["settled"] is False
    r = await ac.put(f"/rooms/{room_id}/cashout", headers=hdrs["bob"], json={"amount": "100"})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_my_rooms_lists_joined_rooms_by_creation(ac):
    bob = await _register_login(ac, "bob")
    owners = {n: await _register_login(ac, n) for n in ("carol", "dave", "erin")}
    room_ids = []
    for n, hdrs in owners.items():
        rid = (await ac.post("/rooms", headers=hdrs)).json()["id"]
        await ac.post(f"/rooms/{rid}/invite", headers=hdrs, json={"username": "bob"})
        room_ids.append(rid)
    own = (await ac.post("/rooms", headers=bob)).json()["id"]

    # join newest first
    for rid in reversed(room_ids):
        assert (await ac.post(f"/rooms/{rid}/join", headers=bob)).status_code == 200

    r = await ac.get("/rooms", headers=bob)
    assert r.json() == [{"id": own, "role": "owner"}] + [{"id": rid, "role": "player"} for rid in room_ids]
