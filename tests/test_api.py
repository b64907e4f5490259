import uuid


PROGRAM = {
    "name": "Spring Rewards",
    "status": "ACTIVE",
    "default_giving_budget": 100,
    "policies": [{"policy_type": "OVERTIME", "unit_value": 30, "points_per_unit": 5}],
    "items": [
        {"name": "Mug", "required_points": 30, "quantity": 5},
        {"name": "Hoodie", "required_points": 80, "quantity": 1},
    ],
}


def _create_program(client, **overrides):
    r = client.post("/admin/reward-programs", json={**PROGRAM, **overrides})
    assert r.status_code == 201, r.text
    return r.json()


def _wallet(client, program_id, user_id, role=None):
    body = {"user_id": user_id, "reward_program_id": program_id}
    if role:
        body["role"] = role
    r = client.post("/wallets", json=body)
    assert r.status_code == 200, r.text
    return r.json()


def test_root(client):
    assert client.get("/").json() == {"message": "Reward Engine is running"}


def test_program_lifecycle_over_http(client):
    first = _create_program(client)
    assert first["status"] == "ACTIVE"
    assert [i["unlimited"] for i in first["items"]] == [False, False]

    active = client.get("/reward-programs/active").json()
    assert active["id"] == first["id"]

    second = _create_program(client, name="Summer", status="PENDING")
    r = client.post(f"/admin/reward-programs/{second['id']}/activate")
    assert r.status_code == 200
    assert r.json()["status"] == "ACTIVE"

    r = client.post(f"/admin/reward-programs/{first['id']}/activate")
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"

    listing = client.get("/admin/reward-programs", params={"status": "INACTIVE"}).json()
    assert [p["id"] for p in listing["items"]] == [first["id"]]


def test_program_listing_sort_direction(client):
    _create_program(client, name="May", status="PENDING", start_date="2026-05-01T00:00:00")
    _create_program(client, name="April", status="PENDING", start_date="2026-04-01T00:00:00")

    names = [p["name"] for p in client.get("/admin/reward-programs").json()["items"]]
    assert names == ["May", "April"]

    r = client.get("/admin/reward-programs", params={"sort_direction": "ASC"})
    assert [p["name"] for p in r.json()["items"]] == ["April", "May"]

    assert client.get("/admin/reward-programs", params={"sort_direction": "SIDEWAYS"}).status_code == 422


def test_no_active_program_is_404(client):
    assert client.get("/reward-programs/active").status_code == 404


def test_accrual_then_statement_and_reconciliation(client):
    program = _create_program(client)

    fact = {
        "employee_id": "emp-1",
        "reward_program_id": program["id"],
        "policy_type": "OVERTIME",
        "magnitude": 65,
        "period_key": "2026-03-14",
    }
    r = client.post("/attendance-facts", json=fact)
    assert r.status_code == 200, r.text
    assert r.json()["accrued"] is True
    assert r.json()["amount"] == 10

    duplicate = client.post("/attendance-facts", json=fact).json()
    assert duplicate == {"accrued": False, "transaction_id": None, "amount": 0}

    wallet = _wallet(client, program["id"], "emp-1")
    assert wallet["personal_point"] == 10

    statement = client.get(f"/wallets/{wallet['id']}/transactions", params={"type": "POLICY_REWARD"}).json()
    assert statement["total_items"] == 1
    assert statement["items"][0]["units"] == 2

    rec = client.get(f"/wallets/{wallet['id']}/reconciliation").json()
    assert rec == {"wallet_id": wallet["id"], "stored_balance": 10, "ledger_balance": 10, "reconciled": True}


def test_attendance_batch(client):
    program = _create_program(client)
    facts = [
        {
            "employee_id": f"emp-{n}",
            "reward_program_id": program["id"],
            "policy_type": "OVERTIME",
            "magnitude": 60,
            "period_key": "2026-03-14",
        }
        for n in range(3)
    ]
    r = client.post("/attendance-facts/batch", json={"facts": facts + facts[:1]})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["processed"] == 4
    assert body["accrued"] == 3
    assert body["duplicates"] == 1
    assert body["failures"] == []


def test_attendance_batch_reports_each_rejected_fact(client):
    program = _create_program(client)
    fact = {
        "employee_id": "emp-1",
        "reward_program_id": program["id"],
        "policy_type": "OVERTIME",
        "magnitude": 60,
        "period_key": "2026-03-14",
    }
    unknown = {**fact, "employee_id": "emp-2", "reward_program_id": "00000000-0000-0000-0000-000000000000"}

    r = client.post("/attendance-facts/batch", json={"facts": [unknown, fact]})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["accrued"] == 1
    assert body["failed"] == 1
    assert body["failures"] == [
        {
            "index": 0,
            "employee_id": "emp-2",
            "policy_type": "OVERTIME",
            "period_key": "2026-03-14",
            "code": "INTEGRITY_ERROR",
            "message": "Reward program not found",
            "details": {"reward_program_id": "00000000-0000-0000-0000-000000000000"},
        }
    ]


def test_gift_errors_carry_the_shortfall(client):
    program = _create_program(client)
    manager = _wallet(client, program["id"], "mgr-1", role="MANAGER")
    assert manager["manager_giving_budget"] == 100

    r = client.post(
        "/gifts",
        json={
            "manager_wallet_id": manager["id"],
            "recipients": [{"employee_id": "emp-1", "amount": 40}, {"employee_id": "emp-2", "amount": 70}],
        },
    )
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "INSUFFICIENT_BUDGET"
    assert body["required"] == 110
    assert body["available"] == 100
    assert body["shortfall"] == 10

    r = client.post(
        "/gifts",
        json={"manager_wallet_id": manager["id"], "recipients": [{"employee_id": "emp-1", "amount": 40}]},
    )
    assert r.status_code == 201, r.text
    assert r.json()["remaining_budget"] == 60
    assert r.json()["transactions"][0]["type"] == "GIFT"

    stats = client.get("/gifts/stats", params={"manager_wallet_id": manager["id"]}).json()
    assert stats["items"][0]["employee_id"] == "emp-1"
    assert stats["items"][0]["total_points"] == 40


def test_exchange_over_http(client):
    program = _create_program(client)
    manager = _wallet(client, program["id"], "mgr-1", role="MANAGER")
    client.post(
        "/gifts",
        json={"manager_wallet_id": manager["id"], "recipients": [{"employee_id": "emp-1", "amount": 90}]},
    )
    wallet = _wallet(client, program["id"], "emp-1")
    hoodie = next(i for i in program["items"] if i["name"] == "Hoodie")

    r = client.post(
        "/exchanges",
        json={"wallet_id": wallet["id"], "items": [{"reward_item_id": hoodie["id"], "quantity": 1}]},
    )
    assert r.status_code == 201, r.text
    assert r.json()["amount"] == 80
    assert r.json()["line_items"][0]["reward_item_name"] == "Hoodie"

    r = client.post(
        "/exchanges",
        json={"wallet_id": wallet["id"], "items": [{"reward_item_id": hoodie["id"], "quantity": 1}]},
    )
    assert r.status_code == 422
    assert r.json()["code"] == "INSUFFICIENT_BALANCE"

    r = client.post(
        "/exchanges",
        json={"wallet_id": wallet["id"], "items": [{"reward_item_id": str(uuid.uuid4()), "quantity": 1}]},
    )
    assert r.status_code == 404
    assert r.json()["code"] == "INTEGRITY_ERROR"

    items = client.get(f"/reward-programs/{program['id']}/items").json()
    assert next(i for i in items if i["name"] == "Hoodie")["quantity"] == 0


def test_unknown_wallet_is_404(client):
    r = client.get(f"/wallets/{uuid.uuid4()}")
    assert r.status_code == 404
    assert r.json()["code"] == "INTEGRITY_ERROR"


def test_policy_edit_blocked_after_accrual(client):
    program = _create_program(client)
    policy = program["policies"][0]
    client.post(
        "/attendance-facts",
        json={
            "employee_id": "emp-1",
            "reward_program_id": program["id"],
            "policy_type": "OVERTIME",
            "magnitude": 30,
            "period_key": "2026-03-14",
        },
    )

    r = client.patch(
        f"/admin/reward-programs/{program['id']}/policies/{policy['id']}",
        json={"points_per_unit": 100},
    )
    assert r.status_code == 400


def test_budget_reset_endpoint_is_idempotent(client):
    program = _create_program(client)
    manager = _wallet(client, program["id"], "mgr-1", role="MANAGER")
    client.post(
        "/gifts",
        json={"manager_wallet_id": manager["id"], "recipients": [{"employee_id": "emp-1", "amount": 70}]},
    )

    first = client.post(f"/admin/reward-programs/{program['id']}/budget-resets", json={"period_key": "2026-04"})
    assert first.status_code == 200, first.text
    assert first.json()["wallets_reset"] == 1

    second = client.post(f"/admin/reward-programs/{program['id']}/budget-resets", json={"period_key": "2026-04"})
    assert second.json()["id"] == first.json()["id"]

    assert client.get(f"/wallets/{manager['id']}").json()["manager_giving_budget"] == 100


def test_scheduled_jobs_over_http(client):
    program = _create_program(client)

    r = client.post(
        "/admin/scheduled-jobs",
        json={"job_key": "bad", "schedule": {"type": "cron", "cron": "every day"}},
    )
    assert r.status_code == 400

    r = client.post(
        "/admin/scheduled-jobs",
        json={
            "job_key": "monthly",
            "reward_program_id": program["id"],
            "schedule": {"type": "cron", "cron": "0 0 1 * *", "timezone": "UTC"},
        },
    )
    assert r.status_code == 201, r.text
    job = r.json()
    assert job["next_run_at"] is not None

    run = client.post(f"/admin/scheduled-jobs/{job['id']}/run")
    assert run.status_code == 200, run.text
    assert run.json()["reward_program_id"] == program["id"]

    job = client.get(f"/admin/scheduled-jobs/{job['id']}").json()
    assert job["last_status"] == "SUCCESS"

    r = client.patch(f"/admin/scheduled-jobs/{job['id']}", json={"active": False})
    assert r.json()["next_run_at"] is None
    assert client.post(f"/admin/scheduled-jobs/{job['id']}/run").status_code == 400
