DONATION = {
    "donor_name": "Jane Wanjiru",
    "organization": "Acme Ltd",
    "email": "jane@example.com",
    "phone": "+254700000001",
    "address": "12 Moi Avenue, Nairobi",
    "computer_type": "laptop",
    "quantity": 2,
    "condition_status": "working",
    "pickup_date": "2024-05-02",
}

SCHOOL_REQUEST = {
    "school_name": "Kibera Primary",
    "contact_person": "Mr. Otieno",
    "email": "head@kibera.example.org",
    "phone": "+254700000002",
    "location": "Nairobi",
    "computer_type": "laptop",
    "quantity": 2,
    "reason_for_request": "Computer lab for 400 pupils",
}


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_register_and_login(client):
    payload = {"email": "donor@example.org", "password": "s3cret-pass", "name": "Donor One", "role": "donor"}
    created = await client.post("/api/auth/register", json=payload)
    assert created.status_code == 201
    assert created.json()["role"] == "donor"

    duplicate = await client.post("/api/auth/register", json=payload)
    assert duplicate.status_code == 400

    login = await client.post("/api/auth/login", json={"email": payload["email"], "password": payload["password"]})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["email"] == "donor@example.org"

    wrong = await client.post("/api/auth/login", json={"email": payload["email"], "password": "nope"})
    assert wrong.status_code == 401


async def test_admin_registration_requires_key(client):
    payload = {"email": "boss@example.org", "password": "s3cret-pass", "name": "Boss", "role": "admin"}
    refused = await client.post("/api/auth/register", json=payload)
    assert refused.status_code == 403

    accepted = await client.post("/api/auth/register", json={**payload, "admin_secret": "let-me-in"})
    assert accepted.status_code == 201


async def test_anonymous_donation_then_admin_processing(client, create_user, database):
    created = await client.post("/api/donations", json=DONATION)
    assert created.status_code == 201
    donation_id = created.json()["donation_id"]

    _, admin = await create_user("admin")
    listed = await client.get("/api/donations", headers=admin)
    assert listed.json()["pagination"]["total"] == 1

    approved = await client.patch(
        f"/api/donations/{donation_id}/status",
        json={"status": "approved", "collection_date": "2024-05-06"},
        headers=admin,
    )
    assert approved.status_code == 200
    assert approved.json()["pickup_date"] == "2024-05-06"

    processing = await client.patch(f"/api/donations/{donation_id}/status", json={"status": "processing"}, headers=admin)
    assert processing.status_code == 200

    inventory = await client.get("/api/inventory", params={"donation_id": donation_id}, headers=admin)
    items = inventory.json()
    assert len(items) == 2
    assert {item["donor_name"] for item in items} == {"Jane Wanjiru"}
    assert all(item["serial_number"].startswith(f"PENDING-{donation_id}-") for item in items)

    history = await client.get(f"/api/donations/{donation_id}/history", headers=admin)
    assert {row["to_status"] for row in history.json()["history"]} == {"approved", "processing"}


async def test_status_errors_map_to_http_codes(client, create_user, create_donation):
    _, admin = await create_user("admin")
    donation_id = await create_donation(status="processing")

    invalid = await client.patch(f"/api/donations/{donation_id}/status", json={"status": "archived"}, headers=admin)
    assert invalid.status_code == 400

    backward = await client.patch(f"/api/donations/{donation_id}/status", json={"status": "pending"}, headers=admin)
    assert backward.status_code == 409

    missing = await client.patch("/api/donations/64b7f0c2a1b2c3d4e5f60718/status", json={"status": "approved"}, headers=admin)
    assert missing.status_code == 404


async def test_admin_routes_are_guarded(client, create_user, create_donation):
    donation_id = await create_donation()
    _, donor = await create_user("donor")

    assert (await client.get("/api/donations")).status_code == 401
    assert (await client.get("/api/donations", headers=donor)).status_code == 403
    forbidden = await client.patch(f"/api/donations/{donation_id}/status", json={"status": "approved"}, headers=donor)
    assert forbidden.status_code == 403
    assert (await client.post("/api/inventory/fulfill", json={"requestId": "x", "inventoryItemIds": []}, headers=donor)).status_code == 403


async def test_donor_sees_only_own_donations(client, create_user, create_donation):
    donor_id, donor = await create_user("donor")
    mine = await create_donation(user_id=donor_id)
    other = await create_donation()

    listed = await client.get("/api/donations/mine", headers=donor)
    assert [row["_id"] for row in listed.json()["donations"]] == [str(mine)]
    assert (await client.get(f"/api/donations/{mine}", headers=donor)).status_code == 200
    assert (await client.get(f"/api/donations/{other}", headers=donor)).status_code == 403


async def test_school_request_to_fulfillment(client, create_user, create_donation, engine, database):
    _, admin = await create_user("admin")
    _, school = await create_user("school", email="it@kibera.example.org")
    await client.post("/api/schools", json={"name": "Kibera Primary", "location": "Nairobi"}, headers=admin)

    created = await client.post("/api/schools/requests", json=SCHOOL_REQUEST, headers=school)
    assert created.status_code == 201
    request = created.json()["request"]
    assert request["justification"] == "Computer lab for 400 pupils"
    assert request["school_id"] is not None

    approved = await client.patch(
        f"/api/schools/requests/{request['_id']}/status",
        json={"status": "approved", "admin_comment": "Welcome aboard"},
        headers=admin,
    )
    assert approved.json()["request"]["status"] == "approved"

    by_hand = await client.patch(f"/api/schools/requests/{request['_id']}/status", json={"status": "fulfilled"}, headers=admin)
    assert by_hand.status_code == 409

    donation_id = await create_donation(quantity=2, status="approved")
    await engine.apply_donation_status(donation_id, "processing")
    item_ids = [str(doc["_id"]) async for doc in database["computer_inventory"].find({"donation_id": donation_id})]

    fulfilled = await client.post(
        "/api/inventory/fulfill",
        json={"requestId": request["_id"], "inventoryItemIds": item_ids},
        headers=admin,
    )
    assert fulfilled.status_code == 200
    assert fulfilled.json()["request_status"] == "fulfilled"

    again = await client.post(
        "/api/inventory/fulfill",
        json={"requestId": request["_id"], "inventoryItemIds": item_ids},
        headers=admin,
    )
    assert again.status_code == 409

    school_record = (await client.get("/api/schools")).json()["schools"][0]
    assert school_record["computers_received"] == 2

    impact = (await client.get("/api/stats/impact-report")).json()
    assert impact["computers_delivered"] == 2
    assert impact["schools_served"] == 1
    assert impact["requests_fulfilled"] == 1

    beneficiaries = (await client.get("/api/stats/beneficiaries")).json()
    assert beneficiaries[0]["school_name"] == "Kibera Primary"
    assert beneficiaries[0]["computers_received"] == 2


async def test_inventory_update_rejects_manual_delivery(client, create_user, create_donation, engine, database):
    _, admin = await create_user("admin")
    donation_id = await create_donation(quantity=1, status="approved")
    await engine.apply_donation_status(donation_id, "processing")
    item = await database["computer_inventory"].find_one({"donation_id": donation_id})

    ready = await client.patch(f"/api/inventory/{item['_id']}", json={"status": "ready"}, headers=admin)
    assert ready.json()["status"] == "ready"

    delivered = await client.patch(f"/api/inventory/{item['_id']}", json={"status": "delivered"}, headers=admin)
    assert delivered.status_code == 409

    unknown = await client.patch(f"/api/inventory/{item['_id']}", json={"status": "lost"}, headers=admin)
    assert unknown.status_code == 400


async def test_contact_messages(client, create_user):
    created = await client.post(
        "/api/contact",
        json={"name": "Amina", "email": "amina@example.org", "subject": "Volunteering", "message": "How can I help?"},
    )
    assert created.status_code == 201
    message_id = created.json()["contactMessage"]["_id"]

    _, admin = await create_user("admin")
    listed = await client.get("/api/contact", headers=admin)
    assert listed.json()["pagination"]["total"] == 1

    read = await client.patch(f"/api/contact/{message_id}/status", json={"status": "read"}, headers=admin)
    assert read.json()["status"] == "read"


async def test_dashboard_counts(client, create_user, create_donation, create_request):
    _, admin = await create_user("admin")
    await create_donation()
    await create_request(status="pending")

    dashboard = (await client.get("/api/stats/dashboard", headers=admin)).json()
    assert dashboard["pending"] == {"donations": 1, "requests": 1}
    assert dashboard["inventory_by_status"]["received"] == 0


async def test_oversized_quantities_rejected(client, create_user, database):
    pledge = await client.post("/api/donations", json={**DONATION, "quantity": 10**9})
    assert pledge.status_code == 422
    assert await database["donations"].count_documents({}) == 0

    _, school = await create_user("school")
    request = await client.post("/api/schools/requests", json={**SCHOOL_REQUEST, "quantity": 1001}, headers=school)
    assert request.status_code == 422

    largest = await client.post("/api/donations", json={**DONATION, "quantity": 1000})
    assert largest.status_code == 201
