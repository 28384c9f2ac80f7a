from family_finance.core.models import AuditEntry, Expense, Notification, NotificationRecipient, RecurringBill


def test_members_listed_by_name(client, household):
    resp = client.get("/api/members", headers=household.viewer.headers)

    assert resp.status_code == 200
    assert [m["name"] for m in resp.json()] == ["Alex Johnson", "Jane Doe", "Michael Smith", "Sam Lee"]


def test_admin_changes_member_role(client, household):
    resp = client.put(
        f"/api/members/{household.jane.id}/role",
        json={"role": "VIEW_ONLY"},
        headers=household.admin.headers,
    )
    assert resp.status_code == 200
    assert resp.json()["role"] == "VIEW_ONLY"

    # the demoted member loses write access immediately
    resp = client.post(
        "/api/incomes",
        json={"source": "Pension", "amount": 10, "received_date": "2024-06-01T00:00:00"},
        headers=household.jane.headers,
    )
    assert resp.status_code == 403


def test_role_change_rules(client, household):
    admin = household.admin
    assert client.put(f"/api/members/{admin.id}/role", json={"role": "MEMBER"},
                      headers=admin.headers).status_code == 400
    assert client.put(f"/api/members/{household.sam.id}/role", json={"role": "ADMIN"},
                      headers=household.jane.headers).status_code == 403
    assert client.put("/api/members/9999/role", json={"role": "ADMIN"},
                      headers=admin.headers).status_code == 404
    assert client.put(f"/api/members/{household.sam.id}/role", json={"role": "BOSS"},
                      headers=admin.headers).status_code == 422


def test_deleting_member_keeps_their_records(client, db, household):
    jane = household.jane
    expense_id = client.post("/api/expenses", json={
        "category": "Water", "amount": 55.0, "due_date": "2024-06-10T00:00:00",
    }, headers=jane.headers).json()["id"]
    bill_id = client.post("/api/recurring-bills", json={
        "name": "Internet", "amount": 70, "first_due_date": "2024-06-05T00:00:00", "frequency": "MONTHLY",
    }, headers=jane.headers).json()["id"]
    client.post("/api/notifications", json={"message": "Water bill is up"}, headers=jane.headers)
    client.post("/api/notifications", json={"message": "Welcome aboard", "recipient_ids": [jane.id]},
                headers=household.admin.headers)

    resp = client.delete(f"/api/members/{jane.id}", headers=household.admin.headers)
    assert resp.status_code == 200

    db.expire_all()
    assert db.get(Expense, expense_id).created_by_id is None
    assert db.get(RecurringBill, bill_id).created_by_id is None
    assert db.query(Notification).filter(Notification.sender_id == jane.id).count() == 0
    assert db.query(NotificationRecipient).filter(NotificationRecipient.user_id == jane.id).count() == 0
    # the admin's notification survives without Jane as a recipient
    assert db.query(Notification).count() == 1

    names = [m["name"] for m in client.get("/api/members", headers=household.admin.headers).json()]
    assert "Jane Doe" not in names

    expenses = client.get("/api/expenses", headers=household.admin.headers).json()
    assert expenses[0]["created_by"] is None

    # audit entries outlive their author
    assert db.query(AuditEntry).filter(AuditEntry.changed_by == jane.id).count() == 2


def test_member_delete_rules(client, household):
    admin = household.admin
    assert client.delete(f"/api/members/{admin.id}", headers=admin.headers).status_code == 400
    assert client.delete(f"/api/members/{household.sam.id}", headers=household.jane.headers).status_code == 403
    assert client.delete("/api/members/9999", headers=admin.headers).status_code == 404
