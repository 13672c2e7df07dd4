from __future__ import annotations

from factories import PersonFactory
from models import EnterprisesRequirement

PERSONA = {
    "name": "Luis",
    "apellido1": "Vargas",
    "apellido2": "Rojas",
    "cedula": "2-0456-0789",
    "email": "luis.vargas@example.com",
    "phone": "8712-3344",
}


def test_health(http):
    assert http.get("/health").json() == {"ok": True}


def test_request_id_is_echoed(http):
    r = http.get("/health", headers={"X-Request-Id": "abc123"})
    assert r.headers["X-Request-Id"] == "abc123"
    assert http.get("/health").headers["X-Request-Id"]


def test_person_crud(http):
    r = http.post("/api/persons", json=PERSONA)
    assert r.status_code == 201
    persona = r.json()
    assert persona["status"] == "Activo"
    assert persona["type_label"] == "Lead"
    assert persona["full_name"] == "Luis Vargas Rojas"

    pid = persona["id"]
    assert http.get(f"/api/persons/{pid}").json()["email"] == PERSONA["email"]

    r = http.patch(f"/api/persons/{pid}", json={"person_type_id": 2})
    assert r.status_code == 200
    assert r.json()["type_label"] == "Cliente"

    assert http.get("/api/clients").json()["total"] == 1
    assert http.get("/api/leads").json()["total"] == 0

    assert http.delete(f"/api/persons/{pid}").json() == {"message": "Persona eliminada"}
    assert http.get(f"/api/persons/{pid}").status_code == 404


def test_person_list_pagination(http, db):
    PersonFactory(seed=13).count(5).create(db)
    body = http.get("/api/persons", params={"offset": 1, "limit": 2}).json()
    assert body["total"] == 5
    assert len(body["data"]) == 2
    assert body["offset"] == 1
    assert body["limit"] == 2


def test_guarded_field_is_rejected_as_problem(http):
    r = http.post("/api/persons", json={**PERSONA, "id": 999})
    assert r.status_code == 422
    assert r.headers["content-type"].startswith("application/problem+json")
    body = r.json()
    assert body["title"] == "Guarded Attribute"
    assert body["errors"] == [{"field": "id", "message": "not fillable"}]
    assert http.get("/api/persons").json()["total"] == 0


def test_duplicate_email_is_conflict(http):
    assert http.post("/api/persons", json=PERSONA).status_code == 201
    r = http.post("/api/persons", json={**PERSONA, "cedula": "3-0000-0001"})
    assert r.status_code == 409
    assert r.json()["errors"] == [{"field": "email", "message": "already taken"}]


def test_duplicate_cedula_on_update_is_conflict(http):
    a = http.post("/api/persons", json=PERSONA).json()
    b = http.post("/api/persons", json={**PERSONA, "cedula": None, "email": "otra@example.com"}).json()
    r = http.patch(f"/api/persons/{b['id']}", json={"cedula": a["cedula"]})
    assert r.status_code == 409
    assert http.get(f"/api/persons/{b['id']}").json()["cedula"] is None


def test_missing_required_field_is_validation_problem(http):
    r = http.post("/api/persons", json={"name": "Sin email"})
    assert r.status_code == 422
    body = r.json()
    assert body["title"] == "Validation Failed"
    assert any(e["field"].endswith("email") for e in body["errors"])


def test_not_found_is_problem(http):
    r = http.get("/api/enterprises/4040")
    assert r.status_code == 404
    body = r.json()
    assert body["status"] == 404
    assert body["instance"] == "/api/enterprises/4040"
    assert body["requestId"] == r.headers["X-Request-Id"]


def test_requirements_flow_and_cascade(http, db):
    empresa = http.post("/api/enterprises", json={"name": "Grupo Montecristo S.A.", "legal_id": "3-101-000123"}).json()

    r = http.post("/api/enterprises-requirements", json={
        "enterprise_id": empresa["id"],
        "name": "Personería jurídica",
        "file_extension": "pdf",
        "upload_date": "2025-01-10",
        "last_updated": "2025-02-01",
        "created_at": "1999-01-01",
    })
    assert r.status_code == 201
    req = r.json()
    # Campo no asignable descartado en silencio
    assert not req["created_at"].startswith("1999")
    assert req["upload_date"] == "2025-01-10"

    detalle = http.get(f"/api/enterprises/{empresa['id']}").json()
    assert [x["name"] for x in detalle["requirements"]] == ["Personería jurídica"]
    assert http.get(f"/api/enterprises/{empresa['id']}/requirements").json()["data"][0]["id"] == req["id"]

    r = http.patch(f"/api/enterprises-requirements/{req['id']}", json={"last_updated": "2025-03-05"})
    assert r.json()["last_updated"] == "2025-03-05"

    assert http.delete(f"/api/enterprises/{empresa['id']}").status_code == 200
    assert db.query(EnterprisesRequirement).count() == 0


def test_requirement_for_unknown_enterprise_is_404(http):
    r = http.post("/api/enterprises-requirements", json={"enterprise_id": 77, "name": "Patente municipal"})
    assert r.status_code == 404


def test_requirement_with_invalid_date_is_422(http):
    empresa = http.post("/api/enterprises", json={"name": "Comercial del Valle Ltda."}).json()
    r = http.post("/api/enterprises-requirements", json={
        "enterprise_id": empresa["id"],
        "name": "Estados financieros",
        "upload_date": "31/01/2025",
    })
    assert r.status_code == 422
    assert r.json()["errors"] == [{"field": "upload_date", "message": "expected date"}]


def test_enterprise_legal_id_is_unique(http):
    body = {"name": "Servicios Andinos S.R.L.", "legal_id": "3-101-555555"}
    assert http.post("/api/enterprises", json=body).status_code == 201
    assert http.post("/api/enterprises", json=body).status_code == 409


def test_kpis_and_trends(http, db):
    PersonFactory(seed=17).lead().count(3).create(db)

    kpis = http.get("/api/kpis", params={"period": "week"}).json()
    assert kpis["period"] == "week"
    assert kpis["new_leads"]["value"] == 3
    assert kpis["total_leads"] == 3

    trends = http.get("/api/kpis/trends", params={"days": 7}).json()
    assert trends["days"] == 7
    assert len(trends["data"]) == 7
    assert sum(p["leads"] for p in trends["data"]) == 3

    assert http.get("/api/kpis/trends", params={"days": 0}).status_code == 422
