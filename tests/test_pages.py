from __future__ import annotations

import asyncio
import copy
from datetime import date

import httpx
import pytest

from client import ApiClient
from factories import PersonFactory
from pages import (
    PERSONS_PAGE,
    REQUIREMENTS_PAGE,
    PageContext,
    format_value,
    load_resource_page,
)

CTX = PageContext(route="/personas", theme="dark")


def test_empty_collection_renders_empty_state():
    view = PERSONS_PAGE.render([], CTX)
    assert view["state"] == "empty"
    assert view["empty"] is True
    assert view["message"] == "No hay personas registradas aún."
    assert view["rows"] == []
    assert view["theme"] == "dark"
    assert [c["label"] for c in view["columns"]] == [
        "Nombre", "Apellidos", "Cédula", "Email", "Teléfono", "Tipo", "Estado",
    ]


def test_three_people_then_delete_second_row():
    people = [p.to_dict() for p in PersonFactory(seed=31).count(3).make()]
    for i, p in enumerate(people, start=1):
        p["id"] = i

    view = PERSONS_PAGE.render(people, CTX)
    assert view["count"] == 3
    for row, person in zip(view["rows"], people):
        cells = dict(zip([c["key"] for c in view["columns"]], row["cells"]))
        assert cells["name"] == person["name"]
        assert cells["email"] == person["email"]
        assert cells["phone"] == person["phone"]
        assert [i["action"] for i in row["menu"]["items"]] == ["view", "edit", "delete"]

    def delete(record):
        return [r for r in people if r["id"] != record["id"]]

    page = PERSONS_PAGE.with_handlers(delete=delete)
    remaining = page.trigger("delete", people, 1)
    after = page.render(remaining, CTX)

    assert after["count"] == 2
    assert [r["key"] for r in after["rows"]] == [1, 3]
    assert len(people) == 3


def test_render_is_pure():
    people = [p.to_dict() for p in PersonFactory(seed=2).count(2).make()]
    snapshot = copy.deepcopy(people)

    first = PERSONS_PAGE.render(people, CTX)
    second = PERSONS_PAGE.render(people, CTX)

    assert first == second
    assert people == snapshot


def test_render_accepts_entities():
    people = PersonFactory(seed=2).lead().count(2).make()
    view = PERSONS_PAGE.render(people, CTX)
    assert view["rows"][0]["cells"][5] == "Lead"
    assert view["rows"][0]["cells"][1] == f"{people[0].apellido1} {people[0].apellido2}"


def test_trigger_without_handler_is_noop():
    assert PERSONS_PAGE.trigger("view", [{"id": 1}], 0) is None


def test_trigger_rejects_unknown_action_and_bad_index():
    with pytest.raises(KeyError):
        PERSONS_PAGE.trigger("archive", [{"id": 1}], 0)
    with pytest.raises(IndexError):
        PERSONS_PAGE.trigger("view", [{"id": 1}], 1)
    with pytest.raises(KeyError):
        PERSONS_PAGE.with_handlers(archive=lambda r: r)


def test_requirement_columns_are_formatted():
    view = REQUIREMENTS_PAGE.render(
        [{"id": 4, "name": "Patente municipal", "file_extension": "PDF", "upload_date": "2025-01-05", "last_updated": None}],
        PageContext(route="/empresas/1/requisitos"),
    )
    assert view["rows"][0]["cells"] == ["Patente municipal", ".pdf", "05-01-2025", "-"]
    assert REQUIREMENTS_PAGE.render([], CTX)["message"] == "No hay requisitos registrados aún."


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "-"),
        ("", "-"),
        (True, "Sí"),
        (False, "No"),
        (date(2025, 2, 3), "03-02-2025"),
        ("2025-02-03", "03-02-2025"),
        ("1-2345-6789", "1-2345-6789"),
        (7, "7"),
    ],
)
def test_format_value(value, expected):
    assert format_value(value) == expected


def test_fetch_error_renders_error_state_with_recovery():
    def handler(request):
        return httpx.Response(500, json={"title": "Internal Server Error", "status": 500})

    async def run():
        async with ApiClient("http://api.test", transport=httpx.MockTransport(handler)) as api:
            return await load_resource_page(PERSONS_PAGE, api, "/api/persons", CTX)

    view = asyncio.run(run())
    assert view["state"] == "error"
    assert view["message"].startswith("No se pudieron cargar los datos.")
    assert [a["action"] for a in view["actions"]] == ["retry", "back"]


def test_load_from_api_in_process(app, db):
    PersonFactory(seed=44).count(3).create(db)

    async def run():
        transport = httpx.ASGITransport(app=app)
        async with ApiClient("http://testserver", transport=transport) as api:
            return await load_resource_page(PERSONS_PAGE, api, "/api/persons", CTX)

    view = asyncio.run(run())
    assert view["state"] == "loaded"
    assert view["count"] == 3


def test_html_body_renders_error_state():
    def handler(request):
        return httpx.Response(200, text="<html>proxy error</html>", headers={"content-type": "text/html"})

    async def run():
        async with ApiClient("http://api.test", transport=httpx.MockTransport(handler)) as api:
            return await load_resource_page(PERSONS_PAGE, api, "/api/persons", CTX)

    view = asyncio.run(run())
    assert view["state"] == "error"
    assert view["message"] == "No se pudieron cargar los datos. Respuesta inválida del servidor"
    assert [a["action"] for a in view["actions"]] == ["retry", "back"]


@pytest.mark.parametrize(
    "payload",
    [
        {"data": "no-es-lista"},
        {"data": [1, 2]},
        ["texto", "suelto"],
        "hola",
    ],
)
def test_unexpected_payload_shape_renders_error_state(payload):
    def handler(request):
        return httpx.Response(200, json=payload)

    async def run():
        async with ApiClient("http://api.test", transport=httpx.MockTransport(handler)) as api:
            return await load_resource_page(PERSONS_PAGE, api, "/api/persons", CTX)

    view = asyncio.run(run())
    assert view["state"] == "error"
    assert view["message"] == "No se pudieron cargar los datos. Respuesta inesperada del servidor."


def test_list_payload_and_empty_body_are_accepted():
    payloads = iter([[{"id": 1, "name": "Ana", "email": "ana@example.com"}], None])

    def handler(request):
        body = next(payloads)
        return httpx.Response(200, json=body) if body is not None else httpx.Response(204)

    async def run():
        async with ApiClient("http://api.test", transport=httpx.MockTransport(handler)) as api:
            first = await load_resource_page(PERSONS_PAGE, api, "/api/persons", CTX)
            second = await load_resource_page(PERSONS_PAGE, api, "/api/persons", CTX)
            return first, second

    first, second = asyncio.run(run())
    assert first["count"] == 1
    assert second["state"] == "empty"
