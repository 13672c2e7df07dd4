from __future__ import annotations

from datetime import date

import pytest

from entity import Related
from errors import CastError, MassAssignmentError
from models import Enterprise, EnterprisesRequirement, Person, PersonType


def _person(**overrides):
    attrs = {
        "name": "Ana",
        "apellido1": "Mora",
        "apellido2": "Solís",
        "cedula": "1-2345-6789",
        "email": "ana.mora@example.com",
        "phone": "8888-0000",
        "status": "Activo",
        "person_type_id": 1,
        "is_active": True,
    }
    attrs.update(overrides)
    return Person.build(attrs)


@pytest.mark.parametrize("field", ["id", "created_at", "updated_at", "password", "person_type"])
def test_person_rejects_guarded_fields_without_mutating(field):
    person = _person()
    before = person.to_dict()

    with pytest.raises(MassAssignmentError) as exc:
        person.fill({"name": "Otro", field: "x"})

    assert exc.value.fields == [field]
    # Nada se aplica: ni el campo protegido ni el permitido
    assert person.to_dict() == before


@pytest.mark.parametrize("field", ["id", "created_at", "updated_at", "binary", "enterprise"])
def test_requirement_discards_guarded_fields(field):
    req = EnterprisesRequirement.build({"enterprise_id": 1, "name": "Personería jurídica"})
    before = getattr(req, field, None)

    req.fill({field: 99, "file_extension": "pdf"})

    assert getattr(req, field, None) == before
    assert req.file_extension == "pdf"


def test_enterprise_discards_guarded_fields():
    empresa = Enterprise.build({"name": "Grupo Orosi S.A.", "id": 77})
    assert empresa.id is None
    assert empresa.name == "Grupo Orosi S.A."


def test_date_casts_apply_on_fill_and_on_plain_assignment():
    req = EnterprisesRequirement.build({
        "enterprise_id": "3",
        "name": "Estados financieros",
        "upload_date": "2025-01-31",
        "last_updated": "2025-02-10 08:30:00",
    })
    assert req.enterprise_id == 3
    assert req.upload_date == date(2025, 1, 31)
    assert req.last_updated == date(2025, 2, 10)

    req.last_updated = "2025-03-01"
    assert req.last_updated == date(2025, 3, 1)


def test_invalid_cast_raises_and_leaves_record_untouched():
    req = EnterprisesRequirement.build({"enterprise_id": 1, "name": "Poder especial"})
    with pytest.raises(CastError) as exc:
        req.fill({"name": "Cambiado", "upload_date": "no-es-fecha"})
    assert exc.value.attribute == "upload_date"
    assert req.name == "Poder especial"


def test_person_bool_and_int_casts():
    person = _person(is_active="0", person_type_id="2")
    assert person.is_active is False
    assert person.person_type_id == 2
    assert person.type_label == "Cliente"


def test_dates_survive_persistence(db):
    empresa = Enterprise.build({"name": "Tecnologías Arenal S.A."})
    db.add(empresa)
    db.commit()

    req = EnterprisesRequirement.build({
        "enterprise_id": empresa.id,
        "name": "Patente municipal",
        "upload_date": "2024-06-01",
        "last_updated": "2024-06-15",
    })
    db.add(req)
    db.commit()
    db.expire_all()

    loaded = db.get(EnterprisesRequirement, req.id)
    assert loaded.upload_date == date(2024, 6, 1)
    assert loaded.to_dict()["last_updated"] == "2024-06-15"


def test_relations_before_persistence_are_empty():
    req = EnterprisesRequirement.build({"enterprise_id": 5, "name": "Constancia CCSS"})
    assert req.related("enterprise") == Related.absent()

    empresa = Enterprise.build({"name": "Comercial del Valle Ltda."})
    result = empresa.related("requirements")
    assert result.kind == "many"
    assert len(result) == 0


def test_relations_after_persistence(db):
    empresa = Enterprise.build({"name": "Servicios Andinos S.R.L."})
    db.add(empresa)
    db.commit()
    for nombre in ("Personería jurídica", "Declaración de renta"):
        db.add(EnterprisesRequirement.build({"enterprise_id": empresa.id, "name": nombre}))
    db.commit()
    db.expire_all()

    reqs = empresa.related("requirements")
    assert reqs.kind == "many"
    assert [r.name for r in reqs] == ["Personería jurídica", "Declaración de renta"]

    parent = reqs.records[0].related("enterprise")
    assert parent.kind == "one"
    assert parent.record.id == empresa.id


def test_person_type_relation(db):
    person = _person()
    db.add(person)
    db.commit()

    related = person.related("person_type")
    assert related.kind == "one"
    assert isinstance(related.record, PersonType)
    assert related.record.name == "Lead"


def test_unknown_relation_raises():
    with pytest.raises(KeyError):
        _person().related("documents")


def test_upload_after_last_updated_is_not_rejected(db):
    empresa = Enterprise.build({"name": "Constructora Orosi S.A."})
    db.add(empresa)
    db.commit()

    req = EnterprisesRequirement.build({
        "enterprise_id": empresa.id,
        "name": "Certificación de cuotas",
        "upload_date": "2025-05-10",
        "last_updated": "2025-05-01",
    })
    db.add(req)
    db.commit()

    assert req.id is not None
    assert req.dates_out_of_order is True


def test_deleting_enterprise_cascades_to_requirements(db):
    empresa = Enterprise.build({"name": "Inversiones Pacífico S.A."})
    db.add(empresa)
    db.commit()
    db.add(EnterprisesRequirement.build({"enterprise_id": empresa.id, "name": "Poder especial"}))
    db.commit()

    db.delete(empresa)
    db.commit()

    assert db.query(EnterprisesRequirement).count() == 0


def test_person_to_dict_includes_labels():
    data = _person().to_dict()
    assert data["full_name"] == "Ana Mora Solís"
    assert data["type_label"] == "Lead"
    assert data["cedula"] == "1-2345-6789"


def test_default_cast_and_relation_tables_are_read_only():
    with pytest.raises(TypeError):
        Enterprise.__casts__["name"] = "int"
    with pytest.raises(TypeError):
        PersonType.__relations__["persons"] = None

    assert "name" not in EnterprisesRequirement.__casts__
    assert Enterprise().cast_value("name", "ACME") == "ACME"
