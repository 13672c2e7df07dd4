# models.py
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship, validates
from datetime import datetime, timezone

from db import Base
from entity import BELONGS_TO, GUARD_DISCARD, GUARD_RAISE, HAS_MANY, Entity, RelationSpec

# Tipos de persona (tabla person_types)
PERSON_TYPE_LEAD = 1
PERSON_TYPE_CLIENT = 2
PERSON_TYPES = {
    PERSON_TYPE_LEAD: "Lead",
    PERSON_TYPE_CLIENT: "Cliente",
}


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PersonType(Base, Entity):
    __tablename__ = "person_types"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False, unique=True)

    __fillable__ = ("id", "name")


class Person(Base, Entity):
    __tablename__ = "persons"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    apellido1 = Column(String(120), nullable=True)
    apellido2 = Column(String(120), nullable=True)

    # Cédula "#-####-####"; única pero opcional
    cedula = Column(String(20), unique=True, index=True, nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(30), nullable=True)

    # Texto libre ("Activo", "Inactivo", ...)
    status = Column(String(40), nullable=True)
    person_type_id = Column(Integer, ForeignKey("person_types.id"), nullable=False, default=PERSON_TYPE_LEAD)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    person_type = relationship("PersonType")

    __fillable__ = (
        "name",
        "apellido1",
        "apellido2",
        "cedula",
        "email",
        "phone",
        "status",
        "person_type_id",
        "is_active",
    )
    __casts__ = {
        "person_type_id": "int",
        "is_active": "bool",
    }
    __unique__ = ("cedula", "email")
    __relations__ = {
        "person_type": RelationSpec(BELONGS_TO, "person_type", "person_type_id"),
    }
    __guarded_policy__ = GUARD_RAISE

    @validates("person_type_id", "is_active")
    def _cast(self, key, value):
        return self.cast_value(key, value)

    @property
    def apellidos(self) -> str:
        return " ".join(p for p in (self.apellido1, self.apellido2) if p)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.name, self.apellidos) if p)

    @property
    def type_label(self) -> str:
        return PERSON_TYPES.get(self.person_type_id, "-")

    def to_dict(self):
        return {**super().to_dict(), "full_name": self.full_name, "type_label": self.type_label}


class Enterprise(Base, Entity):
    __tablename__ = "enterprises"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    # Cédula jurídica
    legal_id = Column(String(30), unique=True, index=True, nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    requirements = relationship(
        "EnterprisesRequirement",
        back_populates="enterprise",
        cascade="all, delete-orphan",
        order_by="EnterprisesRequirement.id",
    )

    __fillable__ = ("name", "legal_id", "email", "phone")
    __unique__ = ("legal_id",)
    __relations__ = {
        "requirements": RelationSpec(HAS_MANY, "requirements", "enterprise_id"),
    }
    __guarded_policy__ = GUARD_DISCARD


class EnterprisesRequirement(Base, Entity):
    __tablename__ = "enterprises_requirements"

    id = Column(Integer, primary_key=True, index=True)
    enterprise_id = Column(Integer, ForeignKey("enterprises.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    file_extension = Column(String(20), nullable=True)
    upload_date = Column(Date, nullable=True)
    last_updated = Column(Date, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    enterprise = relationship("Enterprise", back_populates="requirements")

    __fillable__ = (
        "enterprise_id",
        "name",
        "file_extension",
        "upload_date",
        "last_updated",
    )
    __casts__ = {
        "enterprise_id": "int",
        "upload_date": "date",
        "last_updated": "date",
    }
    __relations__ = {
        "enterprise": RelationSpec(BELONGS_TO, "enterprise", "enterprise_id"),
    }
    __guarded_policy__ = GUARD_DISCARD

    @validates("enterprise_id", "upload_date", "last_updated")
    def _cast(self, key, value):
        return self.cast_value(key, value)

    @property
    def dates_out_of_order(self) -> bool:
        # No se impide: las fechas pueden corregirse por separado
        if self.upload_date is None or self.last_updated is None:
            return False
        return self.upload_date > self.last_updated


def ensure_person_types(db):
    """Inserta Lead / Cliente si no existen."""
    for type_id, name in PERSON_TYPES.items():
        if db.get(PersonType, type_id) is None:
            db.add(PersonType(id=type_id, name=name))
    db.flush()
