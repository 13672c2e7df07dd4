# entity.py
"""
Contrato común de las entidades: lista ``__fillable__`` para asignación en
bloque, tabla ``__casts__`` de conversiones y relaciones con nombre que
devuelven un resultado etiquetado (``Related``).
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Mapping

from sqlalchemy import inspect

from errors import CastError, MassAssignmentError
from observability import get_logger

log = get_logger("entity")

BELONGS_TO = "belongs_to"
HAS_MANY = "has_many"

GUARD_DISCARD = "discard"
GUARD_RAISE = "raise"


# ======================================================
#  RELACIONES
# ======================================================
@dataclass(frozen=True)
class RelationSpec:
    kind: str                 # BELONGS_TO | HAS_MANY
    attribute: str            # atributo relationship() de SQLAlchemy
    foreign_key: str          # local (belongs_to) o remota (has_many)


@dataclass(frozen=True)
class Related:
    """Resultado de resolver una relación: "one", "many" o "absent"."""

    kind: str
    record: Any = None
    records: tuple = field(default_factory=tuple)

    @classmethod
    def one(cls, record):
        return cls("one", record=record)

    @classmethod
    def many(cls, records):
        return cls("many", records=tuple(records))

    @classmethod
    def absent(cls):
        return cls("absent")

    @property
    def is_absent(self) -> bool:
        return self.kind == "absent"

    def __iter__(self):
        if self.kind == "one":
            yield self.record
        elif self.kind == "many":
            yield from self.records

    def __len__(self) -> int:
        if self.kind == "one":
            return 1
        return len(self.records)


# ======================================================
#  CASTS
# ======================================================
_TRUE = {"1", "true", "yes", "si", "sí", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _to_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        try:
            return date.fromisoformat(s)
        except ValueError:
            # "2025-01-31 10:00:00" / "2025-01-31T10:00:00"
            return datetime.fromisoformat(s).date()
    raise TypeError(type(value).__name__)


def _to_datetime(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise TypeError(type(value).__name__)


def _to_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ValueError(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE:
            return True
        if s in _FALSE:
            return False
    raise ValueError(value)


def _to_int(value):
    if isinstance(value, bool):
        raise TypeError("bool")
    return int(value)


CASTERS = {
    "date": _to_date,
    "datetime": _to_datetime,
    "bool": _to_bool,
    "int": _to_int,
    "str": str,
}


# ======================================================
#  MIXIN
# ======================================================
class Entity:
    __fillable__ = ()
    __casts__ = MappingProxyType({})
    __relations__ = MappingProxyType({})
    __unique__ = ()
    __guarded_policy__ = GUARD_DISCARD

    @classmethod
    def cast_value(cls, attribute: str, value: Any) -> Any:
        cast = cls.__casts__.get(attribute)
        if cast is None or value is None:
            return value
        try:
            return CASTERS[cast](value)
        except (TypeError, ValueError) as e:
            raise CastError(attribute, value, cast) from e

    @classmethod
    def build(cls, attributes: Mapping[str, Any] | None = None, **kwargs):
        """Instancia nueva (sin persistir) construida vía ``fill``."""
        obj = cls()
        return obj.fill({**dict(attributes or {}), **kwargs})

    def fill(self, attributes: Mapping[str, Any]):
        attributes = dict(attributes or {})
        guarded = [k for k in attributes if k not in self.__fillable__]

        # Se decide antes de tocar nada: o se aplica todo lo permitido o nada
        if guarded:
            model = type(self).__name__
            if self.__guarded_policy__ == GUARD_RAISE:
                log.warning("guarded_attributes_rejected", model=model, fields=sorted(guarded))
                raise MassAssignmentError(model, guarded)
            log.debug("guarded_attributes_discarded", model=model, fields=sorted(guarded))

        values = {
            key: self.cast_value(key, value)
            for key, value in attributes.items()
            if key in self.__fillable__
        }
        for key, value in values.items():
            setattr(self, key, value)
        return self

    @property
    def is_persisted(self) -> bool:
        return inspect(self).has_identity

    def related(self, name: str) -> Related:
        rel = self.__relations__.get(name)
        if rel is None:
            raise KeyError(f"{type(self).__name__} no tiene la relación '{name}'")

        if rel.kind == BELONGS_TO:
            if getattr(self, rel.foreign_key, None) is None:
                return Related.absent()
            target = getattr(self, rel.attribute)
            return Related.one(target) if target is not None else Related.absent()

        if not self.is_persisted:
            return Related.many(())
        return Related.many(getattr(self, rel.attribute) or ())

    def to_dict(self) -> dict[str, Any]:
        out = {}
        for column in inspect(type(self)).columns:
            value = getattr(self, column.key)
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            out[column.key] = value
        return out
