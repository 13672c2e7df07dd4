# factories.py
"""
Factories para sembrar datos y para tests.

Cada factory produce atributos válidos para su modelo a partir de un
``random.Random`` con semilla. Los "estados" son una lista ordenada de
diccionarios de sobrescritura que se aplican en secuencia sobre
``definition()``: si dos estados tocan el mismo atributo, gana el último.

Los campos únicos (cédula, email, cédula jurídica) salen de una
``UniqueSequence``: una permutación sin colisiones del espacio de valores.
Las secuencias viven en un registro del proceso, así que todas las
factories de la corrida (nuevas o derivadas, con cualquier semilla) sacan
valores del mismo recorrido; ``reset_sequences()`` lo vacía entre tests.
Cuando el espacio se agota se lanza ``FactoryExhaustedError`` en lugar de
reintentar.
"""
import copy
import math
import random
import unicodedata
from datetime import date, timedelta

import config
import repository
from errors import FactoryExhaustedError
from models import (
    PERSON_TYPE_CLIENT,
    PERSON_TYPE_LEAD,
    Enterprise,
    EnterprisesRequirement,
    Person,
)

# ===========================
#  CATÁLOGOS
# ===========================
NOMBRES = [
    "José", "María", "Luis", "Ana", "Carlos", "Sofía", "Andrés", "Valeria",
    "Diego", "Camila", "Jorge", "Daniela", "Pablo", "Lucía", "Ricardo", "Gabriela",
    "Fernando", "Mariana", "Esteban", "Natalia",
]

APELLIDOS = [
    "Rodríguez", "Jiménez", "Mora", "Vargas", "Rojas", "Solís", "Araya", "Castro",
    "Chaves", "Alvarado", "Hernández", "Quesada", "Calderón", "Salas", "Ramírez",
    "Brenes", "Villalobos", "Campos", "Ureña", "Madrigal",
]

EMPRESAS = [
    "Distribuidora Central", "Servicios Andinos", "Grupo Montecristo", "Inversiones Pacífico",
    "Comercial del Valle", "Tecnologías Arenal", "Constructora Orosi", "Agroindustrial Tempisque",
]

TIPOS_SOCIEDAD = ["S.A.", "S.R.L.", "Ltda."]

REQUISITOS = [
    "Personería jurídica", "Certificación de cuotas", "Estados financieros",
    "Declaración de renta", "Constancia CCSS", "Patente municipal", "Poder especial",
]

EXTENSIONES = ["pdf", "docx", "xlsx", "jpg", "png"]

EMAIL_DOMAIN = "example.com"


def _slug(texto):
    # Quitar acentos para emails
    base = unicodedata.normalize("NFKD", texto)
    base = "".join(c for c in base if not unicodedata.combining(c))
    return "".join(c for c in base.lower() if c.isalnum())


# ===========================
#  SECUENCIAS ÚNICAS
# ===========================
class UniqueSequence:
    """Recorre 0..capacity-1 en orden pseudoaleatorio sin repetir."""

    def __init__(self, name, capacity, rng):
        if capacity < 1:
            raise ValueError(f"capacity inválida para '{name}': {capacity}")
        self.name = name
        self.capacity = capacity
        self.issued = 0
        self._offset = rng.randrange(capacity)
        self._step = _coprime_step(capacity, rng)

    @property
    def remaining(self):
        return self.capacity - self.issued

    def next(self):
        if self.issued >= self.capacity:
            raise FactoryExhaustedError(self.name, self.capacity)
        value = (self._offset + self.issued * self._step) % self.capacity
        self.issued += 1
        return value


def _coprime_step(capacity, rng):
    if capacity <= 2:
        return 1
    while True:
        step = rng.randrange(1, capacity)
        if math.gcd(step, capacity) == 1:
            return step


# Una secuencia por nombre para toda la corrida. La primera factory que la
# pide fija su capacidad y su permutación.
_SEQUENCES = {}


def _sequence(name, capacity, rng):
    seq = _SEQUENCES.get(name)
    if seq is None:
        seq = UniqueSequence(name, capacity, rng)
        _SEQUENCES[name] = seq
    return seq


def reset_sequences():
    """Olvida los valores emitidos (p. ej. al recrear la base entre tests)."""
    _SEQUENCES.clear()


# ===========================
#  FACTORY BASE
# ===========================
class Factory:
    model = None
    # Tamaño del espacio de cada secuencia única
    capacities = {}

    def __init__(self, *, seed=None, rng=None, capacities=None):
        if rng is None:
            rng = random.Random(seed if seed is not None else config.FACTORY_SEED)
        self.rng = rng
        self.states = ()
        self.amount = None
        self._capacities = {**self.capacities, **(capacities or {})}

    def definition(self):
        raise NotImplementedError

    # --- estados ---
    def _derive(self, **changes):
        # Copia superficial: el rng se comparte
        new = copy.copy(self)
        for key, value in changes.items():
            setattr(new, key, value)
        return new

    def state(self, overrides):
        return self._derive(states=self.states + (dict(overrides),))

    def count(self, amount):
        if amount < 0:
            raise ValueError("amount debe ser >= 0")
        return self._derive(amount=amount)

    def sequence(self, name):
        return _sequence(name, self._capacities[name], self.rng)

    # --- producción ---
    def attributes(self, overrides=None):
        attrs = self.definition()
        for layer in self.states:
            attrs.update(layer)
        if overrides:
            attrs.update(overrides)
        return attrs

    def make(self, overrides=None):
        """Instancia(s) sin persistir."""
        if self.amount is None:
            return self.model.build(self.attributes(overrides))
        return [self.model.build(self.attributes(overrides)) for _ in range(self.amount)]

    def create(self, db, overrides=None):
        """Persiste vía repository (valida unicidad)."""
        if self.amount is None:
            return repository.create_record(db, self.model, self.attributes(overrides))
        return [
            repository.create_record(db, self.model, self.attributes(overrides))
            for _ in range(self.amount)
        ]


# ===========================
#  FACTORIES
# ===========================
class PersonFactory(Factory):
    model = Person
    capacities = {
        # "#-####-####" con primer dígito 1..9
        "persons.cedula": 9 * 10**8,
        "persons.email": 10**7,
    }

    def definition(self):
        nombre = self.rng.choice(NOMBRES)
        apellido1 = self.rng.choice(APELLIDOS)
        apellido2 = self.rng.choice(APELLIDOS)

        n = self.sequence("persons.cedula").next()
        provincia, resto = 1 + n // 10**8, n % 10**8
        cedula = f"{provincia}-{resto // 10**4:04d}-{resto % 10**4:04d}"

        k = self.sequence("persons.email").next()
        email = f"{_slug(nombre)}.{_slug(apellido1)}{k}@{EMAIL_DOMAIN}"

        return {
            "name": nombre,
            "apellido1": apellido1,
            "apellido2": apellido2,
            "cedula": cedula,
            "email": email,
            "phone": f"{self.rng.randint(2000, 8999)}-{self.rng.randint(0, 9999):04d}",
            "status": "Activo",
            "person_type_id": PERSON_TYPE_LEAD,
            "is_active": True,
        }

    def without_cedula(self):
        """Persona sin cédula (para validar flujos que la exigen)."""
        return self.state({"cedula": None})

    def lead(self):
        return self.state({"person_type_id": PERSON_TYPE_LEAD})

    def client(self):
        return self.state({"person_type_id": PERSON_TYPE_CLIENT})

    def inactive(self):
        return self.state({"is_active": False, "status": "Inactivo"})


class EnterpriseFactory(Factory):
    model = Enterprise
    capacities = {
        # cédula jurídica "3-101-######"
        "enterprises.legal_id": 10**6,
    }

    def definition(self):
        n = self.sequence("enterprises.legal_id").next()
        nombre = f"{self.rng.choice(EMPRESAS)} {self.rng.choice(TIPOS_SOCIEDAD)}"
        return {
            "name": nombre,
            "legal_id": f"3-101-{n:06d}",
            "email": f"contacto{n}@{EMAIL_DOMAIN}",
            "phone": f"{self.rng.randint(2000, 2999)}-{self.rng.randint(0, 9999):04d}",
        }


class EnterprisesRequirementFactory(Factory):
    model = EnterprisesRequirement

    def __init__(self, *, today=None, **kwargs):
        super().__init__(**kwargs)
        self.today = today or date.today()

    def definition(self):
        subido = self.today - timedelta(days=self.rng.randint(30, 365))
        actualizado = subido + timedelta(days=self.rng.randint(0, 29))
        return {
            "enterprise_id": None,
            "name": self.rng.choice(REQUISITOS),
            "file_extension": self.rng.choice(EXTENSIONES),
            "upload_date": subido,
            "last_updated": actualizado,
        }

    def for_enterprise(self, enterprise):
        return self.state({"enterprise_id": enterprise.id})
