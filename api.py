# api.py
import time

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

import config
import kpis
import repository
from db import get_db, init_db
from errors import install_error_handlers
from models import PERSON_TYPE_CLIENT, PERSON_TYPE_LEAD, Enterprise, EnterprisesRequirement, Person
from observability import configure_logging, get_logger, set_request_id

configure_logging(level=config.LOG_LEVEL)
log = get_logger("api")

# ======================================================
#  APP FASTAPI
# ======================================================
app = FastAPI(
    title="CRM Backend",
    version="1.0.0",
    description="CRUD de personas, empresas y requisitos + KPIs para el dashboard",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)


@app.middleware("http")
async def request_context(request, call_next):
    rid = set_request_id(request.headers.get("x-request-id"))
    start = time.time()
    response = await call_next(request)
    response.headers["X-Request-Id"] = rid
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=int((time.time() - start) * 1000),
    )
    return response


# Crear tablas al arrancar
@app.on_event("startup")
def on_startup():
    init_db()
    log.info("startup", environment=config.APP_ENVIRONMENT)


# ===== ESQUEMAS =====
# extra="allow": los campos de más llegan al modelo y ahí se aplica su
# política de asignación (Person rechaza, los demás descartan)
class PersonaIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    apellido1: str | None = None
    apellido2: str | None = None
    cedula: str | None = None
    email: str
    phone: str | None = None
    status: str | None = "Activo"
    person_type_id: int = PERSON_TYPE_LEAD
    is_active: bool = True


class PersonaUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    apellido1: str | None = None
    apellido2: str | None = None
    cedula: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str | None = None
    person_type_id: int | None = None
    is_active: bool | None = None


class EmpresaIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    legal_id: str | None = None
    email: str | None = None
    phone: str | None = None


class RequisitoIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    enterprise_id: int
    name: str
    file_extension: str | None = None
    upload_date: str | None = None       # "AAAA-MM-DD"
    last_updated: str | None = None


class RequisitoUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    file_extension: str | None = None
    upload_date: str | None = None
    last_updated: str | None = None


def _page_args(
    offset: int = Query(0, ge=0),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
):
    return {"offset": offset, "limit": limit}


def _listado(db, model, page, filters=None):
    data = repository.list_records(db, model, filters=filters, **page)
    return {
        "data": [r.to_dict() for r in data],
        "total": repository.count_records(db, model, filters),
        "offset": page["offset"],
        "limit": page["limit"],
    }


@app.get("/health")
def health():
    return {"ok": True}


# ======================================================
#  PERSONAS
# ======================================================
@app.get("/api/persons")
def listar_personas(
    person_type_id: int | None = None,
    page: dict = Depends(_page_args),
    db: Session = Depends(get_db),
):
    return _listado(db, Person, page, {"person_type_id": person_type_id})


@app.get("/api/leads")
def listar_leads(page: dict = Depends(_page_args), db: Session = Depends(get_db)):
    return _listado(db, Person, page, {"person_type_id": PERSON_TYPE_LEAD})


@app.get("/api/clients")
def listar_clientes(page: dict = Depends(_page_args), db: Session = Depends(get_db)):
    return _listado(db, Person, page, {"person_type_id": PERSON_TYPE_CLIENT})


@app.get("/api/persons/{person_id}")
def obtener_persona(person_id: int, db: Session = Depends(get_db)):
    return repository.get_record(db, Person, person_id).to_dict()


@app.post("/api/persons", status_code=201)
def crear_persona(peticion: PersonaIn, db: Session = Depends(get_db)):
    return repository.create_record(db, Person, peticion.model_dump()).to_dict()


@app.patch("/api/persons/{person_id}")
def actualizar_persona(person_id: int, peticion: PersonaUpdate, db: Session = Depends(get_db)):
    cambios = peticion.model_dump(exclude_unset=True)
    return repository.update_record(db, Person, person_id, cambios).to_dict()


@app.delete("/api/persons/{person_id}")
def eliminar_persona(person_id: int, db: Session = Depends(get_db)):
    repository.delete_record(db, Person, person_id)
    return {"message": "Persona eliminada"}


# ======================================================
#  EMPRESAS
# ======================================================
@app.get("/api/enterprises")
def listar_empresas(page: dict = Depends(_page_args), db: Session = Depends(get_db)):
    return _listado(db, Enterprise, page)


@app.post("/api/enterprises", status_code=201)
def crear_empresa(peticion: EmpresaIn, db: Session = Depends(get_db)):
    return repository.create_record(db, Enterprise, peticion.model_dump()).to_dict()


@app.get("/api/enterprises/{enterprise_id}")
def obtener_empresa(enterprise_id: int, db: Session = Depends(get_db)):
    empresa = repository.get_record(db, Enterprise, enterprise_id)
    return {
        **empresa.to_dict(),
        "requirements": [r.to_dict() for r in empresa.related("requirements")],
    }


@app.get("/api/enterprises/{enterprise_id}/requirements")
def requisitos_de_empresa(enterprise_id: int, db: Session = Depends(get_db)):
    empresa = repository.get_record(db, Enterprise, enterprise_id)
    return {"data": [r.to_dict() for r in empresa.related("requirements")]}


@app.delete("/api/enterprises/{enterprise_id}")
def eliminar_empresa(enterprise_id: int, db: Session = Depends(get_db)):
    # Los requisitos se borran en cascada
    repository.delete_record(db, Enterprise, enterprise_id)
    return {"message": "Empresa eliminada"}


# ======================================================
#  REQUISITOS DE EMPRESA
# ======================================================
@app.get("/api/enterprises-requirements")
def listar_requisitos(
    enterprise_id: int | None = None,
    page: dict = Depends(_page_args),
    db: Session = Depends(get_db),
):
    return _listado(db, EnterprisesRequirement, page, {"enterprise_id": enterprise_id})


@app.post("/api/enterprises-requirements", status_code=201)
def crear_requisito(peticion: RequisitoIn, db: Session = Depends(get_db)):
    repository.get_record(db, Enterprise, peticion.enterprise_id)
    return repository.create_record(db, EnterprisesRequirement, peticion.model_dump()).to_dict()


@app.get("/api/enterprises-requirements/{requirement_id}")
def obtener_requisito(requirement_id: int, db: Session = Depends(get_db)):
    return repository.get_record(db, EnterprisesRequirement, requirement_id).to_dict()


@app.patch("/api/enterprises-requirements/{requirement_id}")
def actualizar_requisito(requirement_id: int, peticion: RequisitoUpdate, db: Session = Depends(get_db)):
    cambios = peticion.model_dump(exclude_unset=True)
    return repository.update_record(db, EnterprisesRequirement, requirement_id, cambios).to_dict()


@app.delete("/api/enterprises-requirements/{requirement_id}")
def eliminar_requisito(requirement_id: int, db: Session = Depends(get_db)):
    repository.delete_record(db, EnterprisesRequirement, requirement_id)
    return {"message": "Requisito eliminado"}


# ======================================================
#  KPIs
# ======================================================
@app.get("/api/kpis")
def obtener_kpis(period: str = "month", db: Session = Depends(get_db)):
    return kpis.lead_kpis(db, period)


@app.get("/api/kpis/trends")
def obtener_tendencias(days: int = Query(30, ge=1, le=366), db: Session = Depends(get_db)):
    return {"days": days, "data": kpis.daily_trends(db, days)}
