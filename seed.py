# seed.py
"""
Datos de demo: tipos de persona, leads / clientes y empresas con sus
requisitos. Uso:  DATABASE_URL=... python seed.py [personas] [empresas]
"""
import sys

import config
from db import Base, SessionLocal, engine
from factories import EnterpriseFactory, EnterprisesRequirementFactory, PersonFactory
from models import ensure_person_types
from observability import configure_logging, get_logger

log = get_logger("seed")


def seed_demo(db, *, persons=20, enterprises=5, requirements_per_enterprise=3, seed=None):
    """
    Crea ``persons`` personas (aprox. 1 de cada 3 como cliente) y
    ``enterprises`` empresas con sus requisitos. Regresa un resumen.
    """
    seed = seed if seed is not None else config.FACTORY_SEED
    ensure_person_types(db)
    db.commit()

    personas = PersonFactory(seed=seed)
    leads = personas.lead()
    clientes = personas.client()

    creadas = []
    for i in range(persons):
        factory = clientes if i % 3 == 2 else leads
        creadas.append(factory.create(db))

    empresas = EnterpriseFactory(seed=seed).count(enterprises).create(db)
    requisitos = EnterprisesRequirementFactory(seed=seed)
    total_requisitos = 0
    for empresa in empresas:
        requisitos.for_enterprise(empresa).count(requirements_per_enterprise).create(db)
        total_requisitos += requirements_per_enterprise

    resumen = {
        "persons": len(creadas),
        "clients": sum(1 for p in creadas if p.type_label == "Cliente"),
        "enterprises": len(empresas),
        "requirements": total_requisitos,
    }
    log.info("seed_completed", **resumen)
    return resumen


# ============================================================
#  MAIN
# ============================================================
def main():
    configure_logging(level=config.LOG_LEVEL)
    persons = int(sys.argv[1]) if len(sys.argv) > 1 else 20
    enterprises = int(sys.argv[2]) if len(sys.argv) > 2 else 5

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        resumen = seed_demo(db, persons=persons, enterprises=enterprises)
    finally:
        db.close()

    print("\n========== SEED ==========")
    for clave, valor in resumen.items():
        print(f"{clave.upper()}: {valor}")


if __name__ == "__main__":
    main()
