# repository.py
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from errors import RecordNotFoundError, UniqueConstraintError
from observability import get_logger

log = get_logger("repository")


def _where(query, model, filters):
    for field, value in (filters or {}).items():
        if value is None:
            continue
        query = query.where(getattr(model, field) == value)
    return query


def list_records(db, model, *, offset=0, limit=None, filters=None):
    query = _where(select(model), model, filters).order_by(model.id).offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return list(db.scalars(query))


def count_records(db, model, filters=None):
    query = _where(select(func.count()).select_from(model), model, filters)
    return db.scalar(query) or 0


def get_record(db, model, key):
    obj = db.get(model, key)
    if obj is None:
        raise RecordNotFoundError(model.__name__, key)
    return obj


def _check_unique(db, model, obj):
    with db.no_autoflush:
        for field in model.__unique__:
            value = getattr(obj, field)
            if value is None or value == "":
                continue
            query = select(model.id).where(getattr(model, field) == value)
            if obj.id is not None:
                query = query.where(model.id != obj.id)
            if db.scalar(query.limit(1)) is not None:
                log.warning("unique_conflict", model=model.__name__, field=field)
                raise UniqueConstraintError(model.__name__, field, value)


def _commit(db, model, obj=None):
    # Tras el rollback el objeto se expira: guardar antes los valores únicos
    values = {f: getattr(obj, f, None) for f in model.__unique__} if obj is not None else {}
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        # Carrera entre la validación y el commit: lo resuelve el índice único
        message = str(getattr(e, "orig", e)).lower()
        for field in model.__unique__:
            if field in message:
                log.warning("unique_conflict", model=model.__name__, field=field)
                raise UniqueConstraintError(model.__name__, field, values.get(field)) from e
        raise


def _warn_anomalies(obj):
    if getattr(obj, "dates_out_of_order", False):
        log.warning(
            "requirement_dates_out_of_order",
            model=type(obj).__name__,
            record_id=obj.id,
            upload_date=str(obj.upload_date),
            last_updated=str(obj.last_updated),
        )


def create_record(db, model, attributes):
    obj = model.build(attributes)
    _check_unique(db, model, obj)
    db.add(obj)
    _commit(db, model, obj)
    db.refresh(obj)
    _warn_anomalies(obj)
    log.info("record_created", model=model.__name__, record_id=obj.id)
    return obj


def update_record(db, model, key, attributes):
    obj = get_record(db, model, key)
    try:
        obj.fill(attributes)
        _check_unique(db, model, obj)
    except Exception:
        # Descartar cambios a medias en la identidad de la sesión
        db.rollback()
        raise
    _commit(db, model, obj)
    db.refresh(obj)
    _warn_anomalies(obj)
    log.info("record_updated", model=model.__name__, record_id=obj.id, fields=sorted(attributes))
    return obj


def delete_record(db, model, key):
    obj = get_record(db, model, key)
    db.delete(obj)
    _commit(db, model)
    log.info("record_deleted", model=model.__name__, record_id=key)
