# kpis.py
import calendar
from datetime import datetime, timedelta

from sqlalchemy import func, select

from models import PERSON_TYPE_CLIENT, PERSON_TYPE_LEAD, Person, utcnow

PERIODS = ("week", "month", "quarter", "year")

CONVERSION_TARGET = 30
LEAD_AGING_DAYS = 7


# ============================================================
#  RANGOS DE FECHAS
# ============================================================
def _sub_months(dt, months):
    month_index = dt.month - 1 - months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def _shift(dt, period, times):
    if period == "week":
        return dt - timedelta(weeks=times)
    if period == "quarter":
        return _sub_months(dt, 3 * times)
    if period == "year":
        return _sub_months(dt, 12 * times)
    return _sub_months(dt, times)


def date_range(period, now=None):
    """
    Periodo actual y el anterior de la misma longitud.
    Un periodo desconocido se trata como "month".
    """
    if period not in PERIODS:
        period = "month"
    now = now or utcnow()
    return {
        "period": period,
        "start": _shift(now, period, 1),
        "end": now,
        "prev_start": _shift(now, period, 2),
        "prev_end": _shift(now, period, 1),
    }


def calculate_change(current, previous):
    if previous == 0:
        return 100 if current > 0 else 0
    return round(((current - previous) / previous) * 100, 1)


# ============================================================
#  KPIs DE LEADS
# ============================================================
def _count(db, *conditions):
    query = select(func.count()).select_from(Person)
    for cond in conditions:
        query = query.where(cond)
    return db.scalar(query) or 0


def _between(start, end):
    return Person.created_at.between(start, end)


def lead_kpis(db, period="month", now=None):
    rango = date_range(period, now)
    is_lead = Person.person_type_id == PERSON_TYPE_LEAD
    is_client = Person.person_type_id == PERSON_TYPE_CLIENT

    leads = _count(db, is_lead, _between(rango["start"], rango["end"]))
    prev_leads = _count(db, is_lead, _between(rango["prev_start"], rango["prev_end"]))
    clients = _count(db, is_client, _between(rango["start"], rango["end"]))
    prev_clients = _count(db, is_client, _between(rango["prev_start"], rango["prev_end"]))

    all_leads = _count(db, is_lead)
    all_clients = _count(db, is_client)
    conversion = round((all_clients / all_leads) * 100, 1) if all_leads > 0 else 0
    prev_conversion = round((prev_clients / prev_leads) * 100, 1) if prev_leads > 0 else 0

    # Leads activos sin atender hace más de una semana
    aging_limit = rango["end"] - timedelta(days=LEAD_AGING_DAYS)
    lead_aging = _count(db, is_lead, Person.is_active.is_(True), Person.created_at < aging_limit)

    return {
        "period": rango["period"],
        "conversion_rate": {
            "value": conversion,
            "change": calculate_change(conversion, prev_conversion),
            "target": CONVERSION_TARGET,
            "unit": "%",
        },
        "new_leads": {"value": leads, "change": calculate_change(leads, prev_leads), "unit": "leads"},
        "new_clients": {"value": clients, "change": calculate_change(clients, prev_clients), "unit": "clientes"},
        "lead_aging": {"value": lead_aging, "change": 0, "unit": "leads"},
        "total_leads": all_leads,
        "total_clients": all_clients,
    }


# ============================================================
#  TENDENCIA DIARIA
# ============================================================
def daily_trends(db, days, today=None):
    """Un punto por día (del más viejo al más reciente), con ceros si no hubo altas."""
    if days < 1:
        return []
    today = today or utcnow().date()
    first = today - timedelta(days=days - 1)
    start = datetime(first.year, first.month, first.day)

    rows = db.execute(
        select(Person.created_at, Person.person_type_id).where(Person.created_at >= start)
    ).all()

    buckets = {first + timedelta(days=i): {"leads": 0, "clients": 0} for i in range(days)}
    for created_at, type_id in rows:
        bucket = buckets.get(created_at.date())
        if bucket is None:
            continue
        if type_id == PERSON_TYPE_LEAD:
            bucket["leads"] += 1
        elif type_id == PERSON_TYPE_CLIENT:
            bucket["clients"] += 1

    return [{"date": d.isoformat(), **counts} for d, counts in sorted(buckets.items())]
