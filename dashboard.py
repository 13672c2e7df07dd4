from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from errors import ApiError
from export import EXPORTERS, TabularDataset
from observability import get_logger
from pages import PageContext

log = get_logger("dashboard")

LOADING = "loading"
LOADED = "loaded"
ERROR = "error"
UNMOUNTED = "unmounted"


@dataclass(frozen=True)
class TimeRange:
    key: str
    label: str
    days: int
    period: str      # periodo equivalente de /api/kpis


TIME_RANGES = {
    "7d": TimeRange("7d", "Últimos 7 días", 7, "week"),
    "30d": TimeRange("30d", "Últimos 30 días", 30, "month"),
    "90d": TimeRange("90d", "Últimos 90 días", 90, "quarter"),
    "365d": TimeRange("365d", "Último año", 365, "year"),
}


def _resolve_range(value: str | TimeRange) -> TimeRange:
    if isinstance(value, TimeRange):
        return value
    try:
        return TIME_RANGES[value]
    except KeyError:
        raise ValueError(f"Rango desconocido: {value}") from None


@dataclass(frozen=True)
class SummaryCard:
    label: str
    value: Any
    unit: str
    delta: float
    trend: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "value": self.value,
            "unit": self.unit,
            "delta": self.delta,
            "trend": self.trend,
        }


def trend_of(delta: float) -> str:
    if delta > 0:
        return "up"
    if delta < 0:
        return "down"
    return "flat"


@dataclass(frozen=True)
class ExportFile:
    filename: str
    mime_type: str
    content: bytes
    row_count: int


CARD_METRICS = (
    ("new_leads", "Leads nuevos"),
    ("new_clients", "Clientes nuevos"),
    ("conversion_rate", "Tasa de conversión"),
    ("lead_aging", "Leads sin atender"),
)

CHART_PANELS = (
    ("leads", "Leads por día", "line"),
    ("clients", "Clientes por día", "area"),
)


class DashboardPage:
    """
    Página de KPIs: tarjetas resumen + series diarias para un rango.

    Estados: ``loading -> loaded | error``; refrescar, cambiar de rango o
    reintentar vuelve a ``loading``. Cada carga lleva un número de
    generación: una respuesta de una generación vieja (rango cambiado,
    refresco, página desmontada) se descarta. ``unmount()`` cancela la
    petición en vuelo y a partir de ahí la página no cambia más.
    """

    def __init__(self, client, context: PageContext, *, time_range: str | TimeRange = "30d", today: date | None = None):
        self.client = client
        self.context = context
        self.time_range = _resolve_range(time_range)
        self.today = today
        self.status = LOADING
        self.error: str | None = None
        self.metrics: dict[str, Any] = {}
        self.points: tuple[dict[str, Any], ...] = ()
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._mounted = True

    @property
    def mounted(self) -> bool:
        return self._mounted

    # --- ciclo de carga ---
    def start(self) -> asyncio.Task | None:
        """Lanza una carga sin esperarla. Debe llamarse dentro de un loop."""
        if not self._mounted:
            return None
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.status = LOADING
        self.error = None
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation))
        return self._task

    async def load(self) -> str:
        task = self.start()
        if task is not None:
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return self.status

    async def refresh(self) -> str:
        return await self.load()

    async def retry(self) -> str:
        return await self.load()

    async def set_range(self, time_range: str | TimeRange) -> str:
        if not self._mounted:
            return self.status
        self.time_range = _resolve_range(time_range)
        return await self.load()

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.status = UNMOUNTED

    def _is_current(self, generation: int) -> bool:
        return self._mounted and generation == self._generation

    async def _run(self, generation: int) -> None:
        rng = self.time_range
        # Se esperan las dos aunque una falle
        results = await asyncio.gather(
            self.client.get("/api/kpis", params={"period": rng.period}),
            self.client.get("/api/kpis/trends", params={"days": rng.days}),
            return_exceptions=True,
        )
        failure = next((r for r in results if isinstance(r, BaseException)), None)
        if isinstance(failure, asyncio.CancelledError):
            raise failure

        if failure is None:
            kpis, trends = results
            try:
                metrics = dict(kpis or {})
                points = self._window(trends)
            except (TypeError, ValueError, AttributeError) as e:
                failure = e

        # Respuesta tardía: otra carga la reemplazó o la página se desmontó
        if not self._is_current(generation):
            return

        if failure is not None:
            self._fail(failure)
            return

        self.metrics = metrics
        self.points = points
        self.status = LOADED

    def _fail(self, failure: BaseException) -> None:
        if isinstance(failure, ApiError):
            log.warning(
                "dashboard_fetch_failed",
                route=self.context.route,
                status=failure.status_code,
                error=failure.message,
            )
            reason = failure.message
        else:
            log.error("dashboard_unexpected_failure", route=self.context.route, exc_info=failure)
            reason = "Respuesta inesperada del servidor."
        self.status = ERROR
        self.error = f"No se pudieron cargar los indicadores. {reason}"

    def _window(self, trends: Any) -> tuple[dict[str, Any], ...]:
        raw = trends.get("data", []) if isinstance(trends, dict) else (trends or [])
        last = self.today or date.today()
        first = last - timedelta(days=self.time_range.days - 1)
        points = []
        for p in raw:
            try:
                day = date.fromisoformat(str(p.get("date")))
            except ValueError:
                continue
            if first <= day <= last:
                points.append({"date": day.isoformat(), "leads": p.get("leads", 0), "clients": p.get("clients", 0)})
        points.sort(key=lambda p: p["date"])
        return tuple(points)

    # --- vista ---
    def cards(self) -> list[SummaryCard]:
        out = []
        for key, label in CARD_METRICS:
            metric = self.metrics.get(key)
            if not isinstance(metric, dict):
                continue
            delta = metric.get("change", 0) or 0
            out.append(SummaryCard(label, metric.get("value", 0), metric.get("unit", ""), delta, trend_of(delta)))
        return out

    def charts(self) -> list[dict[str, Any]]:
        return [
            {
                "key": key,
                "title": title,
                "kind": kind,
                "points": [{"x": p["date"], "y": p[key]} for p in self.points],
            }
            for key, title, kind in CHART_PANELS
        ]

    def render(self) -> dict[str, Any]:
        view: dict[str, Any] = {
            "title": "Indicadores",
            "route": self.context.route,
            "theme": self.context.theme,
            "status": self.status,
            "range": {"key": self.time_range.key, "label": self.time_range.label},
            "ranges": [
                {"key": r.key, "label": r.label, "selected": r.key == self.time_range.key}
                for r in TIME_RANGES.values()
            ],
        }
        if self.status == LOADING:
            view["message"] = "Cargando indicadores..."
        elif self.status == ERROR:
            view["message"] = self.error
            view["actions"] = [{"action": "retry", "label": "Reintentar"}]
        elif self.status == LOADED:
            view["cards"] = [c.as_dict() for c in self.cards()]
            view["charts"] = self.charts()
            view["empty"] = not self.points
            if not self.points:
                view["message"] = "Sin datos para el rango seleccionado."
            view["actions"] = [
                {"action": "refresh", "label": "Actualizar"},
                {"action": "export", "format": "xlsx", "label": "Exportar Excel"},
                {"action": "export", "format": "pdf", "label": "Exportar PDF"},
            ]
        return view

    # --- exportar ---
    def dataset(self) -> TabularDataset:
        return TabularDataset(
            columns=("Fecha", "Leads", "Clientes"),
            rows=tuple((p["date"], p["leads"], p["clients"]) for p in self.points),
        )

    def export(self, fmt: str) -> ExportFile:
        """Exporta exactamente los puntos que se muestran (rango filtrado)."""
        if fmt not in EXPORTERS:
            raise ValueError(f"Formato no soportado: {fmt}")
        if self.status != LOADED:
            raise RuntimeError("No hay datos cargados para exportar")

        exporter, mime = EXPORTERS[fmt]
        dataset = self.dataset()
        content = exporter(dataset, {"title": "Indicadores", "Rango": self.time_range.label})
        filename = f"indicadores_{self.time_range.key}.{fmt}"
        return ExportFile(filename, mime, content, dataset.row_count)
