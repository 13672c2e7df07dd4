from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Callable, Mapping, Sequence

from errors import ApiError
from observability import get_logger

log = get_logger("pages")


@dataclass(frozen=True)
class PageContext:
    """Ruta actual, tema y locale; se pasa explícitamente a cada página."""

    route: str
    theme: str = "light"
    locale: str = "es-CR"


def format_value(value: Any) -> str:
    if value is None or value == "":
        return "-"
    if isinstance(value, bool):
        return "Sí" if value else "No"
    if isinstance(value, datetime):
        return value.strftime("%d-%m-%Y %H:%M")
    if isinstance(value, date):
        return value.strftime("%d-%m-%Y")
    if isinstance(value, str) and len(value) == 10 and value[4] == "-" and value[7] == "-":
        # Fechas ISO que vienen del API
        try:
            return date.fromisoformat(value).strftime("%d-%m-%Y")
        except ValueError:
            return value
    return str(value)


@dataclass(frozen=True)
class Column:
    key: str
    label: str
    formatter: Callable[[Mapping[str, Any]], Any] | None = None

    def text(self, row: Mapping[str, Any]) -> str:
        value = self.formatter(row) if self.formatter else row.get(self.key)
        return format_value(value)


@dataclass(frozen=True)
class RowAction:
    name: str
    label: str
    handler: Callable[[Any], Any] | None = None


DEFAULT_ACTIONS = (
    RowAction("view", "Ver"),
    RowAction("edit", "Editar"),
    RowAction("delete", "Eliminar"),
)


def _as_row(record: Any) -> dict[str, Any]:
    # Copia: la página nunca toca el registro original
    if hasattr(record, "to_dict"):
        return dict(record.to_dict())
    return dict(record)


@dataclass(frozen=True)
class ResourcePage:
    title: str
    columns: tuple[Column, ...]
    empty_message: str
    actions: tuple[RowAction, ...] = DEFAULT_ACTIONS
    key: str = "id"
    menu_label: str = "Acciones"

    def with_handlers(self, **handlers: Callable[[Any], Any]) -> "ResourcePage":
        unknown = set(handlers) - {a.name for a in self.actions}
        if unknown:
            raise KeyError(f"Acciones desconocidas: {', '.join(sorted(unknown))}")
        actions = tuple(
            replace(a, handler=handlers[a.name]) if a.name in handlers else a for a in self.actions
        )
        return replace(self, actions=actions)

    def _frame(self, context: PageContext) -> dict[str, Any]:
        return {
            "title": self.title,
            "route": context.route,
            "theme": context.theme,
            "locale": context.locale,
            "columns": [{"key": c.key, "label": c.label} for c in self.columns],
        }

    def render(self, records: Sequence[Any], context: PageContext) -> dict[str, Any]:
        rows = []
        for index, record in enumerate(records):
            data = _as_row(record)
            rows.append({
                "index": index,
                "key": data.get(self.key),
                "cells": [c.text(data) for c in self.columns],
                "menu": {
                    "label": self.menu_label,
                    "items": [{"action": a.name, "label": a.label} for a in self.actions],
                },
            })

        view = self._frame(context)
        if not rows:
            view.update({"state": "empty", "empty": True, "message": self.empty_message, "rows": []})
            return view
        view.update({"state": "loaded", "empty": False, "rows": rows, "count": len(rows)})
        return view

    def render_error(self, message: str, context: PageContext) -> dict[str, Any]:
        view = self._frame(context)
        view.update({
            "state": "error",
            "empty": False,
            "rows": [],
            "message": message,
            "actions": [
                {"action": "retry", "label": "Reintentar"},
                {"action": "back", "label": "Volver"},
            ],
        })
        return view

    def trigger(self, action: str, records: Sequence[Any], index: int) -> Any:
        """Ejecuta la acción de la fila; sin handler es un no-op."""
        match = next((a for a in self.actions if a.name == action), None)
        if match is None:
            raise KeyError(f"Acción desconocida: {action}")
        if not 0 <= index < len(records):
            raise IndexError(f"Fila fuera de rango: {index}")
        if match.handler is None:
            return None
        return match.handler(records[index])


async def load_resource_page(
    page: ResourcePage,
    client,
    path: str,
    context: PageContext,
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Trae la colección por HTTP y la renderiza; los errores quedan en la página."""
    try:
        payload = await client.get(path, params=params)
    except ApiError as e:
        log.warning("page_fetch_failed", route=context.route, path=path, status=e.status_code)
        return page.render_error(f"No se pudieron cargar los datos. {e.message}", context)

    records = _records_of(payload)
    if records is None:
        log.warning("page_unexpected_payload", route=context.route, path=path, payload_type=type(payload).__name__)
        return page.render_error("No se pudieron cargar los datos. Respuesta inesperada del servidor.", context)
    return page.render(records, context)


def _records_of(payload: Any) -> list[Any] | None:
    """``{"data": [...]}`` o una lista de registros; ``None`` si no es ninguna."""
    if payload is None:
        return []
    if isinstance(payload, Mapping):
        payload = payload.get("data", [])
    if not isinstance(payload, list):
        return None
    if not all(isinstance(r, Mapping) or hasattr(r, "to_dict") for r in payload):
        return None
    return payload


# ======================================================
#  PÁGINAS
# ======================================================
def _apellidos(row: Mapping[str, Any]) -> str:
    return " ".join(p for p in (row.get("apellido1"), row.get("apellido2")) if p)


def _extension(row: Mapping[str, Any]) -> str | None:
    ext = row.get("file_extension")
    return f".{ext.lstrip('.').lower()}" if ext else None


PERSONS_PAGE = ResourcePage(
    title="Personas",
    columns=(
        Column("name", "Nombre"),
        Column("apellidos", "Apellidos", _apellidos),
        Column("cedula", "Cédula"),
        Column("email", "Email"),
        Column("phone", "Teléfono"),
        Column("type_label", "Tipo"),
        Column("status", "Estado"),
    ),
    empty_message="No hay personas registradas aún.",
)

REQUIREMENTS_PAGE = ResourcePage(
    title="Requisitos de la empresa",
    columns=(
        Column("name", "Nombre"),
        Column("file_extension", "Extensión", _extension),
        Column("upload_date", "Subido"),
        Column("last_updated", "Actualizado"),
    ),
    empty_message="No hay requisitos registrados aún.",
)
