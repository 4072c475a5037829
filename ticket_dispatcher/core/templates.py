from __future__ import annotations

"""
Ticket template registry and payload validation.

Templates are small descriptors (id, name, required/optional fields) kept in a
templates.json file next to the queue directories. Two base templates, `receipt`
and `price-tag`, always exist; custom templates may be added through the API.

`TemplateRegistry.validate()` is the contract used by the print API before a job
is enqueued, and again by the printer renderer before anything hits the wire.
"""

import json
import logging
import math
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

BASE_TEMPLATE_IDS = ("receipt", "price-tag")


class TemplateDefinition(BaseModel):
    """A named ticket layout and the fields a job must carry to use it."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1, max_length=64)
    name: str = ""
    description: str = ""
    version: int = 1
    required_fields: List[str] = Field(default_factory=list, alias="requiredFields")
    optional_fields: List[str] = Field(default_factory=list, alias="optionalFields")

    @field_validator("id")
    @classmethod
    def _strip_id(cls, v: str) -> str:
        v = v.strip()
        if not v or "/" in v:
            raise ValueError("invalid template id")
        return v

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


DEFAULT_TEMPLATES: Dict[str, TemplateDefinition] = {
    "receipt": TemplateDefinition(
        id="receipt",
        name="Ticket de Venta",
        description="Plantilla estándar para tickets de venta",
        required_fields=["detallePedido", "total", "metodoPago", "telefono"],
        optional_fields=["aclaraciones", "direccion", "envio", "subTotal", "fecha", "hora", "businessName", "id"],
    ),
    "price-tag": TemplateDefinition(
        id="price-tag",
        name="Etiqueta de Precio",
        description="Para imprimir precios en góndola",
        required_fields=["productName", "price"],
        optional_fields=["barcode", "offerPrice", "validUntil", "category", "header", "businessName"],
    ),
}


@dataclass
class ValidationResult:
    valid: bool
    missing_fields: List[str] = field(default_factory=list)
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"valid": self.valid, "missingFields": list(self.missing_fields)}
        if self.details:
            out["details"] = self.details
        return out


def _is_number(v: Any) -> bool:
    # bool is an int subclass; a JSON true is not a price
    return isinstance(v, (int, float)) and not isinstance(v, bool) and not math.isnan(v)


def _is_text(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _check_receipt(data: Mapping[str, Any], missing: List[str]) -> None:
    lines = data.get("detallePedido")
    if not isinstance(lines, list) or not lines:
        missing.append("detallePedido")
    else:
        bad = [
            str(idx)
            for idx, item in enumerate(lines)
            if not isinstance(item, Mapping)
            or not _is_text(item.get("nombre"))
            or not _is_number(item.get("cantidad"))
            or not _is_number(item.get("precio"))
        ]
        if bad:
            missing.append(f"detallePedido.items({','.join(bad)})")
    if not _is_number(data.get("total")):
        missing.append("total")
    if not _is_text(data.get("metodoPago")):
        missing.append("metodoPago")
    if not _is_text(data.get("telefono")):
        missing.append("telefono")


def _check_price_tag(data: Mapping[str, Any], missing: List[str]) -> None:
    if not _is_text(data.get("productName")):
        missing.append("productName")
    if not _is_number(data.get("price")):
        missing.append("price")


_SPECIFIC_CHECKS = {
    "receipt": (_check_receipt, {"detallePedido", "total", "metodoPago", "telefono"}),
    "price-tag": (_check_price_tag, {"productName", "price"}),
}


class TemplateRegistry:
    """
    File-backed template catalogue. Thread-safe; every mutation is persisted
    immediately with an atomic replace.
    """

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._templates: Dict[str, TemplateDefinition] = {}
        self.reload()

    def reload(self) -> None:
        raw: Dict[str, Any] = {}
        if self.path.exists():
            try:
                with self.path.open("r", encoding="utf-8") as f:
                    raw = json.load(f) or {}
            except (OSError, ValueError) as e:
                logger.warning("templates file %s unreadable (%s); regenerating with defaults", self.path, e)
                raw = {}

        merged: Dict[str, TemplateDefinition] = dict(DEFAULT_TEMPLATES)
        for tid, tpl in raw.items():
            if not isinstance(tpl, Mapping):
                continue
            base = DEFAULT_TEMPLATES.get(tid)
            values = base.to_dict() if base else {"id": tid, "name": tid}
            values.update({k: v for k, v in tpl.items() if v is not None})
            values.setdefault("id", tid)
            try:
                merged[tid] = TemplateDefinition.model_validate(values)
            except Exception as e:
                logger.warning("Skipping invalid template %r: %s", tid, e)

        with self._lock:
            self._templates = merged
            self._persist()

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump({tid: t.to_dict() for tid, t in self._templates.items()}, f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)

    def all(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {tid: t.to_dict() for tid, t in self._templates.items()}

    def get(self, template_id: str) -> Optional[TemplateDefinition]:
        with self._lock:
            tpl = self._templates.get(template_id)
            return tpl.model_copy(deep=True) if tpl else None

    def save(self, template: TemplateDefinition) -> TemplateDefinition:
        """
        Insert or replace a template. Raises OSError if it cannot be persisted.
        """
        with self._lock:
            self._templates[template.id] = template
            self._persist()
        logger.info("Template %s saved", template.id)
        return template

    def delete(self, template_id: str) -> bool:
        """
        Remove a custom template. Base templates and unknown ids return False.
        """
        if template_id in BASE_TEMPLATE_IDS:
            logger.warning("Refusing to delete base template %r", template_id)
            return False
        with self._lock:
            if template_id not in self._templates:
                return False
            del self._templates[template_id]
            self._persist()
        logger.info("Template %s deleted", template_id)
        return True

    def validate(self, template_id: str, data: Mapping[str, Any]) -> ValidationResult:
        tpl = self.get(template_id)
        if tpl is None:
            return ValidationResult(False, [":templateId"], f'No template with id "{template_id}"')

        missing: List[str] = []
        checked: set[str] = set()
        specific = _SPECIFIC_CHECKS.get(template_id)
        if specific:
            check, checked = specific
            check(data, missing)

        for name in tpl.required_fields:
            if name in checked or name in missing:
                continue
            value = data.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)

        return ValidationResult(not missing, missing)


__all__ = [
    "BASE_TEMPLATE_IDS",
    "DEFAULT_TEMPLATES",
    "TemplateDefinition",
    "TemplateRegistry",
    "ValidationResult",
]
