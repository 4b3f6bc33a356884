"""
Cost Model — WorkBudget → BudgetCategory → BudgetItem.

Keeps the arithmetic of the hierarchy consistent:
  item.totalPrice       = quantity × unitPrice
  category.categoryTotal = Σ item.totalPrice
  budget.totalValue      = Σ category.categoryTotal

Every operation is a pure transform: it validates first, then returns a new
WorkBudget with all derived fields recomputed. The input is never mutated,
so a rejected operation leaves nothing half-written.

Usage:
    from app.services import cost_model as cm

    budget = cm.empty_budget(work_id=7)
    budget = cm.add_category(budget, "Foundation")
    budget = cm.add_item(budget, budget.categories[0].id, "Concrete", "m³", 10, 500)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from app.core.exceptions import InvalidRangeError, NotFoundError, ValidationError

ZERO = Decimal("0")

EDITABLE_ITEM_FIELDS = {"quantity", "unitPrice"}


def to_decimal(value, field_name: str = "value") -> Decimal:
    """Coerce numbers and numeric strings to Decimal (floats via str)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number", details={field_name: "not a number"})
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a number", details={field_name: "not a number"})
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a number", details={field_name: "not a number"})
    return amount


def _non_negative(value, field_name: str) -> Decimal:
    amount = to_decimal(value, field_name)
    if amount < 0:
        raise InvalidRangeError(field_name, value, low=0)
    return amount


def to_percent(value, field_name: str) -> int:
    """Integer percentage in [0, 100]; integral floats (40.0) are accepted."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 100:
        raise InvalidRangeError(field_name, value, low=0, high=100)
    return value


def to_version(value) -> int | None:
    """Budget version supplied by a client; None when absent."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("version must be an integer", details={"version": value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("version must be an integer", details={"version": value})


def _unique_ids(ids, label: str) -> None:
    seen = set()
    for value in ids:
        if value in seen:
            raise ValidationError(f"Duplicate {label} id: {value!r}", details={"id": value})
        seen.add(value)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _parse_date(value) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}", details={"date": "use YYYY-MM-DD"})


def _number(value: Decimal):
    """JSON number for a Decimal: int when integral, float otherwise."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# ═════════════════════════════════════════════════════════════════════════════
# Aggregate types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class BudgetItem:
    """A priced line (material or service) inside a category."""
    id: str
    description: str
    unit: str = "un"
    quantity: Decimal = ZERO
    unit_price: Decimal = ZERO
    total_price: Decimal = ZERO
    notes: str | None = None

    def recalculated(self) -> BudgetItem:
        return replace(self, total_price=self.quantity * self.unit_price)

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "description": self.description,
            "unit": self.unit,
            "quantity": _number(self.quantity),
            "unitPrice": _number(self.unit_price),
            "totalPrice": _number(self.total_price),
        }
        if self.notes:
            d["notes"] = self.notes
        return d

    @classmethod
    def from_dict(cls, data: dict) -> BudgetItem:
        return cls(
            id=str(data.get("id") or new_id("item")),
            description=data.get("description", ""),
            unit=data.get("unit", "un"),
            quantity=_non_negative(data.get("quantity", 0) or 0, "quantity"),
            unit_price=_non_negative(data.get("unitPrice", 0) or 0, "unitPrice"),
            notes=data.get("notes"),
        ).recalculated()


@dataclass
class BudgetCategory:
    """A priced work package ("stage") holding budget items and a progress value."""
    id: str
    name: str
    items: list[BudgetItem] = field(default_factory=list)
    category_total: Decimal = ZERO
    progress: int = 0
    progress_base: int = 0
    start_date: date | None = None
    end_date: date | None = None

    def recalculated(self) -> BudgetCategory:
        items = [i.recalculated() for i in self.items]
        return replace(self, items=items, category_total=sum((i.total_price for i in items), ZERO))

    def find_item(self, item_id: str) -> BudgetItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise NotFoundError(resource="BudgetItem", resource_id=item_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "items": [i.to_dict() for i in self.items],
            "categoryTotal": _number(self.category_total),
            "progress": self.progress,
            "progressBase": self.progress_base,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> BudgetCategory:
        progress = to_percent(data.get("progress", 0) or 0, "progress")
        items = [BudgetItem.from_dict(i) for i in data.get("items") or []]
        _unique_ids((i.id for i in items), "item")
        try:
            base = to_percent(data.get("progressBase", progress), "progressBase")
        except ValidationError:
            base = progress
        return cls(
            id=str(data.get("id") or new_id("cat")),
            name=data.get("name", ""),
            items=items,
            progress=progress,
            progress_base=base,
            start_date=_parse_date(data.get("startDate")),
            end_date=_parse_date(data.get("endDate")),
        ).recalculated()


@dataclass
class WorkBudget:
    """The cost breakdown of one work. ``total_value`` is always derived."""
    id: str
    work_id: int
    categories: list[BudgetCategory] = field(default_factory=list)
    total_value: Decimal = ZERO
    updated_at: datetime | None = None
    version: int = 0

    def recalculated(self) -> WorkBudget:
        categories = [c.recalculated() for c in self.categories]
        return replace(
            self,
            categories=categories,
            total_value=sum((c.category_total for c in categories), ZERO),
        )

    def find_category(self, category_id: str) -> BudgetCategory:
        for category in self.categories:
            if category.id == category_id:
                return category
        raise NotFoundError(resource="BudgetCategory", resource_id=category_id, work_id=self.work_id)

    def has_category(self, category_id: str) -> bool:
        return any(c.id == category_id for c in self.categories)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workId": self.work_id,
            "totalValue": _number(self.total_value),
            "categories": [c.to_dict() for c in self.categories],
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict, *, work_id: int | None = None) -> WorkBudget:
        """Build a budget from its document; derived totals in ``data`` are ignored."""
        updated_at = data.get("updatedAt")
        if isinstance(updated_at, str):
            try:
                updated_at = datetime.fromisoformat(updated_at)
            except ValueError:
                updated_at = None
        categories = [BudgetCategory.from_dict(c) for c in data.get("categories") or []]
        _unique_ids((c.id for c in categories), "category")
        wid = work_id if work_id is not None else data.get("workId")
        return cls(
            id=str(data.get("id") or wid),
            work_id=wid,
            categories=categories,
            updated_at=updated_at,
            version=to_version(data.get("version")) or 0,
        ).recalculated()


# ═════════════════════════════════════════════════════════════════════════════
# Operations
# ═════════════════════════════════════════════════════════════════════════════

def empty_budget(work_id: int) -> WorkBudget:
    """A fresh, never-saved budget: no categories, zero totals, version 0."""
    return WorkBudget(id=str(work_id), work_id=work_id, updated_at=datetime.now(timezone.utc))


def recalculate_totals(budget: WorkBudget) -> WorkBudget:
    """Recompute every derived total. Idempotent on a consistent aggregate."""
    return budget.recalculated()


def _with_categories(budget: WorkBudget, categories: list[BudgetCategory]) -> WorkBudget:
    return replace(budget, categories=categories).recalculated()


def _map_category(budget: WorkBudget, category_id: str, fn) -> WorkBudget:
    budget.find_category(category_id)
    categories = [fn(c) if c.id == category_id else c for c in budget.categories]
    return _with_categories(budget, categories)


def add_category(budget: WorkBudget, name: str | None = None, *,
                 start_date=None, end_date=None) -> WorkBudget:
    """Append an empty category (progress 0, total 0)."""
    start, end = _parse_date(start_date), _parse_date(end_date)
    if start and end and end < start:
        raise ValidationError("endDate must not precede startDate", details={"endDate": "before startDate"})
    category = BudgetCategory(
        id=new_id("cat"),
        name=(name or "").strip() or f"Stage {len(budget.categories) + 1}",
        start_date=start,
        end_date=end,
    )
    return _with_categories(budget, [*budget.categories, category])


def rename_category(budget: WorkBudget, category_id: str, name: str) -> WorkBudget:
    if not (name or "").strip():
        raise ValidationError("Category name is required", details={"name": "required"})
    return _map_category(budget, category_id, lambda c: replace(c, name=name.strip()))


def set_category_schedule(budget: WorkBudget, category_id: str, start_date=None, end_date=None) -> WorkBudget:
    """Set the schedule window used to decide which categories are active in a week."""
    start, end = _parse_date(start_date), _parse_date(end_date)
    if start and end and end < start:
        raise ValidationError("endDate must not precede startDate", details={"endDate": "before startDate"})
    return _map_category(budget, category_id, lambda c: replace(c, start_date=start, end_date=end))


def remove_category(budget: WorkBudget, category_id: str) -> WorkBudget:
    budget.find_category(category_id)
    return _with_categories(budget, [c for c in budget.categories if c.id != category_id])


def add_item(budget: WorkBudget, category_id: str, description: str, unit: str = "un",
             quantity=1, unit_price=0, notes: str | None = None) -> WorkBudget:
    """Append a priced line to a category and recompute totals."""
    qty = _non_negative(quantity, "quantity")
    price = _non_negative(unit_price, "unitPrice")
    item = BudgetItem(
        id=new_id("item"),
        description=description or "",
        unit=unit or "un",
        quantity=qty,
        unit_price=price,
        notes=notes,
    ).recalculated()
    return _map_category(budget, category_id, lambda c: replace(c, items=[*c.items, item]))


def remove_item(budget: WorkBudget, category_id: str, item_id: str) -> WorkBudget:
    """Remove a line; emptying a category leaves its total at 0."""
    budget.find_category(category_id).find_item(item_id)
    return _map_category(
        budget, category_id, lambda c: replace(c, items=[i for i in c.items if i.id != item_id]),
    )


def set_item_quantity_or_price(budget: WorkBudget, category_id: str, item_id: str,
                               field_name: str, value) -> WorkBudget:
    """Change ``quantity`` or ``unitPrice`` of an item; item, category and budget totals follow."""
    if field_name not in EDITABLE_ITEM_FIELDS:
        raise ValidationError(
            f"field must be one of {sorted(EDITABLE_ITEM_FIELDS)}", details={"field": field_name},
        )
    budget.find_category(category_id).find_item(item_id)
    amount = _non_negative(value, field_name)
    attr = "quantity" if field_name == "quantity" else "unit_price"

    def _update(category):
        items = [replace(i, **{attr: amount}) if i.id == item_id else i for i in category.items]
        return replace(category, items=items)

    return _map_category(budget, category_id, _update)


def update_item_details(budget: WorkBudget, category_id: str, item_id: str, *,
                        description: str | None = None, unit: str | None = None,
                        notes: str | None = None) -> WorkBudget:
    """Edit the non-priced fields of an item."""
    budget.find_category(category_id).find_item(item_id)
    changes = {}
    if description is not None:
        changes["description"] = description
    if unit is not None:
        changes["unit"] = unit
    if notes is not None:
        changes["notes"] = notes

    def _update(category):
        items = [replace(i, **changes) if i.id == item_id else i for i in category.items]
        return replace(category, items=items)

    return _map_category(budget, category_id, _update)


def replace_categories(budget: WorkBudget, categories: list[BudgetCategory]) -> WorkBudget:
    """Swap the whole category set (bulk generation); totals are recomputed."""
    return _with_categories(budget, list(categories))
