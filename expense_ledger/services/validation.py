# expense_ledger/services/validation.py
from typing import Any, Mapping, Set

from expense_ledger.exceptions import ValidationError

# 非草稿账单的必填字段：返回给调用方的字段名 -> 可满足该字段的属性
REQUIRED_UNLESS_DRAFT = {
    "billDate": ("bill_date",),
    "personName": ("person_name", "vendor_name"),
    "amount": ("amount",),
    "description": ("description",),
    "category": ("category",),
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def missing_fields(candidate: Mapping[str, Any]) -> Set[str]:
    """返回完整账单候选记录中缺失的必填字段，草稿不做要求"""
    if candidate.get("is_draft"):
        return set()
    return {
        name
        for name, attributes in REQUIRED_UNLESS_DRAFT.items()
        if all(_is_blank(candidate.get(attr)) for attr in attributes)
    }


def validate_bill(candidate: Mapping[str, Any]) -> None:
    missing = missing_fields(candidate)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(sorted(missing))}", missing)
