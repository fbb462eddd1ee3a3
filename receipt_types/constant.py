"""Editable default receipt type catalog."""

from __future__ import annotations

DEFAULT_RECEIPT_TYPE_GROUPS: list[dict[str, object]] = [
    {
        "name": "Medical Expenses",
        "display_order": 0,
        "types": [
            "Doctor Visits",
            "Hospital Services",
            "Prescription Medications",
            "Over-the-Counter Medications",
        ],
    },
    {
        "name": "Dental Expenses",
        "display_order": 1,
        "types": ["Routine Dental", "Major Dental"],
    },
    {
        "name": "Vision Expenses",
        "display_order": 2,
        "types": ["Eye Exams", "Eyewear", "Contact Lenses"],
    },
]

DEFAULT_UNGROUPED_TYPES: list[str] = ["Family Planning", "Mental Health Services", "Other"]
