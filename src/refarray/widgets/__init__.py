"""Widget classes for terminal front ends."""

from refarray.widgets.reference_array import ReferenceArrayInput, ReferenceItem, ResultItem

__all__ = [
    "ReferenceArrayInput",
    "ReferenceItem",
    "ResultItem",
]
