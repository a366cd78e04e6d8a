"""Bill validation package."""

from splitbill.validation.validator import BillValidator

__all__ = ["BillValidator"]
