"""Wildcard permission matching."""
import pytest

from pbac.features.permissions.wildcard import WildcardPermission


@pytest.mark.parametrize(
    ("granted", "requested", "expected"),
    [
        ("invoices.*", "invoices.approve", True),
        ("invoices.*", "reports.read", False),
        ("invoices", "invoices.approve.bulk", True),
        ("invoices.read,approve", "invoices.approve", True),
        ("invoices.read,approve", "invoices.delete", False),
        ("*.read", "reports.read", True),
        ("invoices.approve", "invoices", False),
        ("invoices.approve.*", "invoices.approve", True),
        ("approve-invoice", "approve-invoice", True),
    ],
)
def test_implies(granted, requested, expected):
    assert WildcardPermission(granted).implies(requested) is expected


def test_empty_permission_is_rejected():
    with pytest.raises(ValueError):
        WildcardPermission("  ")
