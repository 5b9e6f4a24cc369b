"""Hard lookups shared by several importers.

Each returns the matching row as a mapping, or ``None`` when the document or
master record does not exist. Hits are cached on the run's resolver.
"""

from __future__ import annotations

from typing import Any, Mapping

from ..resolver import Resolver

Row = Mapping[str, Any]


def division_id(value: str) -> int:
    lowered = value.strip().lower()
    if lowered == "pharmacy":
        return 1
    if lowered == "hoslab":
        return 2
    return 3


def branch_by_code(resolver: Resolver, code: str) -> Row | None:
    return resolver.fetch(
        "branch_by_code",
        code,
        "SELECT branch_id, branch_name FROM list_branch WHERE branch_code = :code LIMIT 1",
        {"code": code},
    )


def branch_by_name(resolver: Resolver, name: str) -> Row | None:
    return resolver.fetch(
        "branch_by_name",
        name,
        "SELECT branch_id, branch_name FROM list_branch WHERE branch_name = :name LIMIT 1",
        {"name": name},
    )


def outlet_by_code(resolver: Resolver, code: str) -> Row | None:
    return resolver.fetch(
        "outlet_by_code",
        code,
        "SELECT outlet_id, outlet_name, top_value FROM list_outlet WHERE outlet_code = :code LIMIT 1",
        {"code": code},
    )


def sales_invoice(resolver: Resolver, number: str) -> Row | None:
    return resolver.fetch(
        "sales_invoice",
        number,
        """
        SELECT sales_invoice_id, salesman_id, sales_invoice_type_id, branch_id, outlet_id, amount
        FROM list_sales_invoice
        WHERE sales_invoice_number = :number
        LIMIT 1
        """,
        {"number": number},
    )


def skb(resolver: Resolver, number: str) -> Row | None:
    return resolver.fetch(
        "skb",
        number,
        "SELECT skb_id, skb_type_id FROM list_skb WHERE skb_number = :number LIMIT 1",
        {"number": number},
    )


def giro(resolver: Resolver, number: str) -> Row | None:
    return resolver.fetch(
        "giro",
        number,
        "SELECT giro_id, due_date FROM list_giro_check WHERE giro_number = :number LIMIT 1",
        {"number": number},
    )


def principal_by_code(resolver: Resolver, code: str) -> Row | None:
    return resolver.fetch(
        "principal_by_code",
        code,
        "SELECT principal_id FROM list_principal WHERE principal_code = :code LIMIT 1",
        {"code": code},
    )


def collector_for_region(resolver: Resolver, region_id: int) -> int:
    """Active, non-exclusive collector assigned to the region; admin 1 otherwise."""
    row = resolver.fetch(
        "collector",
        region_id,
        """
        SELECT ga.admin_id
        FROM rel_admin_region rar
        JOIN gemstone_admin ga ON ga.admin_id = rar.admin_id
        WHERE rar.region_id = :region_id AND rar.is_active = 1 AND rar.is_exclusive = 0 AND ga.is_collector = 1
        LIMIT 1
        """,
        {"region_id": region_id},
    )
    return int(row["admin_id"]) if row is not None else 1
