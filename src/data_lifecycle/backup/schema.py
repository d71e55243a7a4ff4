"""Compiled dependency graph for the asset-tracking tables.

The graph is hand-maintained and immutable: it lists every logical table,
the foreign keys between them, the natural key used when restoring, and
the columns that reference binary files.  Nothing here is introspected
from a live database.

Usage:
    from data_lifecycle.backup.schema import DEPENDENCY_GRAPH

    DEPENDENCY_GRAPH.restore_order()   # dependencies first
    DEPENDENCY_GRAPH.delete_order()    # dependents first
"""

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field


class ForeignKey(BaseModel):
    """Foreign key reference to another table's primary key."""

    model_config = ConfigDict(frozen=True)

    table: str          # referenced table
    field: str          # FK column in this table


class TableDef(BaseModel):
    """Definition of a table for export, restore and clean."""

    model_config = ConfigDict(frozen=True)

    name: str
    pk: str = "id"
    natural_key: str | None = None                     # restore match column when not pk
    refs: tuple[ForeignKey, ...] = ()
    image_fields: tuple[str, ...] = ()                  # columns holding file references
    keep_on_clean: dict[str, str] = Field(default_factory=dict)  # rows clean must keep

    @property
    def key(self) -> str:
        return self.natural_key or self.pk

    @property
    def self_refs(self) -> list[ForeignKey]:
        return [ref for ref in self.refs if ref.table == self.name]


def _topological_sort(dependencies: dict[str, list[str]], tables: list[str]) -> list[str]:
    """Order tables so referenced tables come before referencing ones.

    Depth-first; ties keep the order of ``tables``.  Cycles are broken by
    emitting the table when it is revisited.
    """
    relevant = {t: [d for d in dependencies.get(t, []) if d in tables] for t in tables}

    sorted_tables: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()

    def visit(table: str) -> None:
        if table in visited or table in visiting:
            return
        visiting.add(table)
        for dep in relevant.get(table, []):
            visit(dep)
        visiting.discard(table)
        visited.add(table)
        sorted_tables.append(table)

    for table in tables:
        visit(table)

    return sorted_tables


class DependencyGraph(BaseModel):
    """Tables in declared order plus their foreign-key edges."""

    model_config = ConfigDict(frozen=True)

    tables: tuple[TableDef, ...]

    def table(self, name: str) -> TableDef | None:
        for table_def in self.tables:
            if table_def.name == name:
                return table_def
        return None

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.tables]

    def dependencies(self) -> dict[str, list[str]]:
        """Table -> referenced tables, self references excluded."""
        deps: dict[str, list[str]] = {}
        for table_def in self.tables:
            targets: list[str] = []
            for ref in table_def.refs:
                if ref.table != table_def.name and ref.table not in targets:
                    targets.append(ref.table)
            deps[table_def.name] = targets
        return deps

    def restore_order(self, extra: Iterable[str] = ()) -> list[str]:
        """Forward order (dependencies first), then unknown extra tables."""
        order = _topological_sort(self.dependencies(), self.names)
        for name in extra:
            if name not in order:
                order.append(name)
        return order

    def delete_order(self) -> list[str]:
        """Reverse order (dependents first)."""
        return list(reversed(self.restore_order()))

    def referencing(self, table: str) -> list[tuple[str, str]]:
        """Every ``(table, column)`` that references ``table``."""
        return [
            (table_def.name, ref.field)
            for table_def in self.tables
            for ref in table_def.refs
            if ref.table == table
        ]


DEPENDENCY_GRAPH = DependencyGraph(
    tables=(
        TableDef(name="sites"),
        TableDef(name="categories"),
        TableDef(name="departments"),
        TableDef(name="employees"),
        TableDef(
            name="users",
            natural_key="email",
            refs=(ForeignKey(table="users", field="createdBy"),),
            keep_on_clean={"role": "ADMIN"},
        ),
        TableDef(
            name="assets",
            refs=(
                ForeignKey(table="sites", field="siteId"),
                ForeignKey(table="categories", field="categoryId"),
                ForeignKey(table="departments", field="departmentId"),
                ForeignKey(table="employees", field="picId"),
            ),
            image_fields=("imageUrl", "image_url"),
        ),
        TableDef(
            name="asset_checkouts",
            refs=(
                ForeignKey(table="assets", field="assetId"),
                ForeignKey(table="employees", field="assignToId"),
                ForeignKey(table="departments", field="departmentId"),
                ForeignKey(table="users", field="receivedById"),
            ),
        ),
        TableDef(name="asset_custom_fields"),
        TableDef(
            name="asset_custom_values",
            refs=(
                ForeignKey(table="assets", field="assetId"),
                ForeignKey(table="asset_custom_fields", field="customFieldId"),
            ),
        ),
        TableDef(name="so_sessions"),
        TableDef(
            name="so_asset_entries",
            refs=(
                ForeignKey(table="so_sessions", field="soSessionId"),
                ForeignKey(table="assets", field="assetId"),
            ),
        ),
        TableDef(
            name="asset_events",
            refs=(
                ForeignKey(table="assets", field="assetId"),
                ForeignKey(table="asset_checkouts", field="checkoutId"),
                ForeignKey(table="so_sessions", field="soSessionId"),
                ForeignKey(table="so_asset_entries", field="soAssetEntryId"),
            ),
        ),
        TableDef(name="logs", refs=(ForeignKey(table="users", field="userId"),)),
        TableDef(name="backups", refs=(ForeignKey(table="users", field="createdBy"),)),
    )
)

# Tables read by export, in dump order.
SNAPSHOT_TABLES: tuple[str, ...] = (
    "users",
    "sites",
    "categories",
    "departments",
    "employees",
    "assets",
    "asset_checkouts",
    "asset_custom_fields",
    "asset_custom_values",
    "so_sessions",
    "so_asset_entries",
    "asset_events",
    "logs",
    "backups",
)
