"""Foreign key resolution with a per-run lookup cache.

``ForeignKeyResolver`` turns a cell value into the surrogate key of a
referenced row. Every distinct ``(rule, value)`` pair reaches the backend at
most once per resolver; misses are cached as well as hits. A resolver belongs
to a single import run and is discarded with it, so reference data edited
between runs is never served from a stale cache.

When more than one referenced row matches, the first row returned by the
backend wins. No ordering is imposed on the lookup query, so which row is
"first" is up to the database.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from sqlalchemy import MetaData, Table, select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from .data_types import is_empty
from .errors import ForeignKeyNotFoundError, ResolverBackendError
from .mapping import ForeignKeyRule

logger = logging.getLogger(__name__)


class _NotFound:
    """Sentinel for a lookup value with no referenced row."""

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND: Any = _NotFound()


class LookupBackend(Protocol):
    """Executes reference lookups for the resolver."""

    def lookup(self, rule: ForeignKeyRule, value: Any) -> Any:
        """Return the first matching key, or ``NOT_FOUND``."""

    def lookup_many(self, rule: ForeignKeyRule, values: List[Any]) -> Dict[Any, Any]:
        """Return ``{value: key}`` for the values that matched."""


class SqlLookupBackend:
    """Lookup backend issuing SQLAlchemy Core queries on a given connection.

    The connection is the import run's own connection, so lookups share the
    run transaction and see rows inserted earlier in the same run.
    """

    def __init__(self, connection: Connection, schema: Optional[str] = None) -> None:
        self._connection = connection
        self._metadata = MetaData(schema=schema)
        self._tables: Dict[str, Table] = {}

    def _columns(self, rule: ForeignKeyRule):
        table = self._tables.get(rule.referenced_table)
        if table is None:
            table = Table(rule.referenced_table, self._metadata, autoload_with=self._connection)
            self._tables[rule.referenced_table] = table
        try:
            return table.c[rule.lookup_field], table.c[rule.key_field]
        except KeyError as exc:
            raise ResolverBackendError(
                f"Column {exc.args[0]!r} not found in table '{rule.referenced_table}'"
            ) from exc

    def lookup(self, rule: ForeignKeyRule, value: Any) -> Any:
        try:
            lookup_column, key_column = self._columns(rule)
            statement = select(key_column).where(lookup_column == value)
            row = self._connection.execute(statement).first()
        except SQLAlchemyError as exc:
            raise ResolverBackendError(
                f"Lookup in '{rule.referenced_table}' failed for {value!r}: {exc}"
            ) from exc
        return NOT_FOUND if row is None else row[0]

    def lookup_many(self, rule: ForeignKeyRule, values: List[Any]) -> Dict[Any, Any]:
        try:
            lookup_column, key_column = self._columns(rule)
            statement = select(lookup_column, key_column).where(lookup_column.in_(values))
            rows = self._connection.execute(statement).all()
        except SQLAlchemyError as exc:
            raise ResolverBackendError(
                f"Batch lookup in '{rule.referenced_table}' failed: {exc}"
            ) from exc

        requested = set(values)
        by_match_key: Dict[Any, List[Any]] = {}
        for value in values:
            by_match_key.setdefault(_match_key(value), []).append(value)

        found: Dict[Any, Any] = {}
        for lookup_value, key in rows:
            if lookup_value in requested:
                found.setdefault(lookup_value, key)
                continue
            # the database matched loosely (case, padding)
            for value in by_match_key.get(_match_key(lookup_value), ()):
                found.setdefault(value, key)
        return found


def _match_key(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().casefold()
    return value


class ForeignKeyResolver:
    """Resolves raw values through foreign key rules, caching per run."""

    def __init__(self, backend: LookupBackend) -> None:
        self._backend = backend
        self._cache: Dict[Tuple[ForeignKeyRule, Any], Any] = {}
        self._hits = 0
        self._queries = 0

    def resolve(
        self,
        rule: ForeignKeyRule,
        raw_value: Any,
        *,
        required: bool = False,
        target_field: Optional[str] = None,
    ) -> Any:
        """Return the referenced key for ``raw_value``.

        Empty values resolve to ``None`` without a query unless ``required``.

        Raises:
            ForeignKeyNotFoundError: No referenced row matches (row-local).
            ResolverBackendError: The lookup itself failed (fatal).
        """
        if is_empty(raw_value):
            if required:
                raise ForeignKeyNotFoundError(rule, raw_value, target_field)
            return None

        cache_key = (rule, raw_value)
        if cache_key in self._cache:
            self._hits += 1
            resolved = self._cache[cache_key]
        else:
            self._queries += 1
            resolved = self._backend.lookup(rule, raw_value)
            self._cache[cache_key] = resolved

        if resolved is NOT_FOUND:
            raise ForeignKeyNotFoundError(rule, raw_value, target_field)
        return resolved

    def prefetch(self, rule: ForeignKeyRule, values: Iterable[Any]) -> int:
        """Warm the cache for the distinct uncached values in one query.

        Matches and misses are both cached, so a prefetched value never
        reaches the backend again during the run.

        Returns:
            Number of values sent to the backend.
        """
        pending: List[Any] = []
        seen = set()
        for value in values:
            if is_empty(value) or (rule, value) in self._cache or value in seen:
                continue
            seen.add(value)
            pending.append(value)

        if not pending:
            return 0

        self._queries += 1
        found = self._backend.lookup_many(rule, pending)
        for value in pending:
            self._cache[(rule, value)] = found.get(value, NOT_FOUND)

        logger.debug(
            "Prefetched %d/%d keys from %s",
            len(found),
            len(pending),
            rule.referenced_table,
        )
        return len(pending)

    def cache_info(self) -> Dict[str, int]:
        return {"entries": len(self._cache), "hits": self._hits, "queries": self._queries}

    def clear_cache(self) -> None:
        self._cache.clear()
        self._hits = 0
        self._queries = 0
