"""
Merging of two records of the same model.

The secondary record's incoming references are repointed to the primary record
inside one transaction, optionally after running caller supplied field merge
logic, and the secondary can be deleted afterwards. Failures never escape as
exceptions: they come back on the MergeResult with the transaction rolled back.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from minimerge.association_finder import AssociationInfo, find_associations
from minimerge.mapper import Mapper
from minimerge.orm_types import ForeignKey

logger = logging.getLogger("MiniMerge.merger")


class MergeError(Exception):
    """Base class for every reason a merge can fail."""

    def __init__(self, reason):
        super().__init__(f"Failed to merge records: {reason}")
        self.reason = reason


class TypeMismatch(MergeError):
    """The two records are not of the same model."""


class ResolverMismatch(MergeError):
    """primary_record_resolver returned something other than one of the two records."""


class TransactionFailure(MergeError):
    """A callback, the store or the deletion raised; the original is the __cause__."""


def default_association_filter(assoc: AssociationInfo) -> bool:
    # only direct has-one / has-many links can be bulk repointed by foreign key
    return assoc.type != "belongs-to" and assoc.through is None and not assoc.polymorphic


def fill_blank_fields(fields: Optional[Iterable[str]] = None):
    """Build a merge_logic callback that copies the secondary's values into the
    primary's blank (None or "") columns. Defaults to every plain column."""
    def merge_logic(primary, secondary):
        mapper = primary._mapper
        names = fields
        if names is None:
            names = [
                name for name, col in mapper.columns.items()
                if name != mapper.pk and name in mapper.declared_columns and not isinstance(col, ForeignKey)
            ]
        for name in names:
            if getattr(primary, name) not in (None, ""):
                continue
            value = getattr(secondary, name)
            if value not in (None, ""):
                setattr(primary, name, value)
    return merge_logic


@dataclass
class MergeOptions:
    primary_record_resolver: Optional[Callable[[Any, Any], Any]] = None
    merge_logic: Optional[Callable[[Any, Any], None]] = None
    filter: Callable[[AssociationInfo], bool] = default_association_filter
    update_logic: Optional[Callable[[AssociationInfo, Any, Any], int]] = None
    destroy_merged_record: bool = False


@dataclass
class MergeResult:
    update_counts: Optional[Dict[str, Any]] = None
    error: Optional[MergeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def __bool__(self):
        return self.ok


class RecordMerger:
    """Merges `second` into `first` (or the other way round, see primary_record_resolver).

    Options may be passed as a MergeOptions instance, as keyword arguments, or
    both (keywords win).
    """

    def __init__(self, session, first, second, options: Optional[MergeOptions] = None, **overrides):
        self.session = session
        self._first = first
        self._second = second
        self.options = dataclasses.replace(options or MergeOptions(), **overrides)
        if self.options.filter is None:
            self.options.filter = default_association_filter
        self.primary_record = None
        self.secondary_record = None
        self.update_counts = {}

    def call(self) -> MergeResult:
        self.update_counts = {}
        try:
            with self.session.begin():
                self._ensure_same_class()
                self._ensure_mergeable()
                self._resolve_primary_and_secondary()
                self._apply_merge_logic()
                self._update_associations()
                if self.options.destroy_merged_record:
                    self._destroy_secondary_record()
        except MergeError as e:
            logger.error(str(e))
            return MergeResult(error=e)
        except Exception as e:
            error = TransactionFailure(str(e))
            error.__cause__ = e
            logger.error(str(error))
            return MergeResult(error=error)

        return MergeResult(update_counts=dict(self.update_counts))

    def _ensure_same_class(self):
        if type(self._first) is not type(self._second):
            raise TypeMismatch(
                f"Records must be of the same class to be merged "
                f"({type(self._first).__name__} != {type(self._second).__name__})."
            )

    def _ensure_mergeable(self):
        pk = self._first._mapper.pk
        first_id = self._first.__dict__.get(pk)
        second_id = self._second.__dict__.get(pk)
        if first_id is None or second_id is None:
            raise MergeError("Both records must be persisted before they can be merged.")
        if self._first is self._second or first_id == second_id:
            raise MergeError(f"Cannot merge {self._first} into itself.")

    def _resolve_primary_and_secondary(self):
        resolver = self.options.primary_record_resolver
        primary = resolver(self._first, self._second) if resolver else self._first

        if primary is self._first:
            self.primary_record, self.secondary_record = self._first, self._second
        elif primary is self._second:
            self.primary_record, self.secondary_record = self._second, self._first
        else:
            raise ResolverMismatch(f"primary_record_resolver returned {primary!r}, which is neither record.")

        logger.info(f"Merging {self.secondary_record} into {self.primary_record}")

    def _apply_merge_logic(self):
        if self.options.merge_logic:
            self.options.merge_logic(self.primary_record, self.secondary_record)
            self.session.flush()

    def _update_associations(self):
        associations = find_associations(type(self.primary_record), self.options.filter)
        for assoc in associations:
            if self.options.update_logic:
                count = self.options.update_logic(assoc, self.primary_record, self.secondary_record)
            else:
                count = self._repoint(assoc)
            self.update_counts[assoc.name] = count
            logger.info(f"Repointed {count} row(s) of '{assoc.name}'")

    def _repoint(self, assoc):
        related_cls = Mapper.class_for_name(assoc.related_type)
        pk = self.primary_record._mapper.pk
        filters = {assoc.foreign_key: self.secondary_record.__dict__.get(pk)}
        if assoc.foreign_type:
            filters[assoc.foreign_type] = type(self.primary_record).__name__
        return (
            self.session.query(related_cls)
            .filter(**filters)
            .update_all(**{assoc.foreign_key: self.primary_record.__dict__.get(pk)})
        )

    def _destroy_secondary_record(self):
        self.session.delete(self.secondary_record)
        self.session.flush()
        self.update_counts["destroyed"] = self.session.is_destroyed(self.secondary_record)


def merge_records(session, first, second, options: Optional[MergeOptions] = None, **overrides) -> MergeResult:
    return RecordMerger(session, first, second, options, **overrides).call()
