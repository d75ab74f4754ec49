# MiniMerge - merge duplicate records of a lightweight Python ORM
from minimerge.base import MiniBase
from minimerge.session import Session
from minimerge.mapper import Mapper
from minimerge.query import Query
from minimerge.database import DatabaseEngine
from minimerge.generator import SchemaGenerator
from minimerge.association_finder import AssociationInfo, find_associations
from minimerge.record_merger import (
    MergeError, MergeOptions, MergeResult, RecordMerger, ResolverMismatch,
    TransactionFailure, TypeMismatch, default_association_filter, fill_blank_fields, merge_records,
)

__version__ = "0.1.0"
__all__ = [
    "MiniBase", "Session", "Mapper", "Query", "DatabaseEngine", "SchemaGenerator",
    "AssociationInfo", "find_associations",
    "RecordMerger", "MergeOptions", "MergeResult", "MergeError", "TypeMismatch",
    "ResolverMismatch", "TransactionFailure", "default_association_filter",
    "fill_blank_fields", "merge_records",
]
