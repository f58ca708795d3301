"""Query sources the aggregation strategies read from."""

from dashmetrics.sources.base import AggregateFunction, QuerySource
from dashmetrics.sources.memory import InMemoryQuerySource
from dashmetrics.sources.sqlalchemy_source import SqlAlchemyQuerySource

__all__ = ["AggregateFunction", "InMemoryQuerySource", "QuerySource", "SqlAlchemyQuerySource"]
