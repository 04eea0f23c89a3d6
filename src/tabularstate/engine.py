"""
In-memory engine object graph.

These classes stand in for the modeling engine that owns the authoritative
data. Wrappers never copy engine data; they hold a reference to one engine
object and read/write its fields directly.

Engine objects compare by identity (``eq=False``) because the wrapper registry
and every engine list rely on "is this the same live object", never on field
equality.

Partition sources are a tagged variant: each source class carries its own
``source_type`` tag and only the fields that make sense for that kind.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Union


class SourceType(Enum):
    """Discriminant of a partition source."""
    NONE = "None"
    QUERY = "Query"
    CALCULATED = "Calculated"
    M = "M"
    ENTITY = "Entity"
    POLICY_RANGE = "PolicyRange"


class PartitionMode(Enum):
    """Storage mode of a partition."""
    DEFAULT = "Default"
    IMPORT = "Import"
    DIRECT_QUERY = "DirectQuery"


class DataView(Enum):
    """Data view of a partition (DirectQuery sample vs full)."""
    DEFAULT = "Default"
    FULL = "Full"
    SAMPLE = "Sample"


@dataclass(eq=False)
class EngineDataSource:
    """Base engine data source."""
    name: str
    description: str = ""
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass(eq=False)
class EngineProviderDataSource(EngineDataSource):
    """Legacy provider (connection string) data source."""
    connection_string: str = ""
    provider: str = ""


@dataclass(eq=False)
class EngineStructuredDataSource(EngineDataSource):
    """Power Query style structured data source."""
    protocol: str = ""


@dataclass(eq=False)
class QueryPartitionSource:
    """Query text executed against a referenced data source."""
    source_type: ClassVar[SourceType] = SourceType.QUERY
    query: Optional[str] = None
    data_source: Optional[EngineDataSource] = None


@dataclass(eq=False)
class MPartitionSource:
    """M (Power Query) expression."""
    source_type: ClassVar[SourceType] = SourceType.M
    expression: Optional[str] = None


@dataclass(eq=False)
class CalculatedPartitionSource:
    """DAX expression of a calculated table."""
    source_type: ClassVar[SourceType] = SourceType.CALCULATED
    expression: Optional[str] = None


@dataclass(eq=False)
class EntityPartitionSource:
    """Entity reference (shared dataflow entity); not editable through expressions."""
    source_type: ClassVar[SourceType] = SourceType.ENTITY
    entity_name: str = ""
    data_source: Optional[EngineDataSource] = None


PartitionSource = Union[
    QueryPartitionSource,
    MPartitionSource,
    CalculatedPartitionSource,
    EntityPartitionSource,
]


@dataclass(eq=False)
class EnginePartition:
    """Engine record for one data-loading unit of a table."""
    name: str = ""
    description: str = ""
    source: Optional[PartitionSource] = None
    mode: PartitionMode = PartitionMode.DEFAULT
    data_view: DataView = DataView.DEFAULT
    refreshed_time: datetime = datetime.min
    cube_name: str = ""
    annotations: Dict[str, str] = field(default_factory=dict)

    @property
    def source_type(self) -> SourceType:
        return self.source.source_type if self.source is not None else SourceType.NONE

    def clone(self) -> 'EnginePartition':
        """Deep copy of this partition.

        The source payload and annotations are copied; the data source a query
        source points at is a model-level object and stays shared.
        """
        return replace(
            self,
            source=replace(self.source) if self.source is not None else None,
            annotations=dict(self.annotations),
        )


@dataclass(eq=False)
class EngineTable:
    name: str
    description: str = ""
    partitions: List[EnginePartition] = field(default_factory=list)
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass(eq=False)
class EngineModel:
    """Root of the engine graph."""
    name: str = "Model"
    description: str = ""
    compatibility_level: int = 1500
    tables: List[EngineTable] = field(default_factory=list)
    data_sources: List[EngineDataSource] = field(default_factory=list)
    annotations: Dict[str, str] = field(default_factory=dict)
