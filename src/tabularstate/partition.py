"""
Partition wrappers.

A partition's load definition depends on its source kind:

    SourceType.QUERY       QueryPartitionSource.query (+ data_source reference)
    SourceType.M           MPartitionSource.expression
    SourceType.CALCULATED  CalculatedPartitionSource.expression
    anything else          no expression; reads give None, writes raise

``expression`` projects all three onto one property; ``query`` is the same
value under its Query-kind name, and ``data_source`` exists only for the
Query kind (reads give None elsewhere, writes are ignored).

Initialization (init) of an unsourced partition synthesizes a default source
unless the partition belongs to a calculated table, whose creation path
installs a calculated source itself:

    Partition   -> Query source bound to an existing provider data source
                   (or the first data source; one is created if there is none)
    MPartition  -> M source; a structured data source is created if the model
                   has no data source at all
"""
import logging
from datetime import datetime
from typing import Any, ClassVar, List, Optional, TYPE_CHECKING

from tabularstate.changes import DeleteCheck
from tabularstate.collection import TabularObjectCollection
from tabularstate.engine import (
    CalculatedPartitionSource,
    DataView,
    EngineDataSource,
    EnginePartition,
    MPartitionSource,
    PartitionMode,
    QueryPartitionSource,
    SourceType,
)
from tabularstate.errors import Messages, UnsupportedOperationError
from tabularstate.tabular_object import Properties, TabularNamedObject

if TYPE_CHECKING:
    from tabularstate.handler import TabularModelHandler
    from tabularstate.model import CalculatedTable, DataSource, ProviderDataSource, StructuredDataSource, Table

logger = logging.getLogger(__name__)

# Source kinds whose load definition is exposed through ``expression``
EXPRESSION_SOURCE_TYPES = (SourceType.QUERY, SourceType.M, SourceType.CALCULATED)

CUBE_NAME_MIN_COMPATIBILITY_LEVEL = 1510


def wrap_partition(handler: 'TabularModelHandler', metadata_object: EnginePartition) -> 'Partition':
    """Wrap an existing engine partition with the wrapper type matching its source."""
    if metadata_object.source_type is SourceType.M:
        return MPartition(handler, metadata_object)
    return Partition(handler, metadata_object)


class Partition(TabularNamedObject):
    """One data-loading unit of a table."""

    type_name: ClassVar[str] = "Partition"

    @property
    def table(self) -> Optional['Table']:
        return self.parent

    @property
    def source_type(self) -> SourceType:
        return self.metadata_object.source_type

    @property
    def refreshed_time(self) -> datetime:
        return self.metadata_object.refreshed_time

    # ========== CREATION ==========

    @classmethod
    def create_new(cls, table: 'Table', name: Optional[str] = None) -> 'Partition':
        """Create a partition with a generated unique name and a default source."""
        handler = table.handler
        handler.check_create(cls)
        with handler.begin_update(f"Create {cls.type_name}"):
            prefix = name if name and name.strip() else handler.config.new_name_prefix + cls.type_name
            partition = cls(handler, EnginePartition(name=table.partitions.get_new_name(prefix)))
            table.partitions.add(partition)
            partition.init()
        logger.info(f"Created {cls.__name__} {partition.name!r} in table {table.name!r}")
        return partition

    @classmethod
    def create_from_metadata(cls, table: 'Table', metadata_object: EnginePartition) -> 'Partition':
        """Wrap a detached engine partition, add it to ``table`` and initialize it."""
        partition = cls(table.handler, metadata_object)
        table.partitions.add(partition)
        partition.init()
        return partition

    @staticmethod
    def create_calculated_table_partition(table: 'CalculatedTable') -> 'Partition':
        partition = Partition(table.handler, EnginePartition(name=table.name))
        table.partitions.add(partition)
        partition.init()
        partition.metadata_object.source = CalculatedPartitionSource()
        return partition

    def init(self) -> None:
        if self.metadata_object.source is None and not self.table.is_calculated:
            self.metadata_object.source = QueryPartitionSource(data_source=self._default_data_source())
        super().init()

    def _default_data_source(self) -> EngineDataSource:
        from tabularstate.model import ProviderDataSource

        data_sources = self.model.data_sources
        if len(data_sources) == 0:
            self.model.add_data_source()
        provider = next((ds for ds in data_sources if isinstance(ds, ProviderDataSource)), None)
        return (provider or data_sources[0]).metadata_object

    def clone(self, new_name: Optional[str] = None, new_table: Optional['Table'] = None) -> 'Partition':
        """Copy this partition into ``new_table`` (default: its own table) as one undo step.

        Raises:
            OperationNotPermittedError: governance refuses this partition type.
        """
        self.handler.check_create(type(self))
        table = new_table if new_table is not None else self.table
        with self.handler.begin_update(f"Clone {self.type_name}"):
            metadata_object = self._clone_metadata()
            prefix = new_name if new_name else self.name + self.handler.config.copy_suffix
            metadata_object.name = table.partitions.get_new_name(prefix)
            clone = type(self).create_from_metadata(table, metadata_object)
        logger.info(f"Cloned {self.type_name} {self.name!r} as {clone.name!r}")
        return clone

    def _clone_metadata(self) -> EnginePartition:
        return self.metadata_object.clone()

    # ========== SOURCE PROJECTIONS ==========

    @property
    def expression(self) -> Optional[str]:
        source = self.metadata_object.source
        match self.source_type:
            case SourceType.QUERY:
                return source.query
            case SourceType.M | SourceType.CALCULATED:
                return source.expression
            case _:
                return None

    @expression.setter
    def expression(self, value: Optional[str]) -> None:
        old_value = self.expression
        if old_value == value:
            return
        if self.source_type not in EXPRESSION_SOURCE_TYPES:
            raise UnsupportedOperationError(
                Messages.UNSUPPORTED_SOURCE_TYPE.format(property_name=Properties.EXPRESSION, source_type=self.source_type.value)
            )
        self._set_property(Properties.EXPRESSION, old_value, value, lambda: self._write_expression(value))

    def _write_expression(self, value: Optional[str]) -> None:
        source = self.metadata_object.source
        match self.source_type:
            case SourceType.QUERY:
                source.query = value
            case SourceType.M | SourceType.CALCULATED:
                source.expression = value
            case _:
                raise UnsupportedOperationError(
                    Messages.UNSUPPORTED_SOURCE_TYPE.format(property_name=Properties.EXPRESSION, source_type=self.source_type.value)
                )

    @property
    def query(self) -> Optional[str]:
        """The expression of a Query-kind partition; None for other kinds."""
        return self.expression if self.source_type is SourceType.QUERY else None

    @query.setter
    def query(self, value: Optional[str]) -> None:
        if self.source_type is not SourceType.QUERY:
            raise UnsupportedOperationError(
                Messages.UNSUPPORTED_SOURCE_TYPE.format(property_name=Properties.QUERY, source_type=self.source_type.value)
            )
        self.expression = value

    @property
    def data_source(self) -> Optional['DataSource']:
        source = self.metadata_object.source
        if not isinstance(source, QueryPartitionSource):
            return None
        return self.handler.registry.resolve(source.data_source)

    @data_source.setter
    def data_source(self, value: Optional['DataSource']) -> None:
        source = self.metadata_object.source
        if not isinstance(source, QueryPartitionSource) or value is None:
            return
        self._set_property(
            Properties.DATA_SOURCE,
            self.data_source,
            value,
            lambda: setattr(source, 'data_source', value.metadata_object),
        )

    @property
    def provider_data_source(self) -> Optional['ProviderDataSource']:
        from tabularstate.model import ProviderDataSource

        data_source = self.data_source
        return data_source if isinstance(data_source, ProviderDataSource) else None

    @property
    def structured_data_source(self) -> Optional['StructuredDataSource']:
        from tabularstate.model import StructuredDataSource

        data_source = self.data_source
        return data_source if isinstance(data_source, StructuredDataSource) else None

    def _restore_property(self, property_name: str, value: Any) -> None:
        # History may hold a None data source, which the public setter ignores
        if property_name == Properties.DATA_SOURCE:
            source = self.metadata_object.source
            if isinstance(source, QueryPartitionSource):
                source.data_source = value.metadata_object if value is not None else None
            return
        super()._restore_property(property_name, value)

    # ========== OTHER PROPERTIES ==========

    @property
    def mode(self) -> PartitionMode:
        return self.metadata_object.mode

    @mode.setter
    def mode(self, value: PartitionMode) -> None:
        self._set_metadata_attribute(Properties.MODE, "mode", value)

    @property
    def data_view(self) -> DataView:
        return self.metadata_object.data_view

    @data_view.setter
    def data_view(self, value: DataView) -> None:
        self._set_metadata_attribute(Properties.DATA_VIEW, "data_view", value)

    @property
    def cube_name(self) -> str:
        return self.metadata_object.cube_name

    @cube_name.setter
    def cube_name(self, value: str) -> None:
        self._set_metadata_attribute(Properties.CUBE_NAME, "cube_name", value)

    # ========== DELETE / PRESENTATION ==========

    def check_delete(self) -> DeleteCheck:
        check = super().check_delete()
        if check and len(self.table.partitions) == 1:
            return DeleteCheck(False, Messages.TABLE_MUST_HAVE_AT_LEAST_ONE_PARTITION)
        return check

    def is_browsable(self, property_name: str) -> bool:
        match property_name:
            case Properties.DATA_SOURCE | Properties.QUERY:
                return self.source_type is SourceType.QUERY
            case Properties.EXPRESSION:
                return self.source_type in (SourceType.CALCULATED, SourceType.M)
            case Properties.CUBE_NAME:
                return self.handler.compatibility_level >= CUBE_NAME_MIN_COMPATIBILITY_LEVEL
            case (Properties.NAME | Properties.DESCRIPTION | Properties.MODE | Properties.DATA_VIEW | Properties.REFRESHED_TIME
                  | Properties.SOURCE_TYPE | Properties.OBJECT_TYPE | Properties.ANNOTATIONS):
                return True
            case _:
                return False

    def is_editable(self, property_name: str) -> bool:
        match property_name:
            case Properties.DATA_SOURCE | Properties.QUERY:
                return self.source_type is SourceType.QUERY
            case Properties.EXPRESSION:
                return self.source_type in EXPRESSION_SOURCE_TYPES
            case Properties.CUBE_NAME:
                return self.handler.compatibility_level >= CUBE_NAME_MIN_COMPATIBILITY_LEVEL
            case Properties.NAME | Properties.DESCRIPTION | Properties.MODE | Properties.DATA_VIEW | Properties.ANNOTATIONS:
                return True
            case _:
                return False


class MPartition(Partition):
    """Partition loaded by an M (Power Query) expression."""

    type_name: ClassVar[str] = "M Partition"

    def init(self) -> None:
        if self.metadata_object.source is None and not self.table.is_calculated:
            if len(self.model.data_sources) == 0:
                self.model.add_structured_data_source()
            self.metadata_object.source = MPartitionSource()
        super().init()

    def _clone_metadata(self) -> EnginePartition:
        metadata_object = super()._clone_metadata()
        if not isinstance(metadata_object.source, MPartitionSource):
            metadata_object.source = MPartitionSource(expression=self.expression)
        return metadata_object


class PartitionCollection(TabularObjectCollection[Partition]):
    """The partitions of one table.

    A derived view of the table rather than an entity of its own: its name is
    fixed, it cannot be deleted, and besides entity-level create/delete its only
    mutating operations are the two bulk conversions.
    """

    NAME = "Partitions"

    def __init__(self, handler: 'TabularModelHandler', table: 'Table', engine_partitions: List[EnginePartition]):
        super().__init__(handler, table, engine_partitions, self.NAME)

    @property
    def table(self) -> 'Table':
        return self.parent

    @property
    def name(self) -> str:
        return self.NAME

    @name.setter
    def name(self, value: str) -> None:
        logger.debug(f"Ignored rename of {self.NAME} collection to {value!r}")

    @property
    def is_removed(self) -> bool:
        return False

    def can_edit_name(self) -> bool:
        return False

    def check_delete(self) -> DeleteCheck:
        return DeleteCheck(False, Messages.CANNOT_DELETE_OBJECT)

    def can_delete(self) -> bool:
        return False

    def delete(self) -> None:
        raise UnsupportedOperationError(Messages.CANNOT_DELETE_OBJECT)

    def is_browsable(self, property_name: str) -> bool:
        return property_name == Properties.NAME

    def is_editable(self, property_name: str) -> bool:
        return False

    def children(self) -> List[Partition]:
        return list(self)

    def convert_to_query_partitions(self, data_source: Optional['DataSource'] = None) -> List[Partition]:
        """Replace every M partition by a Query partition with the same name and expression.

        Args:
            data_source: Data source for the new partitions. Defaults to the
                old partition's own reference, or to the default data source
                chosen by Partition.init when it has none.

        Returns:
            The new partitions.
        """
        converted = []
        with self.handler.begin_update("Convert partitions"):
            for old_partition in [p for p in self if isinstance(p, MPartition)]:
                new_partition = Partition.create_new(self.table)
                new_partition.data_source = data_source if data_source is not None else old_partition.data_source
                new_partition.expression = old_partition.expression
                converted.append(self._replace(old_partition, new_partition))
        logger.info(f"Converted {len(converted)} M partition(s) to Query partitions in table {self.table.name!r}")
        return converted

    def convert_to_m_partitions(self) -> List[Partition]:
        """Replace every Query partition by an M partition with the same name, moving the query text into its expression.

        Returns:
            The new partitions.
        """
        converted = []
        with self.handler.begin_update("Convert partitions"):
            for old_partition in [p for p in self if type(p) is Partition and p.source_type is SourceType.QUERY]:
                new_partition = MPartition.create_new(self.table)
                # No-op for M sources, which carry no data source reference
                new_partition.data_source = old_partition.data_source
                new_partition.expression = old_partition.query
                converted.append(self._replace(old_partition, new_partition))
        logger.info(f"Converted {len(converted)} Query partition(s) to M partitions in table {self.table.name!r}")
        return converted

    def _replace(self, old_partition: Partition, new_partition: Partition) -> Partition:
        # Delete first so the name is free when the new partition takes it
        name = old_partition.name
        old_partition.delete()
        new_partition.name = name
        return new_partition
