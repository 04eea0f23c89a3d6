"""
Model-level wrappers: the Model itself, its tables and its data sources.

Partitions live in tabularstate.partition; a Table owns a PartitionCollection.
"""
import logging
from typing import ClassVar, List, Optional, TYPE_CHECKING

from tabularstate.changes import DeleteCheck
from tabularstate.collection import TabularObjectCollection
from tabularstate.engine import (
    CalculatedPartitionSource,
    EngineDataSource,
    EngineModel,
    EngineProviderDataSource,
    EngineStructuredDataSource,
    EngineTable,
    EntityPartitionSource,
    QueryPartitionSource,
)
from tabularstate.errors import Messages, UnsupportedOperationError
from tabularstate.partition import Partition, PartitionCollection, wrap_partition
from tabularstate.tabular_object import Properties, TabularNamedObject

if TYPE_CHECKING:
    from tabularstate.handler import TabularModelHandler

logger = logging.getLogger(__name__)


class DataSource(TabularNamedObject):
    """Connection a Query partition loads from. Compared by identity."""

    type_name: ClassVar[str] = "Data Source"

    @staticmethod
    def wrap(handler: 'TabularModelHandler', metadata_object: EngineDataSource) -> 'DataSource':
        if isinstance(metadata_object, EngineStructuredDataSource):
            return StructuredDataSource(handler, metadata_object)
        if isinstance(metadata_object, EngineProviderDataSource):
            return ProviderDataSource(handler, metadata_object)
        return DataSource(handler, metadata_object)

    @classmethod
    def _new_metadata(cls, name: str) -> EngineDataSource:
        return EngineDataSource(name=name)

    @classmethod
    def create_new(cls, model: 'Model', name: Optional[str] = None) -> 'DataSource':
        handler = model.handler
        handler.check_create(cls)
        prefix = name if name and name.strip() else handler.config.new_name_prefix + cls.type_name
        obj = cls(handler, cls._new_metadata(model.data_sources.get_new_name(prefix)))
        model.data_sources.add(obj)
        obj.init()
        logger.info(f"Created {cls.__name__} {obj.name!r}")
        return obj

    def referencing_partitions(self) -> List[Partition]:
        """Partitions in the model whose source (Query or Entity) refers to this data source."""
        return [
            partition
            for table in self.model.tables
            for partition in table.partitions
            if isinstance(partition.metadata_object.source, (QueryPartitionSource, EntityPartitionSource))
            and partition.metadata_object.source.data_source is self.metadata_object
        ]

    def check_delete(self) -> DeleteCheck:
        check = super().check_delete()
        if not check:
            return check
        in_use = len(self.referencing_partitions())
        if in_use:
            return DeleteCheck(False, Messages.DATA_SOURCE_IN_USE.format(name=self.name, count=in_use))
        return check


class ProviderDataSource(DataSource):
    """Legacy provider data source; preferred default for Query partitions."""

    type_name: ClassVar[str] = "Provider Data Source"

    @classmethod
    def _new_metadata(cls, name: str) -> EngineDataSource:
        return EngineProviderDataSource(name=name)

    @property
    def connection_string(self) -> str:
        return self.metadata_object.connection_string

    @connection_string.setter
    def connection_string(self, value: str) -> None:
        self._set_metadata_attribute(Properties.CONNECTION_STRING, "connection_string", value)

    @property
    def provider(self) -> str:
        return self.metadata_object.provider

    @provider.setter
    def provider(self, value: str) -> None:
        self._set_metadata_attribute(Properties.PROVIDER, "provider", value)

    def is_browsable(self, property_name: str) -> bool:
        return property_name in (Properties.CONNECTION_STRING, Properties.PROVIDER) or super().is_browsable(property_name)

    def is_editable(self, property_name: str) -> bool:
        return property_name in (Properties.CONNECTION_STRING, Properties.PROVIDER) or super().is_editable(property_name)


class StructuredDataSource(DataSource):
    """Power Query data source."""

    type_name: ClassVar[str] = "Structured Data Source"

    @classmethod
    def _new_metadata(cls, name: str) -> EngineDataSource:
        return EngineStructuredDataSource(name=name)

    @property
    def protocol(self) -> str:
        return self.metadata_object.protocol

    @protocol.setter
    def protocol(self, value: str) -> None:
        self._set_metadata_attribute(Properties.PROTOCOL, "protocol", value)

    def is_browsable(self, property_name: str) -> bool:
        return property_name == Properties.PROTOCOL or super().is_browsable(property_name)

    def is_editable(self, property_name: str) -> bool:
        return property_name == Properties.PROTOCOL or super().is_editable(property_name)


class Table(TabularNamedObject):
    type_name: ClassVar[str] = "Table"
    is_calculated: ClassVar[bool] = False

    def __init__(self, handler: 'TabularModelHandler', metadata_object: EngineTable):
        super().__init__(handler, metadata_object)
        self.partitions = PartitionCollection(handler, self, metadata_object.partitions)
        self.partitions._wrap_existing(lambda p: wrap_partition(handler, p))

    @staticmethod
    def wrap(handler: 'TabularModelHandler', metadata_object: EngineTable) -> 'Table':
        if any(isinstance(p.source, CalculatedPartitionSource) for p in metadata_object.partitions):
            return CalculatedTable(handler, metadata_object)
        return Table(handler, metadata_object)

    @classmethod
    def create_new(cls, model: 'Model', name: Optional[str] = None) -> 'Table':
        """Create a table holding one default partition, as a single undo step."""
        handler = model.handler
        handler.check_create(cls)
        with handler.begin_update(f"Create {cls.type_name}"):
            prefix = name if name and name.strip() else handler.config.new_name_prefix + cls.type_name
            table = cls(handler, EngineTable(name=model.tables.get_new_name(prefix)))
            model.tables.add(table)
            table.init()
            table._create_default_partition()
        logger.info(f"Created {cls.__name__} {table.name!r}")
        return table

    def _create_default_partition(self) -> Partition:
        return Partition.create_new(self)

    def children(self) -> List[TabularNamedObject]:
        return list(self.partitions)

    def is_browsable(self, property_name: str) -> bool:
        return property_name == Properties.PARTITIONS or super().is_browsable(property_name)


class CalculatedTable(Table):
    """Table whose only partition is computed from an expression."""

    type_name: ClassVar[str] = "Calculated Table"
    is_calculated: ClassVar[bool] = True

    @classmethod
    def create_new(cls, model: 'Model', name: Optional[str] = None, expression: Optional[str] = None) -> 'CalculatedTable':
        with model.handler.begin_update(f"Create {cls.type_name}"):
            table = super().create_new(model, name)
            if expression is not None:
                table.expression = expression
        return table

    def _create_default_partition(self) -> Partition:
        return Partition.create_calculated_table_partition(self)

    @property
    def expression(self) -> Optional[str]:
        return self.partitions[0].expression if len(self.partitions) else None

    @expression.setter
    def expression(self, value: str) -> None:
        self.partitions[0].expression = value

    def is_browsable(self, property_name: str) -> bool:
        if property_name == Properties.PARTITIONS:
            return False
        return property_name == Properties.EXPRESSION or super().is_browsable(property_name)

    def is_editable(self, property_name: str) -> bool:
        return property_name == Properties.EXPRESSION or super().is_editable(property_name)


class Model(TabularNamedObject):
    """Root wrapper; owns the table and data source collections."""

    type_name: ClassVar[str] = "Model"

    def __init__(self, handler: 'TabularModelHandler', metadata_object: EngineModel):
        super().__init__(handler, metadata_object)
        self.data_sources: TabularObjectCollection[DataSource] = TabularObjectCollection(
            handler, self, metadata_object.data_sources, "Data Sources"
        )
        self.data_sources._wrap_existing(lambda ds: DataSource.wrap(handler, ds))
        self.tables: TabularObjectCollection[Table] = TabularObjectCollection(
            handler, self, metadata_object.tables, "Tables"
        )
        self.tables._wrap_existing(lambda t: Table.wrap(handler, t))

    @property
    def model(self) -> 'Model':
        return self

    @property
    def is_removed(self) -> bool:
        return False

    @property
    def compatibility_level(self) -> int:
        return self.metadata_object.compatibility_level

    def children(self) -> List[TabularNamedObject]:
        return [*self.data_sources, *self.tables]

    def check_delete(self) -> DeleteCheck:
        return DeleteCheck(False, Messages.CANNOT_DELETE_OBJECT)

    def delete(self) -> None:
        raise UnsupportedOperationError(Messages.CANNOT_DELETE_OBJECT)

    def add_data_source(self, name: Optional[str] = None) -> ProviderDataSource:
        return ProviderDataSource.create_new(self, name)

    def add_structured_data_source(self, name: Optional[str] = None) -> StructuredDataSource:
        return StructuredDataSource.create_new(self, name)

    def add_table(self, name: Optional[str] = None) -> Table:
        return Table.create_new(self, name)

    def add_calculated_table(self, name: Optional[str] = None, expression: Optional[str] = None) -> CalculatedTable:
        return CalculatedTable.create_new(self, name, expression)
