"""
Editable, undoable wrapper layer over a tabular engine model.

The engine owns the data (tables, partitions, data sources); tabularstate
wraps each engine object in a wrapper that validates every mutation, records
it in an undo log and keeps the two object graphs consistent through an
identity registry.

Quick Start:
    >>> from tabularstate import TabularModelHandler
    >>>
    >>> handler = TabularModelHandler()
    >>> table = handler.model.add_table("Sales")
    >>> partition = table.partitions[0]
    >>> partition.query = "SELECT * FROM Sales"
    >>> handler.undo()
    True
    >>> partition.query is None
    True

Architecture:
    Engine graph (tabularstate.engine)
        Plain mutable records; the single source of truth for data.

    Wrapper graph (tabular_object, model, partition)
        Behavior only. Every settable property runs the change protocol:
        validate → apply → record → notify.

    Session (handler)
        WrapperRegistry, UndoManager, governance, hooks. Multi-step
        operations run inside begin_update() transactions and undo as one step.

Modules:
    - engine: engine object graph and partition source variants
    - registry: engine object ↔ wrapper identity map
    - undo / undo_actions: undo log, transactions and reversible actions
    - changes: change decisions and hook value types
    - tabular_object / collection: base wrappers and ordered collections
    - model / partition: concrete wrappers
    - handler: editing session
    - governance: creation policies
    - config: session settings
"""

from tabularstate.config import (
    HandlerConfig,
    config_context,
    get_current_config,
    get_global_config,
    set_global_config,
)
from tabularstate.changes import ChangeDecision, DeleteCheck, PropertyChange
from tabularstate.errors import (
    DuplicateNameError,
    Messages,
    OperationNotPermittedError,
    PreconditionError,
    ReentrantChangeError,
    TabularStateError,
    TransactionError,
    UnsupportedOperationError,
)
from tabularstate.engine import (
    CalculatedPartitionSource,
    DataView,
    EngineDataSource,
    EngineModel,
    EnginePartition,
    EngineProviderDataSource,
    EngineStructuredDataSource,
    EngineTable,
    EntityPartitionSource,
    MPartitionSource,
    PartitionMode,
    QueryPartitionSource,
    SourceType,
)
from tabularstate.governance import AllowAllGovernance, Governance, RestrictedGovernance
from tabularstate.registry import WrapperRegistry
from tabularstate.undo import UndoManager, UndoTransaction
from tabularstate.tabular_object import Properties, TabularNamedObject, TabularObject
from tabularstate.collection import TabularObjectCollection
from tabularstate.partition import MPartition, Partition, PartitionCollection
from tabularstate.model import (
    CalculatedTable,
    DataSource,
    Model,
    ProviderDataSource,
    StructuredDataSource,
    Table,
)
from tabularstate.handler import TabularModelHandler

__all__ = [
    # Configuration
    'HandlerConfig',
    'config_context',
    'get_current_config',
    'get_global_config',
    'set_global_config',
    # Change protocol
    'ChangeDecision',
    'DeleteCheck',
    'PropertyChange',
    'Properties',
    # Errors
    'DuplicateNameError',
    'Messages',
    'OperationNotPermittedError',
    'PreconditionError',
    'ReentrantChangeError',
    'TabularStateError',
    'TransactionError',
    'UnsupportedOperationError',
    # Engine
    'CalculatedPartitionSource',
    'DataView',
    'EngineDataSource',
    'EngineModel',
    'EnginePartition',
    'EngineProviderDataSource',
    'EngineStructuredDataSource',
    'EngineTable',
    'EntityPartitionSource',
    'MPartitionSource',
    'PartitionMode',
    'QueryPartitionSource',
    'SourceType',
    # Session
    'TabularModelHandler',
    'WrapperRegistry',
    'UndoManager',
    'UndoTransaction',
    'Governance',
    'AllowAllGovernance',
    'RestrictedGovernance',
    # Wrappers
    'TabularObject',
    'TabularNamedObject',
    'TabularObjectCollection',
    'Model',
    'Table',
    'CalculatedTable',
    'DataSource',
    'ProviderDataSource',
    'StructuredDataSource',
    'Partition',
    'MPartition',
    'PartitionCollection',
]

__version__ = '1.0.0'
__description__ = 'Editable, undoable wrapper layer over a tabular engine model'
