"""Tests for the Partition wrapper: source projections, change protocol, lifecycle."""
import pytest

from tabularstate import (
    CalculatedPartitionSource,
    ChangeDecision,
    DataView,
    DuplicateNameError,
    EngineModel,
    EnginePartition,
    EngineProviderDataSource,
    EngineStructuredDataSource,
    EngineTable,
    EntityPartitionSource,
    Messages,
    MPartition,
    MPartitionSource,
    OperationNotPermittedError,
    Partition,
    PartitionMode,
    PreconditionError,
    Properties,
    ProviderDataSource,
    QueryPartitionSource,
    ReentrantChangeError,
    RestrictedGovernance,
    SourceType,
    StructuredDataSource,
    TabularModelHandler,
    UnsupportedOperationError,
)


@pytest.fixture
def mixed_handler():
    """One table holding a partition of every source kind."""
    sql = EngineProviderDataSource(name="SQL")
    partitions = [
        EnginePartition(name="Query", source=QueryPartitionSource(query="SELECT 1", data_source=sql)),
        EnginePartition(name="M", source=MPartitionSource(expression="let Source = 1 in Source")),
        EnginePartition(name="Entity", source=EntityPartitionSource(entity_name="Customers")),
        EnginePartition(name="Unsourced"),
    ]
    model = EngineModel(tables=[EngineTable(name="Mixed", partitions=partitions)], data_sources=[sql])
    return TabularModelHandler(model)


@pytest.fixture
def mixed_partitions(mixed_handler):
    return mixed_handler.model.tables["Mixed"].partitions


class TestExpressionDispatch:
    """``expression`` reads and writes exactly one field per source kind."""

    def test_query_kind(self, mixed_partitions):
        partition = mixed_partitions["Query"]
        source = partition.metadata_object.source
        data_source = source.data_source

        assert partition.expression == "SELECT 1"
        assert partition.query == "SELECT 1"
        partition.expression = "SELECT 2"

        assert source.query == "SELECT 2"
        assert source.data_source is data_source

    def test_m_kind(self, mixed_partitions):
        partition = mixed_partitions["M"]
        assert isinstance(partition, MPartition)
        assert partition.expression == "let Source = 1 in Source"
        assert partition.query is None

        partition.expression = "let Source = 2 in Source"
        assert partition.metadata_object.source.expression == "let Source = 2 in Source"

    def test_calculated_kind(self, empty_handler):
        table = empty_handler.model.add_calculated_table("Calc", expression="ROW(\"a\", 1)")
        partition = table.partitions[0]

        assert partition.source_type is SourceType.CALCULATED
        assert isinstance(partition.metadata_object.source, CalculatedPartitionSource)
        assert partition.expression == "ROW(\"a\", 1)"
        assert table.expression == "ROW(\"a\", 1)"

    @pytest.mark.parametrize("name", ["Entity", "Unsourced"])
    def test_unsupported_kinds(self, mixed_handler, mixed_partitions, name):
        partition = mixed_partitions[name]
        history = list(mixed_handler.undo_manager.history)

        assert partition.expression is None
        with pytest.raises(UnsupportedOperationError):
            partition.expression = "anything"
        assert mixed_handler.undo_manager.history == history

    @pytest.mark.parametrize("name", ["Entity", "Unsourced"])
    def test_unsupported_kinds_accept_unchanged_value(self, mixed_handler, mixed_partitions, name):
        partition = mixed_partitions[name]
        partition.expression = None

        assert partition.expression is None
        assert mixed_handler.undo_manager.history == []

    def test_query_setter_requires_query_kind(self, mixed_partitions):
        with pytest.raises(UnsupportedOperationError):
            mixed_partitions["M"].query = "SELECT 1"

    def test_query_setter_is_expression_alias(self, sales_partition):
        sales_partition.query = "SELECT TOP 10 * FROM Sales"
        assert sales_partition.expression == "SELECT TOP 10 * FROM Sales"


class TestChangeProtocol:

    def test_setting_same_value_is_a_no_op(self, handler, sales_partition):
        changes = []
        sales_partition.on_property_changed(changes.append)

        sales_partition.expression = "SELECT * FROM Sales"

        assert changes == []
        assert handler.undo_manager.history == []

    def test_change_is_recorded_and_undoable(self, handler, sales_partition):
        sales_partition.expression = "SELECT 1"
        assert handler.undo_manager.history == ["Change expression"]

        handler.undo()
        assert sales_partition.metadata_object.source.query == "SELECT * FROM Sales"

        handler.redo()
        assert sales_partition.metadata_object.source.query == "SELECT 1"

    def test_post_change_notification(self, handler, sales_partition):
        object_changes, session_changes = [], []
        sales_partition.on_property_changed(object_changes.append)
        handler.add_property_changed_callback(session_changes.append)

        sales_partition.expression = "SELECT 1"

        assert len(object_changes) == 1
        change = object_changes[0]
        assert change.target is sales_partition
        assert change.property_name == Properties.EXPRESSION
        assert (change.old_value, change.new_value) == ("SELECT * FROM Sales", "SELECT 1")
        assert session_changes == object_changes

    def test_veto_leaves_everything_untouched(self, handler, sales_partition):
        changes = []
        handler.add_property_changing_validator(lambda change: ChangeDecision.REJECT)
        handler.add_property_changed_callback(changes.append)

        sales_partition.expression = "SELECT 1"

        assert sales_partition.expression == "SELECT * FROM Sales"
        assert handler.undo_manager.history == []
        assert changes == []

    def test_apply_without_history(self, handler, sales_partition):
        changes = []
        handler.add_property_changing_validator(lambda change: ChangeDecision.APPLY_WITHOUT_HISTORY)
        handler.add_property_changed_callback(changes.append)

        sales_partition.expression = "SELECT 1"

        assert sales_partition.expression == "SELECT 1"
        assert handler.undo_manager.history == []
        assert len(changes) == 1

    def test_validator_sees_proposed_change(self, handler, sales_partition):
        seen = []

        def validator(change):
            seen.append((change.property_name, change.new_value, sales_partition.expression))
            return ChangeDecision.APPLY

        handler.add_property_changing_validator(validator)
        sales_partition.expression = "SELECT 1"

        assert seen == [(Properties.EXPRESSION, "SELECT 1", "SELECT * FROM Sales")]

    def test_validator_error_propagates(self, handler, sales_partition):
        def validator(change):
            raise ValueError("invalid query")

        handler.add_property_changing_validator(validator)
        with pytest.raises(ValueError):
            sales_partition.expression = "SELECT 1"
        assert sales_partition.expression == "SELECT * FROM Sales"

    def test_validator_must_not_mutate(self, handler, sales_partition):
        def validator(change):
            sales_partition.description = "side effect"
            return ChangeDecision.APPLY

        handler.add_property_changing_validator(validator)
        with pytest.raises(ReentrantChangeError):
            sales_partition.expression = "SELECT 1"

        assert sales_partition.expression == "SELECT * FROM Sales"
        assert sales_partition.description == ""

        handler.remove_property_changing_validator(validator)
        sales_partition.expression = "SELECT 1"
        assert sales_partition.expression == "SELECT 1"

    def test_failed_apply_records_nothing(self, handler, sales_partition, monkeypatch):
        changes = []
        handler.add_property_changed_callback(changes.append)

        def failing_write(value):
            raise RuntimeError("engine rejected the value")

        monkeypatch.setattr(sales_partition, "_write_expression", failing_write)
        with pytest.raises(RuntimeError):
            sales_partition.expression = "SELECT 1"

        assert handler.undo_manager.history == []
        assert changes == []

    def test_undo_skips_validators(self, handler, sales_partition):
        sales_partition.expression = "SELECT 1"
        handler.add_property_changing_validator(lambda change: ChangeDecision.REJECT)

        handler.undo()
        assert sales_partition.expression == "SELECT * FROM Sales"

    def test_other_properties_are_undoable(self, handler, sales_partition):
        sales_partition.description = "Fact rows"
        sales_partition.mode = PartitionMode.DIRECT_QUERY
        sales_partition.data_view = DataView.SAMPLE
        sales_partition.set_annotation("Owner", "Finance")

        assert sales_partition.get_annotation("Owner") == "Finance"
        for _ in range(4):
            handler.undo()

        assert sales_partition.description == ""
        assert sales_partition.mode is PartitionMode.DEFAULT
        assert sales_partition.data_view is DataView.DEFAULT
        assert sales_partition.annotations == {}

    def test_remove_annotation(self, sales_partition):
        sales_partition.set_annotation("Owner", "Finance")
        sales_partition.remove_annotation("Owner")
        assert sales_partition.get_annotation("Owner") is None


class TestDataSource:

    def test_resolves_through_registry(self, sales_partition, sql_source):
        assert sales_partition.data_source is sql_source
        assert sales_partition.provider_data_source is sql_source
        assert sales_partition.structured_data_source is None

    def test_set_and_undo(self, handler, sales_partition, sql_source):
        other = handler.model.add_data_source("Warehouse")
        sales_partition.data_source = other

        assert sales_partition.metadata_object.source.data_source is other.metadata_object
        handler.undo()
        assert sales_partition.data_source is sql_source

    def test_none_is_ignored(self, handler, sales_partition, sql_source):
        sales_partition.data_source = None
        assert sales_partition.data_source is sql_source
        assert handler.undo_manager.history == []

    def test_ignored_for_non_query_kinds(self, mixed_handler, mixed_partitions):
        partition = mixed_partitions["M"]
        sql = mixed_handler.model.data_sources["SQL"]

        assert partition.data_source is None
        partition.data_source = sql
        assert partition.data_source is None
        assert mixed_handler.undo_manager.history == []

    def test_undo_restores_missing_reference(self):
        sql = EngineProviderDataSource(name="SQL")
        partition = EnginePartition(name="P", source=QueryPartitionSource(query="SELECT 1"))
        handler = TabularModelHandler(EngineModel(tables=[EngineTable(name="T", partitions=[partition])], data_sources=[sql]))
        wrapper = handler.model.tables["T"].partitions["P"]

        wrapper.data_source = handler.model.data_sources["SQL"]
        assert partition.source.data_source is sql

        handler.undo()
        assert partition.source.data_source is None
        assert wrapper.data_source is None


class TestDeleteGuard:

    def test_last_partition_cannot_be_deleted(self, handler, sales_partition):
        check = sales_partition.check_delete()
        assert not check
        assert check.message == Messages.TABLE_MUST_HAVE_AT_LEAST_ONE_PARTITION
        assert sales_partition.can_delete() is False

        with pytest.raises(PreconditionError) as exc_info:
            sales_partition.delete()
        assert exc_info.value.message == Messages.TABLE_MUST_HAVE_AT_LEAST_ONE_PARTITION
        assert len(sales_partition.table.partitions) == 1

    @pytest.mark.parametrize("delete_first", [True, False])
    def test_either_of_two_can_be_deleted(self, sales_table, sales_partition, delete_first):
        second = Partition.create_new(sales_table, "Sales 2024")
        victim, survivor = (sales_partition, second) if delete_first else (second, sales_partition)

        assert victim.can_delete()
        victim.delete()

        assert list(sales_table.partitions) == [survivor]
        assert victim.is_removed
        assert not survivor.can_delete()

    def test_undo_delete_restores_position(self, handler, sales_table, sales_partition):
        second = Partition.create_new(sales_table, "Sales 2024")
        sales_partition.delete()
        handler.undo()

        assert list(sales_table.partitions) == [sales_partition, second]
        assert sales_table.metadata_object.partitions == [sales_partition.metadata_object, second.metadata_object]

    def test_deleted_partition_cannot_be_deleted_again(self, sales_table, sales_partition):
        second = Partition.create_new(sales_table)
        second.delete()
        with pytest.raises(PreconditionError):
            second.delete()


class TestCreation:

    def test_default_source_synthesis_creates_one_data_source(self):
        handler = TabularModelHandler(EngineModel(tables=[EngineTable(name="Empty")]))
        table = handler.model.tables["Empty"]

        partition = Partition.create_new(table)

        assert len(handler.model.data_sources) == 1
        data_source = handler.model.data_sources[0]
        assert isinstance(data_source, ProviderDataSource)
        assert partition.data_source is data_source
        assert partition.source_type is SourceType.QUERY
        assert partition.name == "New Partition"

    def test_existing_data_source_is_reused(self, handler, sales_table, sql_source):
        partition = Partition.create_new(sales_table)
        assert partition.data_source is sql_source
        assert len(handler.model.data_sources) == 1

    def test_provider_data_source_is_preferred(self):
        structured = EngineStructuredDataSource(name="Lake")
        provider = EngineProviderDataSource(name="SQL")
        handler = TabularModelHandler(EngineModel(
            tables=[EngineTable(name="T")],
            data_sources=[structured, provider],
        ))

        partition = Partition.create_new(handler.model.tables["T"])
        assert partition.data_source is handler.model.data_sources["SQL"]

    def test_m_partition_creates_structured_data_source(self):
        handler = TabularModelHandler(EngineModel(tables=[EngineTable(name="T")]))

        partition = MPartition.create_new(handler.model.tables["T"])

        assert partition.source_type is SourceType.M
        assert partition.name == "New M Partition"
        assert [type(ds) for ds in handler.model.data_sources] == [StructuredDataSource]

    def test_m_partition_does_not_add_data_source_when_one_exists(self, handler, sales_table):
        MPartition.create_new(sales_table)
        assert len(handler.model.data_sources) == 1

    def test_calculated_table_partition_gets_no_data_source(self, empty_handler):
        table = empty_handler.model.add_calculated_table("Calc")
        assert table.partitions[0].source_type is SourceType.CALCULATED
        assert len(empty_handler.model.data_sources) == 0

    def test_wrapping_does_not_initialize(self, mixed_partitions, mixed_handler):
        assert mixed_partitions["Unsourced"].source_type is SourceType.NONE
        assert len(mixed_handler.model.data_sources) == 1

    def test_creation_is_one_undo_step(self):
        handler = TabularModelHandler(EngineModel(tables=[EngineTable(name="T")]))
        table = handler.model.tables["T"]
        Partition.create_new(table)

        assert handler.undo_manager.history == ["Create Partition"]
        handler.undo()
        assert len(table.partitions) == 0
        assert len(handler.model.data_sources) == 0

    def test_generated_names_are_unique(self, sales_table):
        first = Partition.create_new(sales_table)
        second = Partition.create_new(sales_table)
        named = Partition.create_new(sales_table, "Sales")

        assert (first.name, second.name, named.name) == ("New Partition", "New Partition 1", "Sales 1")

    def test_governance_refusal(self, engine_model):
        handler = TabularModelHandler(engine_model, governance=RestrictedGovernance([MPartition]))
        table = handler.model.tables["Sales"]

        with pytest.raises(OperationNotPermittedError) as exc_info:
            MPartition.create_new(table)
        assert "M Partition" in str(exc_info.value)
        assert exc_info.value.kind is MPartition
        assert len(table.partitions) == 1

        Partition.create_new(table)
        assert len(table.partitions) == 2


class TestRename:

    def test_duplicate_name_rejected(self, sales_table, sales_partition):
        other = Partition.create_new(sales_table)
        with pytest.raises(DuplicateNameError):
            other.name = "Sales"
        assert other.name == "New Partition"

    def test_empty_name_rejected(self, sales_partition):
        with pytest.raises(DuplicateNameError):
            sales_partition.name = "  "

    def test_rename_undo(self, handler, sales_partition):
        sales_partition.name = "Sales 2024"
        assert sales_partition.metadata_object.name == "Sales 2024"
        handler.undo()
        assert sales_partition.name == "Sales"


class TestClone:

    def test_clone_copies_engine_object(self, handler, sales_table, sales_partition, sql_source):
        clone = sales_partition.clone()

        assert clone.name == "Sales copy"
        assert type(clone) is Partition
        assert clone.metadata_object is not sales_partition.metadata_object
        assert clone.metadata_object.source is not sales_partition.metadata_object.source
        assert clone.query == "SELECT * FROM Sales"
        assert clone.data_source is sql_source
        assert list(sales_table.partitions) == [sales_partition, clone]
        assert handler.registry.resolve(clone.metadata_object) is clone

    def test_clone_is_independent(self, sales_partition):
        clone = sales_partition.clone()
        clone.query = "SELECT 1"
        assert sales_partition.query == "SELECT * FROM Sales"

    def test_clone_names_disambiguate(self, sales_partition):
        first = sales_partition.clone()
        second = sales_partition.clone()
        named = sales_partition.clone("Sales")
        assert (first.name, second.name, named.name) == ("Sales copy", "Sales copy 1", "Sales 1")

    def test_clone_is_one_undo_step(self, handler, sales_table, sales_partition):
        sales_partition.clone()
        assert handler.undo_manager.history == ["Clone Partition"]

        handler.undo()
        assert list(sales_table.partitions) == [sales_partition]

    def test_clone_to_other_table(self, handler, sales_partition):
        other_table = handler.model.add_table("Returns")
        clone = sales_partition.clone(new_table=other_table)

        assert clone.table is other_table
        assert clone.name == "Sales copy"
        assert len(other_table.partitions) == 2

    def test_clone_m_partition(self, mixed_partitions):
        clone = mixed_partitions["M"].clone()
        assert type(clone) is MPartition
        assert clone.expression == "let Source = 1 in Source"

    def test_governance_refuses_clone(self, engine_model):
        handler = TabularModelHandler(engine_model, governance=RestrictedGovernance([Partition]))
        partition = handler.model.tables["Sales"].partitions["Sales"]

        with pytest.raises(OperationNotPermittedError) as exc_info:
            partition.clone()
        assert "Partition" in str(exc_info.value)
        assert len(partition.table.partitions) == 1
        assert handler.undo_manager.history == []


class TestPresentation:

    def test_query_partition(self, sales_partition):
        assert sales_partition.is_browsable(Properties.QUERY)
        assert sales_partition.is_browsable(Properties.DATA_SOURCE)
        assert not sales_partition.is_browsable(Properties.EXPRESSION)
        assert sales_partition.is_editable(Properties.QUERY)
        assert sales_partition.is_editable(Properties.EXPRESSION)
        assert sales_partition.is_browsable(Properties.REFRESHED_TIME)
        assert not sales_partition.is_editable(Properties.REFRESHED_TIME)
        assert not sales_partition.is_browsable("connection_string")

    def test_m_partition(self, mixed_partitions):
        partition = mixed_partitions["M"]
        assert partition.is_browsable(Properties.EXPRESSION)
        assert not partition.is_browsable(Properties.QUERY)
        assert not partition.is_browsable(Properties.DATA_SOURCE)
        assert not partition.is_editable(Properties.DATA_SOURCE)

    def test_unsupported_kind_expression_not_editable(self, mixed_partitions):
        assert not mixed_partitions["Entity"].is_editable(Properties.EXPRESSION)

    def test_cube_name_depends_on_compatibility_level(self, engine_model):
        engine_model.compatibility_level = 1500
        handler = TabularModelHandler(engine_model)
        partition = handler.model.tables["Sales"].partitions["Sales"]
        assert not partition.is_browsable(Properties.CUBE_NAME)
        assert not partition.is_editable(Properties.CUBE_NAME)
        assert partition.is_browsable(Properties.DATA_VIEW)

        engine_model.compatibility_level = 1510
        assert partition.is_browsable(Properties.CUBE_NAME)
        assert partition.is_editable(Properties.CUBE_NAME)

    def test_data_view_is_always_browsable(self, engine_model):
        engine_model.compatibility_level = 1200
        handler = TabularModelHandler(engine_model)
        partition = handler.model.tables["Sales"].partitions["Sales"]
        assert partition.is_browsable(Properties.DATA_VIEW)
        assert partition.is_editable(Properties.DATA_VIEW)

    def test_refreshed_time_is_read_only(self, sales_partition):
        assert sales_partition.refreshed_time.year == 2024
        with pytest.raises(AttributeError):
            sales_partition.refreshed_time = None
