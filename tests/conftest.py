"""Pytest configuration and shared fixtures."""
import pytest
from datetime import datetime

from tabularstate import (
    EngineModel,
    EnginePartition,
    EngineProviderDataSource,
    EngineTable,
    QueryPartitionSource,
    TabularModelHandler,
    set_global_config,
)


@pytest.fixture(autouse=True)
def reset_global_config():
    """Reset the thread-local global configuration around each test."""
    set_global_config(None)
    yield
    set_global_config(None)


@pytest.fixture
def engine_model():
    """Engine graph with one provider data source and a table "Sales" with one Query partition."""
    sql = EngineProviderDataSource(name="SQL", connection_string="Server=localhost;Database=Sales", provider="MSOLEDBSQL")
    partition = EnginePartition(
        name="Sales",
        source=QueryPartitionSource(query="SELECT * FROM Sales", data_source=sql),
        refreshed_time=datetime(2024, 1, 31, 12, 0),
    )
    return EngineModel(
        name="Sales Model",
        compatibility_level=1500,
        tables=[EngineTable(name="Sales", partitions=[partition])],
        data_sources=[sql],
    )


@pytest.fixture
def handler(engine_model):
    """Editing session over ``engine_model``."""
    return TabularModelHandler(engine_model)


@pytest.fixture
def sales_table(handler):
    return handler.model.tables["Sales"]


@pytest.fixture
def sales_partition(sales_table):
    return sales_table.partitions["Sales"]


@pytest.fixture
def sql_source(handler):
    return handler.model.data_sources["SQL"]


@pytest.fixture
def empty_handler():
    """Session over a model with no tables and no data sources."""
    return TabularModelHandler(EngineModel(name="Empty"))
