"""Pytest configuration and fixtures for the hostcfg tests."""

import pytest

from hostcfg.catalog import ServiceCatalog, build_default_catalog
from hostcfg.composer import ConfigCompiler
from hostcfg.schema import OptionSchema, baseline_from_schema, build_default_schema
from hostcfg.validators import ConfigValidator


@pytest.fixture
def catalog() -> ServiceCatalog:
    return build_default_catalog()


@pytest.fixture
def schema(catalog: ServiceCatalog) -> OptionSchema:
    return build_default_schema(catalog)


@pytest.fixture
def baseline(schema: OptionSchema) -> dict:
    """The default tree built from every option's default."""
    return baseline_from_schema(schema)


@pytest.fixture
def validator(schema: OptionSchema, catalog: ServiceCatalog) -> ConfigValidator:
    return ConfigValidator(schema, catalog)


@pytest.fixture
def compiler(schema: OptionSchema, catalog: ServiceCatalog) -> ConfigCompiler:
    return ConfigCompiler(schema, catalog)
