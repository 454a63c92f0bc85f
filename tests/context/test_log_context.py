"""Tests for the structlog processor that stamps ambient context ids."""

import json
import logging

import pytest
import structlog

import gridkernel.core.logging as kernel_logging
from gridkernel.context.carrier import grid_carrier
from gridkernel.context.grid import GridContext
from gridkernel.context.logging import add_grid_context
from gridkernel.context.node import initialize_node_context
from gridkernel.context.operation import OperationTracker
from gridkernel.core.logging import configure_logging, get_logger, is_configured
from gridkernel.core.settings import KernelSettings


@pytest.fixture
def restore_logging(monkeypatch):
    saved_handlers = logging.root.handlers[:]
    saved_level = logging.root.level
    monkeypatch.setattr(kernel_logging, "_configured", False)
    yield
    structlog.reset_defaults()
    logging.root.handlers[:] = saved_handlers
    logging.root.setLevel(saved_level)


class TestAddGridContext:
    def test_nothing_ambient(self):
        assert add_grid_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_grid_ids_added(self):
        ctx = GridContext(correlation_id="corr", leaf_id="leaf", causation_chain=("cause",))
        with grid_carrier.scope(ctx):
            event = add_grid_context(None, "info", {"event": "x"})
        assert event["correlation_id"] == "corr"
        assert event["causation_id"] == "cause"

    def test_root_has_no_causation(self):
        with grid_carrier.scope(GridContext(correlation_id="corr", leaf_id="leaf")):
            event = add_grid_context(None, "info", {"event": "x"})
        assert "causation_id" not in event

    def test_explicit_keys_win(self):
        with grid_carrier.scope(GridContext(correlation_id="corr", leaf_id="leaf")):
            event = add_grid_context(None, "info", {"event": "x", "correlation_id": "mine"})
        assert event["correlation_id"] == "mine"

    def test_operation_and_node_ids(self, ids):
        initialize_node_context(KernelSettings(_env_file=None, node_id="billing"), id_generator=ids)
        tracker = OperationTracker(id_generator=ids, max_depth=4)
        with grid_carrier.scope(GridContext.create_root(ids, correlation_id="corr")):
            with tracker.begin("charge") as op:
                event = add_grid_context(None, "info", {"event": "x"})
        assert event["operation_id"] == op.operation_id
        assert event["node_id"] == "billing"


class TestConfigureLogging:
    def test_processor_chain_includes_grid_context(self, restore_logging):
        configure_logging(level="DEBUG", json_format=True, service="svc")
        assert is_configured()
        processors = structlog.get_config()["processors"]
        assert add_grid_context in processors
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_second_call_is_noop_without_force(self, restore_logging):
        configure_logging(json_format=True)
        configure_logging(json_format=False)
        assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)
        configure_logging(json_format=False, force=True)
        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)

    def test_json_event_carries_context(self, restore_logging, capsys):
        configure_logging(level="INFO", json_format=True, service="orders")
        logger = get_logger("tests.json_event")
        with grid_carrier.scope(GridContext(correlation_id="corr-9", leaf_id="leaf")):
            logger.info("order_placed", order_id=5)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "order_placed"
        assert record["order_id"] == 5
        assert record["correlation_id"] == "corr-9"
        assert record["service"] == "orders"
        assert record["level"] == "info"
