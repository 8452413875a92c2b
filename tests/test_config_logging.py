"""
App factory configuration and structured logging.
"""

import json
import logging

import pytest

from dealdesk.config import ProductionConfig, TestingConfig, get_config
from dealdesk.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(msg="ChecklistTask updated id=%s", args=(7,), **extra):
    record = logging.LogRecord("dealdesk.services.task_store", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestConfig:
    def test_testing_config(self, app):
        assert app.config["TESTING"] is True
        assert app.config["CHECKLIST_MANUAL_TASK_ORDER"] == 999
        assert app.config["SEED_CATALOG_ON_STARTUP"] is False
        assert isinstance(get_config("testing"), TestingConfig)

    def test_unknown_environment(self):
        with pytest.raises(RuntimeError):
            get_config("staging")

    def test_production_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError):
            ProductionConfig()


class TestFormatters:
    def test_json_formatter_carries_request_tags(self):
        line = JSONFormatter().format(_record(deal_id="deal-1", task_id=7, request_id="abc"))
        entry = json.loads(line)
        assert entry["message"] == "ChecklistTask updated id=7"
        assert entry["deal_id"] == "deal-1"
        assert entry["task_id"] == 7
        assert entry["request_id"] == "abc"
        assert "status" not in entry

    def test_readable_formatter_tags(self):
        line = ReadableFormatter().format(_record(deal_id="deal-1"))
        assert "ChecklistTask updated id=7" in line
        assert "[deal=deal-1]" in line

    def test_request_id_is_echoed(self, client):
        rv = client.get("/api/v1/checklist/deals/deal-1/tasks", headers={"X-Request-ID": "req-42"})
        assert rv.headers["X-Request-ID"] == "req-42"
        assert float(rv.headers["X-Request-Duration-Ms"]) >= 0
