"""Unit tests for ChangeAuditLogger."""

import threading

from batch_update.domain.cdc_models import ChangeEvent
from batch_update.infrastructure.audit.change_audit_logger import ChangeAuditLogger


class TestChangeAuditLogger:
    """Test suite for ChangeAuditLogger."""

    def test_init(self):
        """Test ChangeAuditLogger initialization."""
        logger = ChangeAuditLogger()
        assert logger.get_log_count() == 0
        assert not logger.has_logs()
        assert logger._ingestion_id is None
        assert logger._source_adapter is None

    def test_log_change_single(self):
        """Test logging a single change."""
        logger = ChangeAuditLogger()
        logger.log_change(
            table_name="cats",
            record_id="1",
            field_name="name",
            old_value="Felix",
            new_value="Garfield",
        )

        logs = logger.get_logs()
        assert len(logs) == 1
        log_entry = logs[0]
        assert log_entry['table_name'] == "cats"
        assert log_entry['record_id'] == "1"
        assert log_entry['field_name'] == "name"
        assert log_entry['old_value'] == "Felix"
        assert log_entry['new_value'] == "Garfield"
        assert log_entry['change_type'] == "UPDATE"
        assert log_entry['changed_by'] == "system"
        assert 'change_id' in log_entry
        assert 'changed_at' in log_entry

    def test_values_serialized_to_text(self):
        """Non-string values are stored as text, lists and dicts as JSON."""
        logger = ChangeAuditLogger()
        logger.log_change(table_name="cats", record_id=7, field_name="age", old_value=3, new_value=4)
        logger.log_change(table_name="cats", record_id=7, field_name="toys",
                          old_value=["ball"], new_value={"a": 1})
        logger.log_change(table_name="cats", record_id=7, field_name="weight",
                          old_value=float("nan"), new_value=None)

        age, toys, weight = logger.get_logs()
        assert age['record_id'] == "7"
        assert (age['old_value'], age['new_value']) == ("3", "4")
        assert (toys['old_value'], toys['new_value']) == ('["ball"]', '{"a": 1}')
        assert (weight['old_value'], weight['new_value']) == (None, None)

    def test_log_change_with_context(self):
        """Test logging with run context."""
        logger = ChangeAuditLogger()
        logger.set_ingestion_context(ingestion_id="run-123", source_adapter="cli")

        logger.log_change(table_name="cats", record_id="1", field_name="name",
                          old_value="Felix", new_value="Garfield")

        logs = logger.get_logs()
        assert logs[0]['ingestion_id'] == "run-123"
        assert logs[0]['source_adapter'] == "cli"

    def test_log_change_override_context(self):
        """Explicit ingestion_id/source_adapter override the context."""
        logger = ChangeAuditLogger()
        logger.set_ingestion_context(ingestion_id="run-123", source_adapter="cli")

        logger.log_change(table_name="cats", record_id="1", field_name="name",
                          old_value="Felix", new_value="Garfield",
                          ingestion_id="run-456", source_adapter="api")

        logs = logger.get_logs()
        assert logs[0]['ingestion_id'] == "run-456"
        assert logs[0]['source_adapter'] == "api"

    def test_log_change_event_with_context(self):
        """ChangeEvents pick up the run context."""
        logger = ChangeAuditLogger()
        logger.set_ingestion_context(ingestion_id="context-run", source_adapter="context-adapter")

        logger.log_change_event(ChangeEvent(
            table_name="cats", record_id="1", field_name="name",
            old_value="Felix", new_value="Garfield",
        ))

        logs = logger.get_logs()
        assert logs[0]['ingestion_id'] == "context-run"
        assert logs[0]['source_adapter'] == "context-adapter"
        assert logs[0]['changed_by'] == "system"

    def test_log_changes_batch(self):
        """Test batch logging of multiple change events."""
        logger = ChangeAuditLogger()

        logger.log_changes_batch([
            ChangeEvent(table_name="cats", record_id="1", field_name="name",
                        old_value="Felix", new_value="Garfield"),
            ChangeEvent(table_name="cats", record_id="2", field_name="color",
                        old_value="grey", new_value="blue"),
        ])

        logs = logger.get_logs()
        assert [log['record_id'] for log in logs] == ["1", "2"]

    def test_get_logs_returns_copy(self):
        """get_logs() returns a copy, not the original list."""
        logger = ChangeAuditLogger()
        logger.log_change(table_name="cats", record_id="1", field_name="name")

        logs = logger.get_logs()
        logs.append({'test': 'data'})

        assert len(logger.get_logs()) == 1

    def test_clear_logs(self):
        """Test clearing logged events."""
        logger = ChangeAuditLogger()
        logger.log_change(table_name="cats", record_id="1", field_name="name")

        logger.clear_logs()

        assert logger.get_log_count() == 0
        assert not logger.has_logs()

    def test_log_change_with_changed_by(self):
        logger = ChangeAuditLogger()
        logger.log_change(table_name="cats", record_id="1", field_name="name", changed_by="admin_user")
        assert logger.get_logs()[0]['changed_by'] == "admin_user"

    def test_thread_safety(self):
        """Concurrent logging from several threads loses no entries."""
        logger = ChangeAuditLogger()

        def log_many(offset):
            for i in range(100):
                logger.log_change(table_name="cats", record_id=str(offset + i), field_name="name")

        threads = [threading.Thread(target=log_many, args=(n * 100,)) for n in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert logger.get_log_count() == 500
        assert len({log['change_id'] for log in logger.get_logs()}) == 500
