import pytest

from nexgengit.logger import (
    DELIVERY_FIELDS,
    delivery_context,
    get_logger,
    log_failure,
    log_ignored,
    log_timing,
    log_with_context,
)


@pytest.fixture
def records():
    logger = get_logger()
    captured = []
    sink_id = logger.add(captured.append, level="DEBUG", format="{message}")
    yield captured
    logger.remove(sink_id)


def test_unbound_records_carry_placeholder_fields(records):
    get_logger().info("hello")

    extra = records[-1].record["extra"]
    assert all(extra[field] == "-" for field in DELIVERY_FIELDS)


def test_context_drops_missing_values(mocker):
    fake = mocker.Mock()

    log_with_context(fake, delivery_id="d-1", repository=None, pr_number=3)

    fake.bind.assert_called_once_with(delivery_id="d-1", pr_number=3)


def test_delivery_context_names_every_field():
    assert delivery_context("d-1", "octo-org/widgets", 42) == {
        "delivery_id": "d-1",
        "repository": "octo-org/widgets",
        "pr_number": 42,
    }


def test_outcome_lines_are_bound_to_the_delivery(records):
    log_ignored(get_logger(), "closed action", **delivery_context("d-2", "octo-org/widgets", 7))

    record = records[-1].record
    assert record["message"] == "=== IGNORED: closed action ==="
    assert record["extra"]["delivery_id"] == "d-2"
    assert record["extra"]["pr_number"] == 7


def test_failure_appends_error(records):
    log_failure(get_logger(), "diff fetch failed", RuntimeError("503"))

    assert records[-1].record["level"].name == "ERROR"
    assert records[-1].record["message"] == "=== FAILURE: diff fetch failed | Error: 503 ==="


class TestLogTiming:
    def test_logs_start_and_completion(self, records):
        with log_timing(get_logger(), "fetch_diff"):
            pass

        messages = [message.record["message"] for message in records]
        assert messages[0] == "Starting fetch_diff"
        assert messages[-1].startswith("Completed fetch_diff in ")

    def test_failures_are_logged_and_reraised(self, records):
        with pytest.raises(ValueError):
            with log_timing(get_logger(), "generate_review"):
                raise ValueError("bad")

        assert records[-1].record["level"].name == "ERROR"
        assert records[-1].record["message"].startswith("Failed generate_review after ")
