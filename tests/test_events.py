import logging

from cartshift.engine.events import RunLogger, StatusChannel
from cartshift.models.migration import ChannelMessage, MigrationStatus


def test_subscribers_receive_messages_until_unsubscribed():
    channel = StatusChannel()
    received = []
    unsubscribe = channel.subscribe(received.append)

    channel.publish_log("p1", "hello")
    unsubscribe()
    channel.publish_log("p1", "ignored")

    assert [m.line for m in received] == ["hello"]
    assert channel.subscriber_count == 0


def test_failing_subscriber_does_not_block_others():
    channel = StatusChannel()
    received = []

    def broken(message):
        raise RuntimeError("gone")

    channel.subscribe(broken)
    channel.subscribe(received.append)
    channel.publish_status(MigrationStatus(is_running=True, project_id="p1"))

    assert len(received) == 1
    assert received[0].status.is_running


def test_status_messages_carry_a_copy():
    status = MigrationStatus(project_id="p1")
    message = ChannelMessage.for_status(status)
    status.logs.append("later")
    assert message.status.logs == []


def test_sse_encoding():
    message = ChannelMessage.for_log("p1", "Products: 1 imported, 0 failed")
    assert message.to_sse().startswith("event: log\ndata: {")
    assert message.to_sse().endswith("\n\n")


def test_run_logger_prefixes_errors(caplog):
    lines = []
    run_log = RunLogger(lines.append)
    with caplog.at_level(logging.INFO, logger="cartshift.migration"):
        run_log.info("started")
        run_log.warning("careful")
        run_log.error("broken")
    assert lines == ["started", "careful", "Error: broken"]
    assert "broken" in caplog.text
