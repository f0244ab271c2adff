import logging
from vjoin.domain.events import JobWarning, JobFailed
from vjoin.infrastructure.event_bus import EventBus
from vjoin.infrastructure.logging import JobLogAdapter, setup_logging

def test_publish_to_exact_type_only():
    bus = EventBus()
    warnings, failures = [], []
    bus.subscribe(JobWarning, warnings.append)
    bus.subscribe(JobFailed, failures.append)

    bus.publish(JobWarning(job_id="j", message="oversize"))
    assert [w.message for w in warnings] == ["oversize"]
    assert failures == []

def test_unsubscribe():
    bus = EventBus()
    seen = []
    bus.subscribe(JobWarning, seen.append)
    bus.unsubscribe(JobWarning, seen.append)
    bus.publish(JobWarning(job_id="j", message="x"))
    assert seen == []

def test_failing_subscriber_does_not_block_others():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("ui glitch")

    bus.subscribe(JobWarning, broken)
    bus.subscribe(JobWarning, seen.append)
    bus.publish(JobWarning(job_id="j", message="x"))
    assert len(seen) == 1

def test_job_log_adapter_prefixes(caplog):
    log = JobLogAdapter(logging.getLogger("vjoin.test"), "abc123")
    with caplog.at_level(logging.INFO, logger="vjoin.test"):
        log.info("Stage -> VALIDATING")
    assert caplog.records[-1].getMessage() == "[abc123] Stage -> VALIDATING"

def test_setup_logging_writes_file(tmp_path):
    logger = setup_logging(tmp_path / "logs", console=False)
    try:
        logger.info("hello from vjoin")
        for handler in logging.getLogger().handlers:
            handler.flush()
        content = (tmp_path / "logs" / "vjoin.log").read_text()
        assert "INFO - hello from vjoin" in content
    finally:
        for handler in list(logging.getLogger().handlers):
            if isinstance(handler, logging.FileHandler):
                logging.getLogger().removeHandler(handler)
                handler.close()
