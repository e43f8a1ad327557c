import asyncio
import threading
import time

from app.core.metrics import METRICS_FILE, MetricsRecorder


def _record(metrics, **overrides):
    fields = dict(
        runtime="ollama",
        knowledge_source="ai-web",
        mode="standard",
        topic="Osmosis",
        card_count=5,
        duration_ms=100,
        success=True,
    )
    fields.update(overrides)
    return metrics.record_generation(**fields)


def test_records_persist_across_reopen(tmp_path):
    metrics = MetricsRecorder(tmp_path)
    metrics.open()
    _record(metrics)
    _record(metrics, success=False, error_message="boom", card_count=0)
    metrics.close()
    assert metrics.get_metrics() == []

    lines = (tmp_path / METRICS_FILE).read_text().splitlines()
    assert len(lines) == 2

    reopened = MetricsRecorder(tmp_path)
    reopened.open()
    records = reopened.get_metrics()
    assert [r.success for r in records] == [True, False]
    assert records[1].error_message == "boom"


def test_malformed_lines_are_skipped(tmp_path):
    (tmp_path / METRICS_FILE).write_text('{"not": "a metric"}\n\n')
    metrics = MetricsRecorder(tmp_path)
    metrics.open()
    assert metrics.get_metrics() == []


def test_filters(tmp_path):
    metrics = MetricsRecorder(tmp_path)
    metrics.open()
    _record(metrics, runtime="hosted")
    _record(metrics, knowledge_source="ai-only")
    _record(metrics, success=False)

    assert len(metrics.get_metrics(runtime="hosted")) == 1
    assert len(metrics.get_metrics(knowledge_source="ai-only")) == 1
    assert len(metrics.get_metrics(success=False)) == 1
    assert metrics.get_metrics(since=time.time() + 60) == []


def test_summary(tmp_path):
    metrics = MetricsRecorder(tmp_path)
    metrics.open()
    _record(metrics, duration_ms=100)
    _record(metrics, duration_ms=300, topic="Cells")
    _record(metrics, success=False, duration_ms=9000, runtime="hosted")

    summary = metrics.get_summary()
    assert summary["total_generations"] == 3
    assert summary["success_rate"] == 66.67
    assert summary["avg_duration_ms"] == 200
    assert summary["by_runtime"] == {"ollama": 2, "hosted": 1}
    assert summary["top_topics"][0] == {"topic": "Osmosis", "count": 2}


def test_empty_summary(tmp_path):
    summary = MetricsRecorder(tmp_path).get_summary()
    assert summary["total_generations"] == 0
    assert summary["success_rate"] == 0


def test_memory_window_is_bounded(tmp_path):
    metrics = MetricsRecorder(tmp_path, max_in_memory=2)
    metrics.open()
    for topic in ("a", "b", "c"):
        _record(metrics, topic=topic)
    assert [r.topic for r in metrics.get_metrics()] == ["b", "c"]


def test_invalid_metric_is_dropped(tmp_path):
    metrics = MetricsRecorder(tmp_path)
    metrics.open()
    assert metrics.record_generation(runtime="ollama") is None
    assert metrics.get_metrics() == []


def test_writes_inside_event_loop_run_off_the_loop_thread(tmp_path, monkeypatch):
    metrics = MetricsRecorder(tmp_path)
    metrics.open()
    threads = []
    write = metrics._flush

    def tracked():
        threads.append(threading.get_ident())
        write()

    monkeypatch.setattr(metrics, "_flush", tracked)

    async def scenario():
        _record(metrics)
        _record(metrics, topic="Cells")
        await metrics.flush()
        return threading.get_ident()

    loop_thread = asyncio.run(scenario())
    assert threads
    assert loop_thread not in threads
    lines = (tmp_path / METRICS_FILE).read_text().splitlines()
    assert len(lines) == 2
    assert len(metrics.get_metrics()) == 2
