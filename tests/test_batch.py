import threading

from encode_all.config.common import JOB_STATUS_CANCELED, JOB_STATUS_COMPLETED, JOB_STATUS_FAILED
from encode_all.pipeline.batch import BatchEncoder

from conftest import FakePopen, wait_for


def test_results_keep_request_order(supervisor, spawner, make_request):
    spawner.add(FakePopen(), FakePopen(returncode=1), FakePopen())
    requests = [make_request(name) for name in ("a.mkv", "b.mkv", "c.mkv")]

    report = BatchEncoder(supervisor, max_workers=1).run(requests)

    assert [r.request for r in report.results] == requests
    assert [r.state for r in report.results] == [JOB_STATUS_COMPLETED, JOB_STATUS_FAILED, JOB_STATUS_COMPLETED]
    assert (report.completed, report.failed, report.canceled) == (2, 1, 0)
    assert not report.all_succeeded
    assert "1" in report.results[1].message


def test_failed_job_is_retried(supervisor, spawner, inhibitor, make_request):
    spawner.add(FakePopen(returncode=1), FakePopen())

    report = BatchEncoder(supervisor, max_retries=1).run([make_request()])

    [result] = report.results
    assert result.state == JOB_STATUS_COMPLETED
    assert result.attempts == 2
    assert report.all_succeeded
    assert inhibitor.count == 0


def test_retries_are_bounded(supervisor, spawner, make_request):
    spawner.add(FakePopen(returncode=1), FakePopen(returncode=1), FakePopen(returncode=1))

    [result] = BatchEncoder(supervisor, max_retries=2).run([make_request()]).results

    assert result.state == JOB_STATUS_FAILED
    assert result.attempts == 3
    assert spawner.items == []


def test_canceled_batch_starts_nothing(supervisor, spawner, make_request):
    batch = BatchEncoder(supervisor, max_workers=2)
    batch.cancel()

    report = batch.run([make_request("a.mkv"), make_request("b.mkv")])

    assert spawner.calls == []
    assert [r.state for r in report.results] == [JOB_STATUS_CANCELED] * 2
    assert [r.attempts for r in report.results] == [0, 0]


def test_duplicate_ids_in_one_batch(supervisor, spawner, make_request):
    spawner.add(FakePopen(), FakePopen())
    requests = [make_request("a.mkv", job_id="same"), make_request("b.mkv", job_id="same")]

    report = BatchEncoder(supervisor, max_workers=1).run(requests)

    # Sequential runs do not overlap, so the id is free again for the second job.
    assert report.all_succeeded


def test_cancel_during_batch_stops_remaining_jobs(supervisor, spawner, inhibitor, make_request):
    running_proc = FakePopen(block=True)
    spawner.add(running_proc, FakePopen())
    batch = BatchEncoder(supervisor, max_workers=1)
    reports = []

    worker = threading.Thread(target=lambda: reports.append(batch.run([make_request("a.mkv"), make_request("b.mkv")])))
    worker.start()
    assert wait_for(lambda: supervisor.active_jobs() != [] and running_proc.cmd is not None)

    batch.cancel()
    worker.join(timeout=5)

    [report] = reports
    assert [r.state for r in report.results] == [JOB_STATUS_CANCELED] * 2
    assert running_proc.terminated
    assert len(spawner.calls) == 1
    assert inhibitor.count == 0


def test_cancel_reaches_a_job_that_is_still_being_accepted(supervisor, spawner, make_request, monkeypatch):
    from encode_all.services import job_registry

    batch = BatchEncoder(supervisor)
    original_open = job_registry.open_job_log

    def open_then_cancel(path):
        stream = original_open(path)
        batch.cancel()
        return stream

    monkeypatch.setattr(job_registry, "open_job_log", open_then_cancel)

    [result] = batch.run([make_request()]).results

    assert result.state == JOB_STATUS_CANCELED
    assert spawner.calls == []
