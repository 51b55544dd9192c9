from survey_mvp.config import DRAFT_KEY
from survey_mvp.local_store import DraftStore, PendingQueue
from survey_mvp.submission import SubmissionStatus, flush_pending, submit_feedback


def _boom(*args, **kwargs):
    raise RuntimeError("boom")


def test_pipeline_runs_in_order(storage, pedagogy) -> None:
    calls = []
    data = pedagogy(comments="Plus d'exercices")
    drafts = DraftStore(storage)
    drafts.save(data)

    def save(d, student_id):
        calls.append("save")
        return "fb-1"

    def analyze(d):
        calls.append("analyze")
        return "Synthèse", None, 10

    def notify(d, analysis):
        calls.append(("notify", analysis))
        return True, "ok"

    result = submit_feedback(data, "student-1", drafts, PendingQueue(storage),
                             save=save, analyze=analyze, notify=notify)

    assert calls == ["save", "analyze", ("notify", "Synthèse")]
    assert result.status == SubmissionStatus.CONFIRMED
    assert result.feedback_id == "fb-1"
    assert result.notified is True
    assert result.errors == []
    assert storage.get_item(DRAFT_KEY) is None


def test_save_failure_is_queued_and_pipeline_continues(storage, pedagogy) -> None:
    notified = []
    queue = PendingQueue(storage)

    result = submit_feedback(
        pedagogy("Anglais 1"),
        "student-1",
        DraftStore(storage),
        queue,
        save=_boom,
        analyze=lambda d: (None, "API Key 未配置", 0),
        notify=lambda d, analysis: notified.append(analysis) or (False, "通知地址未配置"),
    )

    assert result.status == SubmissionStatus.PENDING
    assert result.confirmed is False
    assert notified == [None]
    assert len(result.errors) == 3
    assert [d.subject for d in queue.items()] == ["Anglais 1"]


def test_analysis_exception_does_not_block_notification(storage, pedagogy) -> None:
    notified = []

    result = submit_feedback(
        pedagogy(),
        "student-1",
        DraftStore(storage),
        PendingQueue(storage),
        save=lambda d, s: "fb-2",
        analyze=_boom,
        notify=lambda d, analysis: notified.append(analysis) or (True, "ok"),
    )

    assert result.confirmed is True
    assert notified == [None]
    assert result.errors == ["analyze: boom"]


def test_flush_pending_keeps_failures(storage, pedagogy) -> None:
    queue = PendingQueue(storage)
    queue.enqueue(pedagogy("Analyse 1"))
    queue.enqueue(pedagogy("Anglais 1"))
    saved = []

    def save(d, student_id):
        if d.subject == "Anglais 1":
            raise RuntimeError("still down")
        saved.append((d.subject, student_id))
        return "fb"

    assert flush_pending("student-1", queue, save=save) == 1
    assert saved == [("Analyse 1", "student-1")]
    assert [d.subject for d in queue.items()] == ["Anglais 1"]


def test_flush_pending_without_student_is_noop(storage, pedagogy) -> None:
    queue = PendingQueue(storage)
    queue.enqueue(pedagogy())

    assert flush_pending("", queue, save=_boom) == 0
    assert len(queue) == 1
