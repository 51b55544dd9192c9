from survey_mvp.config import DRAFT_KEY
from survey_mvp.identity import get_or_create_device_id
from survey_mvp.local_store import DraftStore, LocalStorage, PendingQueue
from survey_mvp.questions import FeedbackData


def test_storage_items(storage: LocalStorage) -> None:
    assert storage.get_item("missing") is None

    storage.set_item("a", {"x": 1})
    storage.set_item("b", "Français 1")
    storage.remove_item("a")

    assert storage.get_item("a") is None
    assert storage.get_item("b") == "Français 1"


def test_corrupted_storage_reads_as_empty(tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    assert LocalStorage(str(path)).get_item(DRAFT_KEY) is None


def test_for_device_places_file_under_base_dir(tmp_path) -> None:
    storage = LocalStorage.for_device("abc", base_dir=str(tmp_path / "devices"))
    storage.set_item("k", 1)

    assert (tmp_path / "devices" / "abc.json").exists()


def test_draft_store_overwrites_and_clears(storage: LocalStorage) -> None:
    drafts = DraftStore(storage)
    assert drafts.load() == FeedbackData()

    drafts.save(FeedbackData(subject="Analyse 1", q1=1))
    drafts.save(FeedbackData(subject="Analyse 1", q1=1, q2=3))
    assert drafts.load() == FeedbackData(subject="Analyse 1", q1=1, q2=3)

    drafts.clear()
    assert storage.get_item(DRAFT_KEY) is None


def test_pending_queue(storage: LocalStorage) -> None:
    queue = PendingQueue(storage)
    queue.enqueue(FeedbackData(subject="Analyse 1"))
    queue.enqueue(FeedbackData(subject="Anglais 1"))

    assert len(queue) == 2
    assert [d.subject for d in queue.items()] == ["Analyse 1", "Anglais 1"]

    queue.replace([])
    assert len(queue) == 0


def test_device_id_is_stable(storage: LocalStorage) -> None:
    device_id = get_or_create_device_id(storage)

    assert device_id == get_or_create_device_id(storage)
    assert len(device_id) == 36
