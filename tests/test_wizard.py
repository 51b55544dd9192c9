from dataclasses import replace

import pytest

from survey_mvp.config import ENV_SUBJECT, SUBJECTS
from survey_mvp.questions import FeedbackData
from survey_mvp.submission import SubmissionResult, SubmissionStatus
from survey_mvp.wizard import (
    ADMIN_DENIED_MSG,
    AdminLogin,
    BackToHub,
    CameraFailed,
    CloseScanner,
    GoHome,
    HistoryLoaded,
    OpenEnvironment,
    OpenNextSubject,
    OpenScanner,
    OpenSubject,
    QrDecoded,
    ReturnToHub,
    SetAnswer,
    SetComments,
    Start,
    Step,
    Submit,
    SubmissionFinished,
    ToggleSidebar,
    WizardState,
    completion,
    global_progress,
    subject_status,
    transition,
)


def _hub(**kwargs) -> WizardState:
    return WizardState(step=Step.HUB, **kwargs)


@pytest.mark.parametrize(
    ("answered", "percentage"),
    [(0, 0), (1, 20), (2, 40), (3, 60), (4, 80), (5, 100)],
)
def test_completion_percentage(answered: int, percentage: int) -> None:
    values = {f"q{i}": 3 for i in range(1, answered + 1)}
    draft = FeedbackData(subject="Analyse 1", **values)

    assert completion(draft) == (answered, percentage, 5)


def test_completion_counts_environment_fields() -> None:
    draft = FeedbackData(subject=ENV_SUBJECT, q1=5, q6_jobs="Flou", q9_transport="Taxi")

    assert completion(draft) == (2, 40, 5)


def test_global_progress_example() -> None:
    assert global_progress(SUBJECTS[:3], False, len(SUBJECTS)) == (3, 12, 25)
    assert global_progress(SUBJECTS[:3], True, len(SUBJECTS)) == (4, 12, 33)


def test_welcome_start_goes_to_hub() -> None:
    assert transition(WizardState(), Start()).step == Step.HUB


def test_open_subject_starts_blank_draft() -> None:
    state = _hub(draft=FeedbackData(subject="Anglais 1", q1=2))

    new = transition(state, OpenSubject("Analyse 1"))

    assert new.step == Step.FORM_PEDAGOGY
    assert new.draft == FeedbackData(subject="Analyse 1")


def test_open_same_subject_resumes_draft() -> None:
    draft = FeedbackData(subject="Analyse 1", q1=2, q2=5)

    new = transition(_hub(draft=draft), OpenSubject("Analyse 1"))

    assert new.draft is draft


def test_completed_subject_cannot_be_reopened() -> None:
    state = _hub(completed_subjects=("Analyse 1",))

    assert transition(state, OpenSubject("Analyse 1")) == state
    assert subject_status(state, "Analyse 1") == "Terminé"


def test_unknown_subject_is_ignored() -> None:
    state = _hub()

    assert transition(state, OpenSubject("Chimie")) == state


def test_open_next_subject_skips_completed() -> None:
    state = _hub(completed_subjects=(SUBJECTS[0], SUBJECTS[1]))

    assert transition(state, OpenNextSubject()).draft.subject == SUBJECTS[2]


def test_environment_audit_form_and_guard() -> None:
    new = transition(_hub(), OpenEnvironment())
    assert new.step == Step.FORM_ENV
    assert new.draft.subject == ENV_SUBJECT

    done = _hub(env_done=True)
    assert transition(done, OpenEnvironment()) == done


def test_set_answer_ignores_fields_of_other_form() -> None:
    state = transition(_hub(), OpenSubject("Analyse 1"))

    state = transition(state, SetAnswer("q7_rooms", 4))
    assert state.draft.q7_rooms is None

    state = transition(state, SetAnswer("q3", 4))
    assert state.draft.q3 == 4
    assert subject_status(state, "Analyse 1") == "En cours"


def test_submit_incomplete_shows_validation_banner() -> None:
    state = transition(_hub(), OpenSubject("Analyse 1"))
    state = transition(state, SetAnswer("q1", 5))

    new = transition(state, Submit())

    assert new.step == Step.FORM_PEDAGOGY
    assert new.show_validation_errors is True


def test_submit_complete_enters_submitting() -> None:
    draft = FeedbackData(subject="Analyse 1", q1=1, q2=2, q3=3, q4=4, q5=5)
    state = WizardState(step=Step.FORM_PEDAGOGY, draft=draft, show_validation_errors=True)

    new = transition(state, Submit())

    assert new.step == Step.SUBMITTING
    assert new.show_validation_errors is False


def test_submission_finished_always_reaches_thanks() -> None:
    draft = FeedbackData(subject="Analyse 1", q1=1, q2=2, q3=3, q4=4, q5=5)
    state = WizardState(step=Step.SUBMITTING, draft=draft)
    result = SubmissionResult(status=SubmissionStatus.PENDING, subject="Analyse 1")

    new = transition(state, SubmissionFinished(result))

    assert new.step == Step.THANKS
    assert new.draft == FeedbackData()
    assert new.completed_subjects == ("Analyse 1",)
    assert new.last_submission_status == "pending"


def test_submitting_ignores_navigation() -> None:
    state = WizardState(step=Step.SUBMITTING, draft=FeedbackData(subject="Analyse 1"))

    assert transition(state, BackToHub()) == state


def test_thanks_only_returns_to_hub() -> None:
    state = WizardState(step=Step.THANKS)

    assert transition(state, OpenSubject("Analyse 1")) == state
    assert transition(state, Submit()) == state
    assert transition(state, ReturnToHub()).step == Step.HUB


def test_qr_payload_with_known_subject_opens_form() -> None:
    state = transition(_hub(), OpenScanner())

    new = transition(state, QrDecoded("https://isgi.example/module?name=Anglais 1"))

    assert new.step == Step.FORM_PEDAGOGY
    assert new.draft.subject == "Anglais 1"


def test_qr_payload_without_subject_keeps_scanner() -> None:
    state = transition(_hub(), OpenScanner())

    assert transition(state, QrDecoded("WIFI:S:campus;;")) == state


def test_camera_failure_is_shown_until_scanner_closed() -> None:
    state = transition(_hub(), OpenScanner())

    state = transition(state, CameraFailed("Accès caméra refusé."))
    assert state.step == Step.SCANNER
    assert state.scanner_error == "Accès caméra refusé."

    state = transition(state, CloseScanner())
    assert state.step == Step.HUB
    assert state.scanner_error is None


def test_sidebar_is_orthogonal_to_main_flow() -> None:
    state = WizardState(step=Step.FORM_ENV, draft=FeedbackData(subject=ENV_SUBJECT))

    opened = transition(state, ToggleSidebar())

    assert opened.sidebar_open is True
    assert replace(opened, sidebar_open=False) == state


def test_admin_login() -> None:
    state = transition(WizardState(), AdminLogin("nope"), admin_password="secret")
    assert state.admin_authenticated is False
    assert state.admin_error

    state = transition(state, AdminLogin("secret"), admin_password="secret")
    assert state.admin_authenticated is True
    assert state.admin_error is None


def test_history_loaded_merges_progress() -> None:
    state = transition(_hub(), HistoryLoaded(("Analyse 1", "Anglais 1"), True))

    assert state.completed_subjects == ("Analyse 1", "Anglais 1")
    assert state.env_done is True

    # an older history read never drops progress already recorded
    stale = transition(state, HistoryLoaded(("Français 1",), False))
    assert stale.completed_subjects == ("Analyse 1", "Anglais 1", "Français 1")
    assert stale.env_done is True


def test_wrong_password_keeps_admin_session() -> None:
    state = transition(WizardState(), AdminLogin("secret"), admin_password="secret")

    state = transition(state, AdminLogin("typo"), admin_password="secret")

    assert state.admin_authenticated is True
    assert state.admin_error == ADMIN_DENIED_MSG


@pytest.mark.parametrize("step", [Step.HUB, Step.SCANNER, Step.MODULES, Step.THANKS])
def test_logo_returns_to_welcome(step) -> None:
    state = WizardState(step=step, scanner_error="x", sidebar_open=True)

    state = transition(state, GoHome())

    assert state.step == Step.WELCOME
    assert state.scanner_error is None
    assert state.sidebar_open is True


def test_logo_keeps_form_draft() -> None:
    state = transition(_hub(), OpenSubject("Analyse 1"))
    state = transition(state, SetAnswer("q1", 4))

    state = transition(state, GoHome())
    assert state.step == Step.WELCOME
    assert state.draft.q1 == 4

    state = transition(transition(state, Start()), OpenSubject("Analyse 1"))
    assert state.draft.q1 == 4


def test_logo_ignored_while_submitting() -> None:
    state = WizardState(step=Step.SUBMITTING, draft=FeedbackData(subject="Analyse 1"))

    assert transition(state, GoHome()) is state


def test_comments_do_not_count_towards_completion() -> None:
    state = transition(_hub(), OpenSubject("Analyse 1"))

    state = transition(state, SetComments("Très bien"))

    assert state.draft.comments == "Très bien"
    assert completion(state.draft)[0] == 0
