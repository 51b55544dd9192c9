"""
问卷向导模块 - 页面状态机和控制器

功能职责：
- Step / WizardState / 事件类型
- transition(state, event) - 纯函数状态转换，不依赖任何渲染
- completion() / global_progress() / subject_status() - 进度计算
- WizardController - 持有状态和草稿，执行提交流程、统计刷新和扫码

主流程：welcome → hub → {scanner, modules} → form_pedagogy | form_env
→ submitting → thanks → hub。管理面板是正交的浮层状态，任意页面都可开关。
"""

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from . import data_manager
from .ai_engine import analyze_feedback
from .admin_notifier import send_analysis_to_admin
from .config import ADMIN_PASSWORD, ENV_SUBJECT, QUESTIONS_PER_FORM, SUBJECTS
from .identity import get_or_create_device_id, init_student
from .local_store import DraftStore, PendingQueue
from .qr_scanner import QRScanner, match_subject
from .questions import FeedbackData, get_question, coerce_answer, questions_for, render_question
from .submission import SubmissionResult, SubmissionStatus, submit_feedback, flush_pending

logger = logging.getLogger(__name__)

ADMIN_DENIED_MSG = "Accès refusé. Veuillez contacter la direction."

STATUS_DONE = "Terminé"
STATUS_IN_PROGRESS = "En cours"
STATUS_TODO = "À faire"


class Step(str, enum.Enum):
    WELCOME = "welcome"
    HUB = "hub"
    SCANNER = "scanner"
    MODULES = "modules"
    FORM_PEDAGOGY = "form_pedagogy"
    FORM_ENV = "form_env"
    SUBMITTING = "submitting"
    THANKS = "thanks"


FORM_STEPS = (Step.FORM_PEDAGOGY, Step.FORM_ENV)


@dataclass(frozen=True)
class WizardState:
    step: Step = Step.WELCOME
    draft: FeedbackData = field(default_factory=FeedbackData)
    completed_subjects: Tuple[str, ...] = ()
    env_done: bool = False
    show_validation_errors: bool = False
    scanner_error: Optional[str] = None
    sidebar_open: bool = False
    admin_authenticated: bool = False
    admin_error: Optional[str] = None
    last_submission_id: str = ""
    last_submission_status: Optional[str] = None


# ====== 事件 ======

@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class OpenScanner:
    pass


@dataclass(frozen=True)
class CloseScanner:
    pass


@dataclass(frozen=True)
class CameraFailed:
    message: str


@dataclass(frozen=True)
class QrDecoded:
    payload: str


@dataclass(frozen=True)
class OpenModules:
    pass


@dataclass(frozen=True)
class OpenSubject:
    subject: str


@dataclass(frozen=True)
class OpenNextSubject:
    pass


@dataclass(frozen=True)
class OpenEnvironment:
    pass


@dataclass(frozen=True)
class SetAnswer:
    field: str
    value: object


@dataclass(frozen=True)
class SetComments:
    text: str


@dataclass(frozen=True)
class BackToHub:
    pass


@dataclass(frozen=True)
class Submit:
    pass


@dataclass(frozen=True)
class SubmissionFinished:
    result: object


@dataclass(frozen=True)
class ReturnToHub:
    pass


@dataclass(frozen=True)
class GoHome:
    pass


@dataclass(frozen=True)
class ToggleSidebar:
    pass


@dataclass(frozen=True)
class AdminLogin:
    password: str


@dataclass(frozen=True)
class AdminLogout:
    pass


@dataclass(frozen=True)
class HistoryLoaded:
    completed_subjects: Tuple[str, ...]
    env_done: bool


# ====== 进度计算 ======

def completion(draft):
    """当前答卷完成度

    Returns:
        (completed, percentage, total)
    """
    completed = sum(1 for value in draft.answers() if value is not None)
    return completed, round(completed / QUESTIONS_PER_FORM * 100), QUESTIONS_PER_FORM


def global_progress(completed_subjects, env_done, subject_count=len(SUBJECTS)):
    """总体进度：已完成课程数 + 环境审计 / 课程总数 + 1

    Returns:
        (done, total, percentage)
    """
    done = len(set(completed_subjects)) + (1 if env_done else 0)
    total = subject_count + 1
    return done, total, round(done / total * 100)


def is_completed(state, subject):
    if subject == ENV_SUBJECT:
        return state.env_done
    return subject in state.completed_subjects


def subject_status(state, subject):
    if subject in state.completed_subjects:
        return STATUS_DONE
    if state.draft.subject == subject and completion(state.draft)[0] > 0:
        return STATUS_IN_PROGRESS
    return STATUS_TODO


def first_uncompleted(state, subjects=SUBJECTS):
    return next((s for s in subjects if s not in state.completed_subjects), None)


# ====== 状态转换 ======

def _enter_form(state, subject):
    # 同一科目的草稿继续填写，否则换成空白答卷
    draft = state.draft if state.draft.subject == subject else FeedbackData(subject=subject)
    step = Step.FORM_ENV if subject == ENV_SUBJECT else Step.FORM_PEDAGOGY
    return replace(state, step=step, draft=draft, show_validation_errors=False, scanner_error=None)


def _open_subject(state, subject, subjects):
    if subject not in subjects or is_completed(state, subject):
        return state
    return _enter_form(state, subject)


def transition(state, event, subjects=SUBJECTS, admin_password=ADMIN_PASSWORD):
    """根据事件计算新状态（纯函数）

    不合法的事件返回原状态。
    """
    # 管理面板：任意页面都可操作
    if isinstance(event, ToggleSidebar):
        return replace(state, sidebar_open=not state.sidebar_open, admin_error=None)
    if isinstance(event, AdminLogin):
        if event.password == admin_password:
            return replace(state, admin_authenticated=True, admin_error=None)
        return replace(state, admin_error=ADMIN_DENIED_MSG)
    if isinstance(event, AdminLogout):
        return replace(state, admin_authenticated=False, admin_error=None)
    if isinstance(event, HistoryLoaded):
        # 已完成科目只增不减：查询可能早于刚结束的提交
        completed = state.completed_subjects + tuple(
            s for s in event.completed_subjects if s not in state.completed_subjects
        )
        return replace(
            state,
            completed_subjects=completed,
            env_done=state.env_done or bool(event.env_done),
        )

    step = state.step

    # 页眉标志：回到欢迎页，草稿保留；提交中不可离开
    if isinstance(event, GoHome):
        if step == Step.SUBMITTING:
            return state
        return replace(state, step=Step.WELCOME, show_validation_errors=False, scanner_error=None)

    if step == Step.WELCOME:
        if isinstance(event, Start):
            return replace(state, step=Step.HUB)

    elif step in (Step.HUB, Step.MODULES):
        if isinstance(event, OpenSubject):
            return _open_subject(state, event.subject, subjects)
        if isinstance(event, OpenNextSubject):
            subject = first_uncompleted(state, subjects)
            return _open_subject(state, subject, subjects) if subject else state
        if isinstance(event, OpenEnvironment):
            return _open_subject(state, ENV_SUBJECT, list(subjects) + [ENV_SUBJECT])
        if isinstance(event, OpenScanner):
            return replace(state, step=Step.SCANNER, scanner_error=None)
        if isinstance(event, OpenModules):
            return replace(state, step=Step.MODULES)
        if isinstance(event, BackToHub):
            return replace(state, step=Step.HUB)

    elif step == Step.SCANNER:
        if isinstance(event, QrDecoded):
            subject = match_subject(event.payload, subjects)
            return _open_subject(state, subject, subjects) if subject else state
        if isinstance(event, CameraFailed):
            return replace(state, scanner_error=event.message)
        if isinstance(event, (CloseScanner, BackToHub)):
            return replace(state, step=Step.HUB, scanner_error=None)

    elif step in FORM_STEPS:
        if isinstance(event, SetAnswer):
            if event.field not in state.draft.answer_fields():
                return state
            return replace(state, draft=replace(state.draft, **{event.field: event.value}))
        if isinstance(event, SetComments):
            return replace(state, draft=replace(state.draft, comments=event.text))
        if isinstance(event, BackToHub):
            return replace(state, step=Step.HUB, show_validation_errors=False)
        if isinstance(event, Submit):
            if completion(state.draft)[0] < QUESTIONS_PER_FORM:
                return replace(state, show_validation_errors=True)
            return replace(state, step=Step.SUBMITTING, show_validation_errors=False)

    elif step == Step.SUBMITTING:
        if isinstance(event, SubmissionFinished):
            subject = state.draft.subject
            completed = state.completed_subjects
            env_done = state.env_done
            if subject == ENV_SUBJECT:
                env_done = True
            elif subject not in completed:
                completed = completed + (subject,)

            result = event.result
            return replace(
                state,
                step=Step.THANKS,
                draft=FeedbackData(),
                completed_subjects=completed,
                env_done=env_done,
                last_submission_id=getattr(result, "feedback_id", None) or "",
                last_submission_status=getattr(getattr(result, "status", None), "value", None),
            )

    elif step == Step.THANKS:
        if isinstance(event, ReturnToHub):
            return replace(state, step=Step.HUB)

    return state


# ====== 控制器 ======

class WizardController:
    """向导控制器：状态机 + 本地草稿 + 后端协作方

    身份在构造时解析一次（defer_identity=True 时推迟到第一次操作）；
    每次答卷变化都写入本地草稿；进入 submitting 时执行提交流程；
    页面切换或打开管理面板时刷新统计。

    状态读写由 self._lock 保护；提交流程和统计查询在锁外执行，
    结果基于执行完成时的最新状态合并。
    """

    def __init__(
        self,
        storage,
        device_id=None,
        subjects=SUBJECTS,
        admin_password=ADMIN_PASSWORD,
        save=None,
        analyze=None,
        notify=None,
        defer_identity=False,
    ):
        self.storage = storage
        self.device_id = device_id or get_or_create_device_id(storage)
        self.subjects = list(subjects)
        self.admin_password = admin_password
        self.save = save or data_manager.save_feedback
        self.analyze = analyze or analyze_feedback
        self.notify = notify or send_analysis_to_admin

        self.drafts = DraftStore(storage)
        self.pending = PendingQueue(storage)
        self.state = WizardState(draft=self.drafts.load())
        self.last_result = None
        self.stats = {
            "global": {"totalFeedbacks": 0, "uniqueSubjects": 0, "globalAverageScore": 0},
            "environment": {"transport": {}, "laptop": {"yes": 0, "no": 0, "rate": 0}},
            "subjects": [],
        }

        self._lock = threading.RLock()
        self.student_id = ""
        self.identity_ready = False
        if not defer_identity:
            self.ensure_identity()

    def ensure_identity(self):
        """解析学生身份并补交本地队列（只执行一次）"""
        with self._lock:
            if self.identity_ready:
                return self.student_id
            self.identity_ready = True
            self.student_id = self._init_identity()

        if self.student_id:
            flush_pending(self.student_id, self.pending, save=self.save)
        self.refresh_stats()
        return self.student_id

    def _init_identity(self):
        try:
            student_id = init_student(self.device_id)
            logger.info(f"✅ 学生身份已就绪: {student_id}")
            return student_id
        except Exception as e:
            logger.error(f"❌ 学生身份初始化失败: {str(e)}")
            return ""

    def _commit(self, previous, state):
        self.state = state
        if state.draft != previous.draft:
            if state.draft.subject:
                self.drafts.save(state.draft)
            else:
                self.drafts.clear()

    def dispatch(self, event):
        self.ensure_identity()

        with self._lock:
            previous = self.state
            state = transition(previous, event, self.subjects, self.admin_password)
            self._commit(previous, state)

        if state.step == Step.SUBMITTING and previous.step != Step.SUBMITTING:
            self._run_submission(state.draft)

        if self.state.step != previous.step or (
            self.state.sidebar_open and not previous.sidebar_open
        ):
            self.refresh_stats()
        return self.state

    def _run_submission(self, draft):
        # 无论流程如何失败，submitting 都必须推进到 thanks
        result = SubmissionResult(status=SubmissionStatus.PENDING, subject=draft.subject)
        try:
            result = submit_feedback(
                draft,
                self.student_id,
                self.drafts,
                self.pending,
                save=self.save,
                analyze=self.analyze,
                notify=self.notify,
            )
        except Exception as e:
            logger.error(f"❌ 提交流程异常: {str(e)}")
            result.errors.append(f"submit: {str(e)}")
        finally:
            with self._lock:
                self.last_result = result
                current = self.state
                finished = transition(current, SubmissionFinished(result), self.subjects)
                try:
                    self._commit(current, finished)
                except Exception as e:
                    self.state = finished
                    logger.error(f"❌ 清除草稿失败: {str(e)}")

    def refresh_stats(self):
        """并发执行四个统计查询，全部完成后更新面板和已完成科目"""
        queries = {
            "global": data_manager.get_global_stats,
            "environment": data_manager.get_environment_stats,
            "subjects": data_manager.get_subjects_breakdown,
            "history": lambda: data_manager.get_history(self.student_id),
        }
        try:
            with ThreadPoolExecutor(max_workers=len(queries)) as pool:
                futures = {name: pool.submit(query) for name, query in queries.items()}
                results = {name: future.result() for name, future in futures.items()}
        except Exception as e:
            logger.error(f"❌ 刷新统计失败: {str(e)}")
            return self.stats

        history = results.pop("history")
        subjects = [h["subject"] for h in history] + [d.subject for d in self.pending.items()]
        completed = []
        for subject in subjects:
            if subject != ENV_SUBJECT and subject not in completed:
                completed.append(subject)

        with self._lock:
            self.stats = results
            self.state = transition(
                self.state, HistoryLoaded(tuple(completed), ENV_SUBJECT in subjects)
            )
            return self.stats

    # ====== 便捷操作 ======

    def answer(self, field_name, raw):
        """记录一题答案

        Raises:
            ValueError: 题目不存在或答案无效
        """
        value = coerce_answer(get_question(field_name), raw)
        return self.dispatch(SetAnswer(field_name, value))

    def scan_payload(self, payload):
        """处理一次二维码内容

        Returns:
            bool: 是否匹配到课程并进入问卷
        """
        if self.state.step != Step.SCANNER:
            return False
        self.dispatch(QrDecoded(payload))
        return self.state.step == Step.FORM_PEDAGOGY

    def scan_with_camera(self, scanner_factory=QRScanner, max_frames=None):
        """用摄像头扫码，直到匹配到课程或扫码器关闭

        Returns:
            匹配到的课程名，未匹配时为 None
        """
        if self.state.step != Step.SCANNER:
            self.dispatch(OpenScanner())

        scanner = None

        def on_scan(payload):
            if self.scan_payload(payload):
                scanner.close()

        scanner = scanner_factory(on_scan)
        if not scanner.start():
            self.dispatch(CameraFailed(scanner.error))
            return None

        try:
            scanner.run(max_frames=max_frames)
        finally:
            scanner.close()

        if scanner.error:
            self.dispatch(CameraFailed(scanner.error))
        if self.state.step == Step.FORM_PEDAGOGY:
            return self.state.draft.subject
        return None

    def view(self):
        """页面渲染和 JSON 接口共用的视图数据"""
        state = self.state
        completed, percentage, total = completion(state.draft)
        done, steps_total, global_pct = global_progress(
            state.completed_subjects, state.env_done, len(self.subjects)
        )
        view = {
            "step": state.step.value,
            "subject": state.draft.subject,
            "completion": {"completed": completed, "percentage": percentage, "total": total},
            "can_submit": completed == total,
            "progress": {"done": done, "total": steps_total, "percentage": global_pct},
            "subjects": [
                {"name": s, "status": subject_status(state, s), "disabled": s in state.completed_subjects}
                for s in self.subjects
            ],
            "env_done": state.env_done,
            "next_subject": first_uncompleted(state, self.subjects),
            "show_validation_errors": state.show_validation_errors,
            "scanner_error": state.scanner_error,
            "sidebar_open": state.sidebar_open,
            "admin_authenticated": state.admin_authenticated,
            "admin_error": state.admin_error,
            "last_submission_id": state.last_submission_id,
            "last_submission_status": state.last_submission_status,
            "comments": state.draft.comments,
        }
        if state.step in FORM_STEPS:
            view["questions"] = [
                render_question(q, getattr(state.draft, q.key), state.show_validation_errors)
                for q in questions_for(state.draft.subject)
            ]
        if state.admin_authenticated:
            view["stats"] = self.stats
        return view
