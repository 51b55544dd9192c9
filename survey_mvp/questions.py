"""
问卷题目模块 - 题目定义、答卷数据和题目渲染

功能职责：
- PEDAGOGY_QUESTIONS / ENVIRONMENT_QUESTIONS - 两套五题问卷
- FeedbackData - 一份答卷（草稿与提交共用）
- render_question() - 把题目映射为输入控件描述和完成标记
- coerce_answer() - 把表单原始输入转换为存储值
"""

from dataclasses import dataclass, asdict, fields
from typing import List, Optional

from .config import ENV_SUBJECT, SCALE_MIN, SCALE_MAX

PEDAGOGY_FIELDS = ("q1", "q2", "q3", "q4", "q5")
ENVIRONMENT_FIELDS = ("q6_jobs", "q7_rooms", "q8_resources", "q9_transport", "q10_laptop")
NUMERIC_FIELDS = PEDAGOGY_FIELDS + ("q7_rooms", "q8_resources")


@dataclass(frozen=True)
class Question:
    key: str
    number: int
    text: str
    options: Optional[tuple] = None

    @property
    def kind(self):
        return "choice" if self.options else "scale"


PEDAGOGY_QUESTIONS = (
    Question("q1", 1, "Objectifs clairs au démarrage ?"),
    Question("q2", 2, "Échanges et questions favorisés ?"),
    Question("q3", 3, "Disponibilité de l'enseignant ?"),
    Question("q4", 4, "Supports structurés et utiles ?"),
    Question("q5", 5, "Évaluations pertinentes ?"),
)

ENVIRONMENT_QUESTIONS = (
    Question("q6_jobs", 1, "Débouchés GI bien connus ?", ("Oui", "Non", "Flou")),
    Question("q7_rooms", 2, "Confort et état des salles ?"),
    Question("q8_resources", 3, "Accès suffisant aux ressources ?"),
    Question("q9_transport", 4, "Moyen de transport dominant ?", ("Bus", "Voiture", "Taxi", "Moto")),
    Question("q10_laptop", 5, "Possession d'un PC portable ?", ("Oui", "Non")),
)

_QUESTIONS_BY_KEY = {q.key: q for q in PEDAGOGY_QUESTIONS + ENVIRONMENT_QUESTIONS}


@dataclass
class FeedbackData:
    """一份答卷：教学五题或环境五题，外加自由评论"""

    subject: str = ""
    q1: Optional[int] = None
    q2: Optional[int] = None
    q3: Optional[int] = None
    q4: Optional[int] = None
    q5: Optional[int] = None
    q6_jobs: Optional[str] = None
    q7_rooms: Optional[int] = None
    q8_resources: Optional[int] = None
    q9_transport: Optional[str] = None
    q10_laptop: Optional[str] = None
    comments: str = ""

    @property
    def is_environment(self):
        return self.subject == ENV_SUBJECT

    def answer_fields(self):
        return ENVIRONMENT_FIELDS if self.is_environment else PEDAGOGY_FIELDS

    def answers(self) -> List:
        return [getattr(self, name) for name in self.answer_fields()]

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, raw):
        """从 JSON 字典恢复答卷，忽略未知键"""
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in (raw or {}).items() if k in known}
        if data.get("comments") is None:
            data["comments"] = ""
        return cls(**data)


def questions_for(subject):
    """根据科目返回对应的五道题"""
    return ENVIRONMENT_QUESTIONS if subject == ENV_SUBJECT else PEDAGOGY_QUESTIONS


def get_question(key):
    try:
        return _QUESTIONS_BY_KEY[key]
    except KeyError:
        raise ValueError(f"Unknown question: {key}")


def render_question(question, value, show_error=False):
    """把题目渲染为控件描述（无状态）

    Args:
        question: Question 定义
        value: 当前答案，None 表示未作答
        show_error: 是否显示未作答提示

    Returns:
        控件描述字典，answered 为完成标记
    """
    if question.kind == "choice":
        choices = [
            {"label": option, "value": option, "selected": value == option}
            for option in question.options
        ]
    else:
        choices = [
            {"label": str(n), "value": n, "selected": value == n}
            for n in range(SCALE_MIN, SCALE_MAX + 1)
        ]

    answered = value is not None
    return {
        "key": question.key,
        "number": question.number,
        "text": question.text,
        "kind": question.kind,
        "choices": choices,
        "answered": answered,
        "error": bool(show_error and not answered),
    }


def coerce_answer(question, raw):
    """把表单原始输入转换为存储值

    空字符串或 None 表示清除答案。

    Raises:
        ValueError: 分值越界或选项不存在
    """
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        return None

    if question.kind == "choice":
        value = str(raw).strip()
        if value not in question.options:
            raise ValueError(f"Invalid option for {question.key}: {value}")
        return value

    value = int(raw)
    if not SCALE_MIN <= value <= SCALE_MAX:
        raise ValueError(f"Score out of range for {question.key}: {value}")
    return value
