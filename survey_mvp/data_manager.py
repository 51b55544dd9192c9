"""
数据管理模块 - 答卷保存、历史查询、统计汇总、导出

功能职责：
- save_feedback() - 保存一份答卷
- get_history() - 查询某学生已提交的科目
- get_global_stats() / get_environment_stats() / get_subjects_breakdown() - 管理面板统计
- load_feedback_rows() - 按科目/日期筛选
- records_to_csv() / download_history_csv() - 转换为 CSV 格式
"""

import csv
import logging
from datetime import datetime
from io import StringIO

from .config import ENV_SUBJECT, SCALE_MAX
from .database import session_scope
from .models import Feedback
from .questions import NUMERIC_FIELDS, PEDAGOGY_FIELDS, ENVIRONMENT_FIELDS

logger = logging.getLogger(__name__)

CSV_FIELDNAMES = (
    ["id", "student_id", "subject"]
    + list(PEDAGOGY_FIELDS)
    + list(ENVIRONMENT_FIELDS)
    + ["comments", "created_at"]
)


def save_feedback(data, student_id):
    """保存一份答卷

    Args:
        data: FeedbackData
        student_id: 学生记录 ID

    Returns:
        新答卷 ID

    Raises:
        ValueError: 学生 ID 为空（身份初始化失败）
    """
    if not student_id:
        raise ValueError("Student not initialized")

    values = data.to_dict()
    values["comments"] = values.get("comments") or None

    with session_scope() as db:
        feedback = Feedback(student_id=student_id, **values)
        db.add(feedback)
        db.flush()
        feedback_id = feedback.id

    logger.info(f"✅ 答卷保存成功: {feedback_id} ({data.subject})")
    return feedback_id


def _row_to_dict(feedback):
    row = {name: getattr(feedback, name) for name in CSV_FIELDNAMES}
    row["created_at"] = feedback.created_at.isoformat() if feedback.created_at else ""
    return row


def get_history(student_id):
    """查询学生的提交历史（按时间正序）

    Returns:
        [{"id", "subject", "created_at"}, ...]
    """
    if not student_id:
        return []

    with session_scope() as db:
        feedbacks = (
            db.query(Feedback)
            .filter(Feedback.student_id == student_id)
            .order_by(Feedback.created_at)
            .all()
        )
        return [
            {
                "id": f.id,
                "subject": f.subject,
                "created_at": f.created_at.isoformat() if f.created_at else "",
            }
            for f in feedbacks
        ]


def load_feedback_rows(subject=None, date_str=None):
    """按条件读取答卷

    Args:
        subject: 科目名称，为None表示不筛选
        date_str: 日期（格式 YYYY-MM-DD），为None表示不筛选

    Returns:
        答卷字典列表
    """
    with session_scope() as db:
        query = db.query(Feedback)
        if subject:
            query = query.filter(Feedback.subject == subject)
        rows = [_row_to_dict(f) for f in query.order_by(Feedback.created_at).all()]

    if date_str:
        rows = [r for r in rows if r["created_at"].startswith(date_str)]
        logger.info(f"按日期筛选: {date_str} -> {len(rows)} 条记录")

    return rows


def get_global_stats():
    """全局统计

    满意度 = 所有已填数值题（q1..q5, q7, q8）的平均分 / 满分，百分比取整。

    Returns:
        {"totalFeedbacks", "uniqueSubjects", "globalAverageScore"}
    """
    with session_scope() as db:
        feedbacks = db.query(Feedback).all()
        subjects = {f.subject for f in feedbacks if f.subject != ENV_SUBJECT}
        scores = [
            getattr(f, name)
            for f in feedbacks
            for name in NUMERIC_FIELDS
            if getattr(f, name) is not None
        ]

    average = round(sum(scores) / len(scores) / SCALE_MAX * 100) if scores else 0
    return {
        "totalFeedbacks": len(feedbacks),
        "uniqueSubjects": len(subjects),
        "globalAverageScore": average,
    }


def get_environment_stats():
    """环境审计统计：交通方式分布和笔记本电脑拥有率

    Returns:
        {"transport": {方式: 次数}, "laptop": {"yes", "no", "rate"}}
    """
    with session_scope() as db:
        env_rows = db.query(Feedback).filter(Feedback.subject == ENV_SUBJECT).all()
        transports = [f.q9_transport for f in env_rows]
        laptops = [f.q10_laptop for f in env_rows]

    transport = {}
    for mode in transports:
        if mode:
            transport[mode] = transport.get(mode, 0) + 1

    yes = sum(1 for answer in laptops if answer == "Oui")
    no = sum(1 for answer in laptops if answer == "Non")
    rate = round(yes / len(laptops) * 100) if laptops else 0

    return {"transport": transport, "laptop": {"yes": yes, "no": no, "rate": rate}}


def get_subjects_breakdown():
    """各科目提交数量（不含环境审计），按数量倒序

    Returns:
        [{"subject", "count"}, ...]
    """
    with session_scope() as db:
        subjects = [
            f.subject
            for f in db.query(Feedback).filter(Feedback.subject != ENV_SUBJECT).all()
        ]

    counts = {}
    for subject in subjects:
        counts[subject] = counts.get(subject, 0) + 1

    return [
        {"subject": subject, "count": count}
        for subject, count in sorted(counts.items(), key=lambda x: (-x[1], x[0]))
    ]


def records_to_csv(rows):
    """将答卷转换为 CSV 字符串

    Args:
        rows: 答卷字典列表

    Returns:
        CSV 字符串（表头一行 + 每份答卷一行）
    """
    csv_output = StringIO()
    writer = csv.DictWriter(csv_output, fieldnames=CSV_FIELDNAMES, extrasaction="ignore")
    writer.writeheader()

    for row in rows:
        writer.writerow({k: ("" if v is None else v) for k, v in row.items()})

    logger.info(f"✅ 成功转换 {len(rows)} 条记录为 CSV")
    return csv_output.getvalue()


def download_history_csv(subject=None, date_str=None):
    """导出全部历史

    Returns:
        (filename, csv_text)
    """
    rows = load_feedback_rows(subject=subject, date_str=date_str)

    if date_str:
        filename = f"isgi_feedbacks_{date_str}.csv"
    elif subject:
        safe_subject = subject.replace("/", "_").replace("\\", "_").replace(" ", "_")
        filename = f"isgi_feedbacks_{safe_subject}.csv"
    else:
        filename = f"isgi_feedbacks_{datetime.now().strftime('%Y%m%d')}.csv"

    return filename, records_to_csv(rows)
