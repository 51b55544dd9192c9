"""
提交流程模块 - 保存 → 分析 → 通知 → 清除草稿

功能职责：
- submit_feedback() - 按固定顺序执行提交流程，不向学生暴露任何后端错误
- flush_pending() - 补交本地待补交队列中的答卷

后端保存失败时答卷进入本地待补交队列，返回 PENDING；
分析、通知、入队和清除草稿只尽力而为，失败只记录日志。
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .ai_engine import analyze_feedback
from .admin_notifier import send_analysis_to_admin
from .data_manager import save_feedback

logger = logging.getLogger(__name__)


class SubmissionStatus(str, enum.Enum):
    CONFIRMED = "confirmed"  # 已写入后端
    PENDING = "pending"  # 已存入本地队列，等待补交


@dataclass
class SubmissionResult:
    status: SubmissionStatus
    subject: str
    feedback_id: Optional[str] = None
    analysis: Optional[str] = None
    notified: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def confirmed(self):
        return self.status == SubmissionStatus.CONFIRMED


def submit_feedback(
    data,
    student_id,
    draft_store,
    pending_queue,
    save=save_feedback,
    analyze=analyze_feedback,
    notify=send_analysis_to_admin,
):
    """执行提交流程（严格串行）

    Args:
        data: 已填满五题的 FeedbackData
        student_id: 学生记录 ID，可能为空（身份初始化失败）
        draft_store: DraftStore
        pending_queue: PendingQueue
        save / analyze / notify: 后端、分析、通知协作方

    Returns:
        SubmissionResult
    """
    result = SubmissionResult(status=SubmissionStatus.PENDING, subject=data.subject)

    # 1. 保存答卷
    try:
        result.feedback_id = save(data, student_id)
        result.status = SubmissionStatus.CONFIRMED
    except Exception as e:
        logger.error(f"❌ 答卷保存失败，转入本地队列: {str(e)}")
        result.errors.append(f"save: {str(e)}")
        try:
            pending_queue.enqueue(data)
        except Exception as e:
            logger.error(f"❌ 写入本地待补交队列失败，答卷丢失: {str(e)}")
            result.errors.append(f"queue: {str(e)}")

    # 2. AI 分析
    try:
        analysis, error, _ = analyze(data)
        result.analysis = analysis
        if error:
            result.errors.append(f"analyze: {error}")
    except Exception as e:
        logger.error(f"❌ AI 分析异常: {str(e)}")
        result.errors.append(f"analyze: {str(e)}")

    # 3. 通知管理员
    try:
        success, msg = notify(data, result.analysis)
        result.notified = success
        if not success:
            result.errors.append(f"notify: {msg}")
    except Exception as e:
        logger.error(f"❌ 管理员通知异常: {str(e)}")
        result.errors.append(f"notify: {str(e)}")

    # 4. 清除草稿
    try:
        draft_store.clear()
    except Exception as e:
        logger.error(f"❌ 清除草稿失败: {str(e)}")
        result.errors.append(f"clear: {str(e)}")

    logger.info(
        f"✅ 提交流程结束: {data.subject} -> {result.status.value}"
        + (f"（{len(result.errors)} 个后台错误）" if result.errors else "")
    )
    return result


def flush_pending(student_id, pending_queue, save=save_feedback):
    """补交本地队列中的答卷

    Returns:
        成功补交的份数
    """
    queued = pending_queue.items()
    if not queued or not student_id:
        return 0

    remaining = []
    flushed = 0
    for data in queued:
        try:
            save(data, student_id)
            flushed += 1
        except Exception as e:
            logger.warning(f"⚠️ 补交失败，保留在队列中: {data.subject} ({str(e)})")
            remaining.append(data)

    pending_queue.replace(remaining)
    logger.info(f"✅ 已补交 {flushed} 份答卷，剩余 {len(remaining)} 份")
    return flushed
