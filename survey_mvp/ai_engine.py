"""
AI 分析引擎模块

功能职责：
- analyze_feedback(data) - 调用 Qwen 对一份答卷和自由评论生成分析摘要
- 完整的容错和重试机制
- 详细的日志记录
"""

import time
import logging
from dashscope import Generation
from .config import DASHSCOPE_API_KEY, AI_MAX_RETRIES, AI_RETRY_DELAY, AI_MODEL, ENV_SUBJECT
from .questions import questions_for

logger = logging.getLogger(__name__)


def build_prompt(data):
    """根据答卷构造分析提示词（法语，面向教务质量委员会）"""
    subject = "Environnement & logistique" if data.subject == ENV_SUBJECT else data.subject
    lines = [
        "Tu es analyste qualité pour le département Génie Industriel (ISGI).",
        f"Évaluation reçue pour : {subject}.",
        "Réponses :",
    ]
    for question in questions_for(data.subject):
        answer = getattr(data, question.key)
        suffix = "/5" if question.kind == "scale" and answer is not None else ""
        lines.append(f"- {question.text} {answer if answer is not None else '-'}{suffix}")

    comments = (data.comments or "").strip()
    lines.append(f"Observations libres : {comments if comments else '(aucune)'}")
    lines.append(
        "Rédige une synthèse courte : (1) sentiment général, (2) points à améliorer, "
        "(3) une action concrète recommandée."
    )
    return "\n".join(lines)


def analyze_feedback(data):
    """调用 Qwen 文本大模型生成答卷分析

    Args:
        data: FeedbackData

    Returns:
        (analysis, error, elapsed_ms):
            - 成功: (分析文本, None, 耗时ms)
            - 失败: (None, 错误信息, 0)
    """
    if not DASHSCOPE_API_KEY:
        error_msg = "API Key 未配置"
        logger.error(f"❌ {error_msg}")
        return None, error_msg, 0

    messages = [{"role": "user", "content": build_prompt(data)}]

    for attempt in range(AI_MAX_RETRIES):
        try:
            if attempt == 0:
                logger.info(f"🔍 正在为 {data.subject} 调用 Qwen 分析...")
            else:
                logger.info(f"🔄 重试第 {attempt} 次调用 Qwen...")

            start_time = time.time()

            response = Generation.call(
                model=AI_MODEL,
                messages=messages,
                api_key=DASHSCOPE_API_KEY,
                result_format="message",
            )

            if response.status_code == 200:
                analysis = response.output.choices[0].message.content
                elapsed_ms = int((time.time() - start_time) * 1000)
                logger.info(f"✅ AI 分析生成成功（耗时 {elapsed_ms}ms）")
                return str(analysis), None, elapsed_ms

            error_msg = response.message if hasattr(response, "message") else "未知错误"
            logger.warning(f"⚠️ AI 调用失败 (HTTP {response.status_code}): {error_msg}")

            if attempt < AI_MAX_RETRIES - 1:
                time.sleep(AI_RETRY_DELAY)
                continue
            return None, f"AI 调用失败: {error_msg}", 0

        except Exception as e:
            logger.warning(f"⚠️ AI 调用异常 ({type(e).__name__}): {str(e)}")

            if attempt < AI_MAX_RETRIES - 1:
                logger.info(f"   将在 {AI_RETRY_DELAY} 秒后重试...")
                time.sleep(AI_RETRY_DELAY)
                continue
            return None, "AI 分析暂时不可用", 0

    return None, "AI 分析暂时不可用", 0
