"""
管理员通知模块 - 消息推送

功能职责：
- send_analysis_to_admin() - 把答卷摘要和 AI 分析推送到管理员群机器人
- 错误处理和日志记录
"""

import requests
import logging
from .config import ADMIN_WEBHOOK, ADMIN_NOTIFY_TIMEOUT, ENV_SUBJECT
from .questions import questions_for

logger = logging.getLogger(__name__)


def build_message(data, analysis):
    """构造 markdown 消息体"""
    title = "Cadre de Vie" if data.subject == ENV_SUBJECT else data.subject
    answers = "\n".join(
        f"> {q.text} **{getattr(data, q.key) if getattr(data, q.key) is not None else '-'}**"
        for q in questions_for(data.subject)
    )
    content = f"### 【Diagnostic ISGI】{title}\n{answers}\n"
    if data.comments:
        content += f"\nObservations : {data.comments}\n"
    content += f"\n**Analyse IA**\n{analysis if analysis else 'Analyse indisponible.'}"
    return {"msgtype": "markdown", "markdown": {"content": content}}


def send_analysis_to_admin(data, analysis, webhook=None):
    """发送答卷分析到管理员群

    Args:
        data: FeedbackData
        analysis: AI 分析文本，None 表示分析失败
        webhook: 群机器人地址，默认取配置

    Returns:
        (success: bool, message: str)
    """
    webhook = webhook or ADMIN_WEBHOOK
    if not webhook:
        logger.warning("⚠️ 管理员通知地址未配置，跳过推送")
        return False, "通知地址未配置"

    try:
        msg_data = build_message(data, analysis)

        logger.info(f"📤 正在推送答卷分析: {data.subject}")

        response = requests.post(webhook, json=msg_data, timeout=ADMIN_NOTIFY_TIMEOUT)
        result = response.json()

        if result.get("errcode") == 0:
            logger.info("✅ 管理员推送成功")
            return True, "已发送到管理员群"
        else:
            error_msg = result.get("errmsg", "未知错误")
            logger.error(f"❌ 管理员推送失败: {error_msg}")
            return False, error_msg

    except requests.exceptions.Timeout:
        error_msg = "请求超时"
        logger.error(f"❌ 管理员推送超时: {error_msg}")
        return False, error_msg

    except requests.exceptions.RequestException as e:
        error_msg = f"网络错误: {str(e)}"
        logger.error(f"❌ 管理员推送错误: {error_msg}")
        return False, error_msg

    except Exception as e:
        error_msg = str(e)
        logger.error(f"❌ 管理员推送异常: {error_msg}")
        return False, error_msg
