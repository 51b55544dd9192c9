"""
配置模块 - 环境变量加载和常量定义

功能职责：
- 加载 .env 环境变量
- 定义问卷常量（课程清单、环境审计哨兵值、评分范围）
- 配置 AI API 密钥、管理员通知地址和数据库路径
"""

import os
from dotenv import load_dotenv

# 加载 .env 文件
load_dotenv()

# ====== API 和认证配置 ======
DASHSCOPE_API_KEY = os.getenv("DASHSCOPE_API_KEY")

# 管理员面板口令（仅前端门槛，不是安全边界）
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "ADMIN2026")

# ====== 管理员通知配置 ======
ADMIN_WEBHOOK = os.getenv("ADMIN_WEBHOOK", "")
ADMIN_NOTIFY_TIMEOUT = 10

# ====== 应用配置 ======
MAX_ACTIVE_DEVICES = int(os.getenv("MAX_ACTIVE_DEVICES", "500"))  # 内存中保留的设备控制器上限
SCHOOL_NAME = "ISGI Génie Industriel"
DATA_DIR = os.getenv("SURVEY_DATA_DIR", "data")
DEVICE_STORAGE_DIR = os.path.join(DATA_DIR, "devices")

# ====== 数据库配置 ======
DATABASE_URL = os.getenv(
    "DATABASE_URL", f"sqlite:///{os.path.join(DATA_DIR, 'survey.db')}"
)

# ====== 问卷配置 ======
SUBJECTS = [
    "Algèbre 1",
    "Algorithmique et Programmation C",
    "Analyse 1",
    "Anglais 1",
    "Circuits Électriques",
    "Circuits Électroniques",
    "Environnement Informatique",
    "Français 1",
    "Introduction au Génie Industriel",
    "Mécanique générale",
    "Probabilités et Statistiques",
]
ENV_SUBJECT = "ENVIRONNEMENT_GLOBAL"
QUESTIONS_PER_FORM = 5
SCALE_MIN = 1
SCALE_MAX = 5

# ====== 本地存储键 ======
DRAFT_KEY = "isgi_feedback_draft_v2"
DEVICE_KEY = "isgi_device_id"
PENDING_KEY = "isgi_pending_feedbacks"

# ====== AI 调用参数 ======
AI_MAX_RETRIES = 2
AI_RETRY_DELAY = 1
AI_MODEL = "qwen-plus"

# ====== 扫码配置 ======
CAMERA_INDEX = int(os.getenv("CAMERA_INDEX", "0"))
SCAN_FRAME_INTERVAL = 1 / 30  # 秒，约一帧
SCAN_MAX_READ_FAILURES = 30  # 连续读帧失败次数上限，超过视为摄像头断开

# 创建数据目录
os.makedirs(DEVICE_STORAGE_DIR, exist_ok=True)
