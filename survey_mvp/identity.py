"""
身份模块 - 设备标识和匿名学生记录

功能职责：
- get_or_create_device_id() - 读取或生成本设备的稳定标识
- init_student() - 用设备标识换取后端学生记录 ID
"""

import uuid
import logging

from .config import DEVICE_KEY
from .database import session_scope
from .models import Student

logger = logging.getLogger(__name__)


def get_or_create_device_id(storage):
    """读取本地设备标识，不存在时生成并保存

    Args:
        storage: LocalStorage 实例

    Returns:
        设备标识字符串
    """
    device_id = storage.get_item(DEVICE_KEY)
    if not device_id:
        device_id = str(uuid.uuid4())
        storage.set_item(DEVICE_KEY, device_id)
        logger.info(f"🆕 已生成设备标识: {device_id}")
    return device_id


def init_student(device_id):
    """根据设备标识获取学生 ID，首次访问时创建学生记录

    Args:
        device_id: 设备标识

    Returns:
        学生记录 ID
    """
    with session_scope() as db:
        student = db.query(Student).filter(Student.device_id == device_id).first()
        if student:
            return student.id

        student = Student(device_id=device_id)
        db.add(student)
        db.flush()
        logger.info(f"✅ 新学生记录已创建: {student.id}")
        return student.id
