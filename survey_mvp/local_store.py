"""
本地存储模块 - 设备级键值存储、答卷草稿和待补交队列

功能职责：
- LocalStorage - 每台设备一个 JSON 文件的键值存储
- DraftStore - 保存/恢复/清除正在填写的答卷
- PendingQueue - 后端保存失败的答卷暂存在本地，等待补交
"""

import os
import json
import logging

from .config import DEVICE_STORAGE_DIR, DRAFT_KEY, PENDING_KEY
from .questions import FeedbackData

logger = logging.getLogger(__name__)


class LocalStorage:
    """JSON 文件键值存储，读写方式与浏览器 localStorage 一致"""

    def __init__(self, path):
        self.path = path

    @classmethod
    def for_device(cls, device_id, base_dir=DEVICE_STORAGE_DIR):
        os.makedirs(base_dir, exist_ok=True)
        return cls(os.path.join(base_dir, f"{device_id}.json"))

    def _load(self):
        if not os.path.exists(self.path):
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except Exception as e:
            logger.error(f"❌ 读取本地存储失败 ({self.path}): {str(e)}")
            return {}

    def _dump(self, items):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(items, f, ensure_ascii=False, indent=2)

    def get_item(self, key, default=None):
        return self._load().get(key, default)

    def set_item(self, key, value):
        items = self._load()
        items[key] = value
        self._dump(items)

    def remove_item(self, key):
        items = self._load()
        if key in items:
            del items[key]
            self._dump(items)


class DraftStore:
    """答卷草稿：单个键，每次编辑都整体覆盖"""

    def __init__(self, storage, key=DRAFT_KEY):
        self.storage = storage
        self.key = key

    def load(self):
        raw = self.storage.get_item(self.key)
        if not raw:
            return FeedbackData()
        try:
            return FeedbackData.from_dict(raw)
        except TypeError as e:
            logger.warning(f"⚠️ 草稿格式无效，已忽略: {str(e)}")
            return FeedbackData()

    def save(self, data):
        self.storage.set_item(self.key, data.to_dict())

    def clear(self):
        self.storage.remove_item(self.key)
        logger.info("ℹ️ 草稿已清除")


class PendingQueue:
    """后端暂不可用时的本地待补交队列"""

    def __init__(self, storage, key=PENDING_KEY):
        self.storage = storage
        self.key = key

    def items(self):
        return [FeedbackData.from_dict(raw) for raw in self.storage.get_item(self.key, [])]

    def enqueue(self, data):
        queued = self.storage.get_item(self.key, [])
        queued.append(data.to_dict())
        self.storage.set_item(self.key, queued)
        logger.info(f"📥 答卷已加入本地待补交队列: {data.subject} (共 {len(queued)} 份)")

    def replace(self, items):
        if items:
            self.storage.set_item(self.key, [item.to_dict() for item in items])
        else:
            self.storage.remove_item(self.key)

    def __len__(self):
        return len(self.storage.get_item(self.key, []))
