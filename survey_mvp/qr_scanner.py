"""
扫码模块 - 摄像头逐帧读取二维码并映射到课程

功能职责：
- decode_frame() - 对一帧 BGR 图像解码二维码
- decode_image() - 对上传的照片解码（手机端拍照上传）
- match_subject() - 把二维码内容映射到已知课程
- QRScanner - 摄像头采集循环，关闭时释放摄像头
"""

import time
import logging

import cv2
import numpy as np
from PIL import Image

from .config import SUBJECTS, CAMERA_INDEX, SCAN_FRAME_INTERVAL, SCAN_MAX_READ_FAILURES

logger = logging.getLogger(__name__)

CAMERA_DENIED_MSG = (
    "Accès caméra refusé. Veuillez autoriser l'accès pour scanner les codes modules."
)
CAMERA_LOST_MSG = "Caméra déconnectée. Veuillez relancer le scanner."

_detector = cv2.QRCodeDetector()


def decode_frame(frame):
    """对一帧图像解码二维码

    Args:
        frame: BGR numpy 数组

    Returns:
        二维码文本，未识别时为 None
    """
    if frame is None:
        return None
    try:
        payload, _, _ = _detector.detectAndDecode(frame)
    except cv2.error as e:
        logger.debug(f"二维码解码失败: {str(e)}")
        return None
    return payload or None


def decode_image(fp):
    """解码上传的照片

    Args:
        fp: 文件路径或文件对象

    Returns:
        二维码文本，未识别时为 None
    """
    image = Image.open(fp).convert("RGB")
    frame = cv2.cvtColor(np.asarray(image), cv2.COLOR_RGB2BGR)
    return decode_frame(frame)


def match_subject(payload, subjects=SUBJECTS):
    """返回二维码内容中包含的第一个课程名"""
    if not payload:
        return None
    for subject in subjects:
        if subject in payload:
            return subject
    return None


class QRScanner:
    """摄像头扫码器

    start() 获取摄像头，tick() 读取并解码一帧，close() 释放摄像头。
    解码失败静默跳过，下一帧继续尝试；连续读帧失败超过上限时视为摄像头断开。
    """

    def __init__(
        self,
        on_scan,
        camera_index=CAMERA_INDEX,
        capture_factory=cv2.VideoCapture,
        frame_interval=SCAN_FRAME_INTERVAL,
        max_read_failures=SCAN_MAX_READ_FAILURES,
    ):
        self.on_scan = on_scan
        self.camera_index = camera_index
        self.capture_factory = capture_factory
        self.frame_interval = frame_interval
        self.max_read_failures = max_read_failures
        self.capture = None
        self.error = None
        self.active = False
        self.read_failures = 0

    def start(self):
        """打开摄像头

        Returns:
            bool: 摄像头是否可用；不可用时 error 为提示文本
        """
        try:
            self.capture = self.capture_factory(self.camera_index)
            opened = self.capture.isOpened()
        except Exception as e:
            logger.error(f"❌ 打开摄像头异常: {str(e)}")
            opened = False

        if not opened:
            self.error = CAMERA_DENIED_MSG
            self._release()
            logger.error("❌ 摄像头不可用或权限被拒绝")
            return False

        self.error = None
        self.active = True
        logger.info(f"📷 摄像头已启动 (index={self.camera_index})")
        return True

    def tick(self):
        """读取一帧并尝试解码

        Returns:
            解码出的文本，未识别时为 None
        """
        if not self.active:
            return None

        ok, frame = self.capture.read()
        if not ok:
            self.read_failures += 1
            if self.read_failures >= self.max_read_failures:
                logger.error(f"❌ 连续 {self.read_failures} 帧读取失败，摄像头已断开")
                self.error = CAMERA_LOST_MSG
                self.close()
            return None
        self.read_failures = 0

        payload = decode_frame(frame)
        if payload:
            logger.info(f"🔎 识别到二维码: {payload}")
            self.on_scan(payload)
        return payload

    def run(self, max_frames=None):
        """逐帧循环，直到 close()、摄像头断开或达到 max_frames"""
        frames = 0
        while self.active:
            if max_frames is not None and frames >= max_frames:
                break
            self.tick()
            frames += 1
            if self.active and self.frame_interval:
                time.sleep(self.frame_interval)
        return frames

    def _release(self):
        if self.capture is not None:
            self.capture.release()
            self.capture = None

    def close(self):
        self.active = False
        self._release()
        logger.info("📷 摄像头已释放")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
