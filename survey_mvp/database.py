"""
数据库模块 - SQLAlchemy 引擎和会话

功能职责：
- 定义 ORM 模型共用的 Base
- 根据 DATABASE_URL 创建引擎和 SessionLocal
- session_scope() 事务上下文
- init_db() 建表
"""

import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

# ORM 模型基类
Base = declarative_base()

SessionLocal = sessionmaker(autocommit=False, autoflush=False)
engine = None


def configure_engine(url=DATABASE_URL):
    """创建引擎并绑定到 SessionLocal

    Args:
        url: SQLAlchemy 数据库地址

    Returns:
        新的 Engine
    """
    global engine
    connect_args = {}
    if url.startswith("sqlite"):
        # 统计查询会在线程池中并发执行
        connect_args["check_same_thread"] = False

    engine = create_engine(url, connect_args=connect_args)
    SessionLocal.configure(bind=engine)
    logger.info(f"ℹ️ 数据库引擎已配置: {engine.url.render_as_string(hide_password=True)}")
    return engine


def init_db():
    """创建所有数据表（已存在则跳过）"""
    from . import models  # noqa: F401  注册模型到 Base.metadata

    Base.metadata.create_all(bind=engine)
    logger.info("✅ 数据表已就绪")


@contextmanager
def session_scope():
    """提供一个事务范围内的会话，正常退出时提交，异常时回滚"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


configure_engine()
