"""
survey_mvp - ISGI 学生满意度问卷系统

模块化架构：
- config: 配置和常量
- database / models: SQLAlchemy 引擎和 students / feedbacks 表
- questions: 题目定义和渲染
- local_store: 设备本地存储（草稿、待补交队列）
- identity: 设备标识和匿名学生记录
- wizard: 问卷向导状态机和控制器
- qr_scanner: 课程二维码扫码
- ai_engine: AI 答卷分析
- admin_notifier: 管理员群推送
- submission: 提交流程
- data_manager: 数据保存、统计和导出
- app: Flask 应用主体
"""

__version__ = "1.0.0"
