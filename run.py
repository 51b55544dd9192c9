#!/usr/bin/env python3
"""
Diagnostic ISGI 启动脚本

用法:
    python run.py
"""

from survey_mvp.app import app

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=False)
