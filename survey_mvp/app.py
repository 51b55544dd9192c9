"""
Flask 应用主入口 - 所有路由和 API 端点

功能职责：
- 初始化 Flask 应用和数据库
- 通过 device_id Cookie 识别设备，每台设备一个向导控制器
- 定义页面路由（/, /action）、扫码接口（/api/scan）、状态和统计接口、CSV 导出
"""

import uuid
import logging
import threading
from collections import OrderedDict

from flask import Flask, request, render_template_string, redirect, jsonify

from .config import SCHOOL_NAME, ENV_SUBJECT, MAX_ACTIVE_DEVICES
from .database import init_db
from .data_manager import download_history_csv
from .local_store import LocalStorage
from .qr_scanner import decode_image
from . import wizard
from .wizard import WizardController

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

DEVICE_COOKIE = "device_id"
DEVICE_COOKIE_MAX_AGE = 3600 * 24 * 365

# 初始化 Flask 应用
app = Flask(__name__)
init_db()

# 最近活跃设备的控制器（LRU），被淘汰的设备下次访问时从本地存储和数据库重建
_controllers = OrderedDict()
_controllers_lock = threading.Lock()


def get_controller():
    """取当前设备的控制器

    没有 Cookie 的 GET 请求只拿到临时控制器，不登记、不创建学生记录；
    身份推迟到该设备第一次操作时解析。
    """
    device_id = request.cookies.get(DEVICE_COOKIE)
    if not device_id:
        device_id = str(uuid.uuid4())
        request.environ["survey.new_device_id"] = device_id
        controller = WizardController(
            LocalStorage.for_device(device_id), device_id=device_id, defer_identity=True
        )
        if request.method == "GET":
            return controller
        return _register(device_id, controller)

    with _controllers_lock:
        controller = _controllers.get(device_id)
        if controller is not None:
            _controllers.move_to_end(device_id)
            return controller

    controller = WizardController(LocalStorage.for_device(device_id), device_id=device_id)
    return _register(device_id, controller)


def _register(device_id, controller):
    with _controllers_lock:
        # 并发请求可能已为同一设备建好控制器
        controller = _controllers.setdefault(device_id, controller)
        _controllers.move_to_end(device_id)
        while len(_controllers) > MAX_ACTIVE_DEVICES:
            evicted, _ = _controllers.popitem(last=False)
            logger.info(f"♻️ 控制器已淘汰: {evicted}")
    return controller


@app.after_request
def set_device_cookie(response):
    device_id = request.environ.get("survey.new_device_id")
    if device_id:
        response.set_cookie(DEVICE_COOKIE, device_id, max_age=DEVICE_COOKIE_MAX_AGE, httponly=True)
    return response


PAGE = '''
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0, maximum-scale=1.0, user-scalable=no">
    <title>Diagnostic ISGI｜{{ school }}</title>
    <style>
        * { margin:0; padding:0; box-sizing:border-box; font-family:"Inter","Segoe UI",sans-serif; }
        body { padding:20px; background:#0f172a; color:#e2e8f0; }
        .container { max-width:720px; margin:0 auto; }
        h2 { color:#818cf8; margin-bottom:20px; font-size:26px; text-transform:uppercase; }
        .card { background:#1e293b; border-radius:16px; padding:20px; margin-bottom:15px; }
        .grid { display:grid; grid-template-columns:repeat(auto-fill,minmax(200px,1fr)); gap:12px; }
        .btn { background:#4f46e5; color:white; border:none; border-radius:12px; padding:14px; font-size:15px; font-weight:600; width:100%; cursor:pointer; }
        .btn:disabled { background:#064e3b; color:#6ee7b7; cursor:default; }
        .btn-secondary { background:#334155; }
        .btn-submit { background:#059669; }
        .banner { background:#7f1d1d; color:#fecaca; padding:12px; border-radius:12px; margin-bottom:15px; }
        .question.error { border:1px solid #ef4444; }
        .choices label { margin-right:12px; }
        .bar { height:6px; background:#334155; border-radius:3px; margin-top:10px; }
        .bar div { height:6px; background:#6366f1; border-radius:3px; }
        .sidebar { background:#020617; border:1px solid #1e293b; border-radius:16px; padding:20px; margin-bottom:20px; }
        textarea, input[type=password] { width:100%; padding:12px; border-radius:12px; border:1px solid #334155; background:#020617; color:#e2e8f0; }
    </style>
</head>
<body>
<div class="container">
    <form method="post" action="/action" style="display:inline-block;margin-right:10px;"><input type="hidden" name="action" value="home">
        <button class="btn btn-secondary" style="width:auto;margin-bottom:15px;">🎓 ISGI</button>
    </form>
    <form method="post" action="/action" style="display:inline-block;"><input type="hidden" name="action" value="sidebar">
        <button class="btn btn-secondary" style="width:auto;margin-bottom:15px;">☰ Console Admin</button>
    </form>

    {% if v.sidebar_open %}
    <div class="sidebar">
        {% if not v.admin_authenticated %}
            <h3>Accès Sécurisé</h3>
            {% if v.admin_error %}<div class="banner">{{ v.admin_error }}</div>{% endif %}
            <form method="post" action="/action">
                <input type="hidden" name="action" value="admin_login">
                <input type="password" name="password" placeholder="Mot de passe confidentiel">
                <button class="btn" style="margin-top:10px;">Authentification</button>
            </form>
        {% else %}
            <p>Évaluations : <b>{{ v.stats['global'].totalFeedbacks }}</b> · Modules : <b>{{ v.stats['global'].uniqueSubjects }}</b>
            · Satisfaction globale : <b>{{ v.stats['global'].globalAverageScore }}%</b></p>
            <p>PC portable : <b>{{ v.stats.environment.laptop.rate }}%</b></p>
            <ul>
            {% for mode, count in v.stats.environment.transport.items() %}<li>{{ mode }} : {{ count }}</li>{% else %}<li>Aucune donnée de transport.</li>{% endfor %}
            </ul>
            <ul>
            {% for item in v.stats.subjects %}<li>{{ item.subject }} : {{ item.count }}</li>{% else %}<li>Aucun module évalué.</li>{% endfor %}
            </ul>
            <a href="/export" class="btn" style="display:block;text-align:center;margin-top:10px;text-decoration:none;">📋 Export CSV</a>
            <form method="post" action="/action"><input type="hidden" name="action" value="admin_logout">
                <button class="btn btn-secondary" style="margin-top:10px;">Déconnexion</button></form>
        {% endif %}
    </div>
    {% endif %}

    {% if v.step == "welcome" %}
        <h2>Diagnostic ISGI<br>Génie Industriel</h2>
        <form method="post" action="/action"><input type="hidden" name="action" value="start">
            <button class="btn">Initialiser l'Audit</button></form>

    {% elif v.step in ("hub", "modules") %}
        <div class="card">
            <h2>{{ v.progress.done }} / {{ v.progress.total }}</h2>
            <div class="bar"><div style="width:{{ v.progress.percentage }}%"></div></div>
        </div>
        <form method="post" action="/action"><input type="hidden" name="action" value="scanner">
            <button class="btn btn-secondary" style="margin-bottom:15px;">📷 Scanner un module</button></form>
        {% if v.step == "hub" %}
        <form method="post" action="/action"><input type="hidden" name="action" value="modules">
            <button class="btn btn-secondary" style="margin-bottom:15px;">📚 Modules académiques</button></form>
        {% else %}
        <form method="post" action="/action"><input type="hidden" name="action" value="hub">
            <button class="btn btn-secondary" style="margin-bottom:15px;">← Hub</button></form>
        {% endif %}
        <div class="grid">
        {% for s in v.subjects %}
            <form method="post" action="/action">
                <input type="hidden" name="action" value="subject"><input type="hidden" name="subject" value="{{ s.name }}">
                <button class="btn {% if s.status == 'À faire' %}btn-secondary{% endif %}" {% if s.disabled %}disabled{% endif %}>{{ s.status }} · {{ s.name }}</button>
            </form>
        {% endfor %}
        </div>
        <div class="grid" style="margin-top:15px;">
            <form method="post" action="/action"><input type="hidden" name="action" value="env">
                <button class="btn" {% if v.env_done %}disabled{% endif %}>Environnement · {{ "Audit Clôturé" if v.env_done else "Audit Infrastructure & Logistique" }}</button></form>
            {% if v.next_subject %}
            <form method="post" action="/action"><input type="hidden" name="action" value="next">
                <button class="btn">Prochaine Étape · {{ v.next_subject }}</button></form>
            {% endif %}
        </div>

    {% elif v.step == "scanner" %}
        <div class="card">
            <h2>📷 Scanner Module ISGI</h2>
            {% if v.scanner_error %}
                <div class="banner">{{ v.scanner_error }}</div>
            {% else %}
                <input type="file" id="frame" accept="image/*" capture="environment">
                <p id="scan-status" style="margin-top:10px;"></p>
            {% endif %}
        </div>
        <form method="post" action="/action"><input type="hidden" name="action" value="close_scanner">
            <button class="btn btn-secondary">Fermer</button></form>
        <script>
        const input = document.getElementById('frame');
        if (input) input.addEventListener('change', async () => {
            const data = new FormData();
            data.append('frame', input.files[0]);
            const result = await (await fetch('/api/scan', {method: 'POST', body: data})).json();
            if (result.success) window.location.href = '/';
            else document.getElementById('scan-status').innerText = 'Aucun module reconnu, réessayez.';
        });
        </script>

    {% elif v.step in ("form_pedagogy", "form_env") %}
        <form method="post" action="/action"><input type="hidden" name="action" value="hub">
            <button class="btn btn-secondary" style="width:auto;">← Retour</button></form>
        <h2 style="margin-top:15px;">{{ "Cadre de Vie" if v.subject == env_subject else v.subject }}</h2>
        <div class="card">{{ v.completion.completed }} / {{ v.completion.total }} · {{ v.completion.percentage }}%
            <div class="bar"><div style="width:{{ v.completion.percentage }}%"></div></div></div>
        {% if v.show_validation_errors %}<div class="banner">Veuillez répondre aux 5 questions avant de soumettre.</div>{% endif %}
        {% for q in v.questions %}
        <form method="post" action="/action" class="card question {% if q.error %}error{% endif %}">
            <input type="hidden" name="action" value="answer"><input type="hidden" name="field" value="{{ q.key }}">
            <p>{{ q.number }}. {{ q.text }}</p>
            <div class="choices">
            {% for c in q.choices %}
                <label><input type="radio" name="value" value="{{ c.value }}" {% if c.selected %}checked{% endif %} onchange="this.form.submit()"> {{ c.label }}</label>
            {% endfor %}
            </div>
        </form>
        {% endfor %}
        <form method="post" action="/action" class="card">
            <input type="hidden" name="action" value="submit">
            <label>Observations libres</label>
            <textarea name="comments" rows="4" placeholder="Suggestions d'amélioration...">{{ v.comments }}</textarea>
            <button class="btn btn-submit" style="margin-top:10px;">Soumettre le Diagnostic</button>
        </form>

    {% elif v.step == "thanks" %}
        <div class="card">
            <h2>Diagnostic Validé</h2>
            <p>JETON : {{ v.last_submission_id or "en attente" }}</p>
        </div>
        <form method="post" action="/action"><input type="hidden" name="action" value="thanks_hub">
            <button class="btn">Retour au Hub</button></form>
    {% endif %}
</div>
</body>
</html>
'''


# ====== 前端路由 ======

@app.route("/")
def home():
    """当前步骤页面"""
    controller = get_controller()
    return render_template_string(PAGE, v=controller.view(), school=SCHOOL_NAME, env_subject=ENV_SUBJECT)


SIMPLE_ACTIONS = {
    "home": wizard.GoHome,
    "start": wizard.Start,
    "scanner": wizard.OpenScanner,
    "close_scanner": wizard.CloseScanner,
    "modules": wizard.OpenModules,
    "next": wizard.OpenNextSubject,
    "env": wizard.OpenEnvironment,
    "hub": wizard.BackToHub,
    "thanks_hub": wizard.ReturnToHub,
    "sidebar": wizard.ToggleSidebar,
    "admin_logout": wizard.AdminLogout,
}


@app.route("/action", methods=["POST"])
def action():
    """表单动作 → 向导事件"""
    controller = get_controller()
    name = request.form.get("action", "")

    try:
        if name in SIMPLE_ACTIONS:
            controller.dispatch(SIMPLE_ACTIONS[name]())
        elif name == "subject":
            controller.dispatch(wizard.OpenSubject(request.form.get("subject", "")))
        elif name == "answer":
            controller.answer(request.form.get("field", ""), request.form.get("value"))
        elif name == "comments":
            controller.dispatch(wizard.SetComments(request.form.get("comments", "")))
        elif name == "submit":
            if "comments" in request.form:
                controller.dispatch(wizard.SetComments(request.form["comments"]))
            controller.dispatch(wizard.Submit())
        elif name == "admin_login":
            controller.dispatch(wizard.AdminLogin(request.form.get("password", "")))
        else:
            return jsonify({"success": False, "msg": f"未知操作: {name}"}), 400
    except ValueError as e:
        logger.warning(f"⚠️ 无效输入: {str(e)}")
        return jsonify({"success": False, "msg": str(e)}), 400

    return redirect("/")


# ====== 核心 API ======

@app.route("/api/state")
def api_state():
    return jsonify(get_controller().view())


@app.route("/api/scan", methods=["POST"])
def api_scan():
    """手机拍照上传一帧，识别课程二维码"""
    controller = get_controller()
    frame = request.files.get("frame")
    if frame is None:
        return jsonify({"success": False, "msg": "缺少图片"}), 400

    try:
        payload = decode_image(frame.stream)
    except Exception as e:
        logger.warning(f"⚠️ 图片无法解析: {str(e)}")
        payload = None

    matched = bool(payload) and controller.scan_payload(payload)
    return jsonify(
        {
            "success": matched,
            "payload": payload,
            "subject": controller.state.draft.subject if matched else None,
        }
    )


# ====== 统计和导出 ======

@app.route("/api/stats")
def api_stats():
    """管理面板统计（需先通过口令）"""
    controller = get_controller()
    if not controller.state.admin_authenticated:
        return jsonify({"error": "Accès refusé"}), 403
    return jsonify(controller.refresh_stats())


@app.route("/export")
def export_csv():
    """CSV 导出接口"""
    controller = get_controller()
    if not controller.state.admin_authenticated:
        return jsonify({"error": "Accès refusé"}), 403

    try:
        filename, csv_data = download_history_csv(
            subject=request.args.get("subject"),
            date_str=request.args.get("date"),
        )
        return csv_data, 200, {
            "Content-Type": "text/csv; charset=utf-8",
            "Content-Disposition": f'attachment; filename="{filename}"',
        }

    except Exception as e:
        logger.error(f"❌ CSV 导出失败: {str(e)}")
        return jsonify({"error": str(e)}), 500


# ====== 应用启动 ======

if __name__ == "__main__":
    logger.info("\n🚀 Diagnostic ISGI 已启动！")
    app.run(host="0.0.0.0", port=5000, debug=False)
