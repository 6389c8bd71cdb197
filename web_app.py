"""Flask Web 接口 - 眼疲劳压力追踪系统"""

import atexit
import datetime
import logging
import threading

from flask import Flask, jsonify, request

from capture.camera_source import CameraSource
from config import load_config
from evaluators.stress_evaluator import StressEvaluator
from models.errors import ModelInitError
from session.session_manager import SessionListener, SessionManager
from storage.history_store import SessionHistoryStore
from workers.cv_worker import get_shared_worker, shutdown_shared_worker

logger = logging.getLogger(__name__)

app = Flask(__name__)

# 压力值超过该值时界面显示为"偏高"
ELEVATED_STRESS_LEVEL = 5


class WebTrackingSystem(SessionListener):
    """Web 版追踪系统，维护界面状态、干预弹窗和事件日志。"""

    MAX_LOG_ENTRIES = 200

    def __init__(self, config=None, worker=None, history_store=None, camera_factory=None, clock=None):
        self.config = config or load_config()
        self.worker = worker or get_shared_worker(StressEvaluator.from_config(self.config))
        self.history_store = history_store or SessionHistoryStore(self.config["history_db_path"])

        manager_kwargs = {}
        if clock is not None:
            manager_kwargs["clock"] = clock
        self.manager = SessionManager(
            worker=self.worker,
            history_store=self.history_store,
            camera_factory=camera_factory or (lambda: CameraSource.from_config(self.config)),
            listener=self,
            critical_stress_threshold=self.config["critical_stress_threshold"],
            capture_interval=self.config["capture_interval"],
            **manager_kwargs,
        )

        self.is_loaded = self.worker.is_ready
        self.intervention_active = False
        self._logs = []
        self._log_count = 0
        self._log_lock = threading.Lock()
        self.worker.start(on_init=self.manager.handle_worker_init)

    # ---- 界面边界事件 ----

    def on_loaded(self):
        self.is_loaded = True
        self._add_log("info", "模型加载完成")

    def on_tracking_state_changed(self, is_tracking):
        self._add_log("info", "开始追踪" if is_tracking else "追踪已停止")

    def on_frame_result(self, eye_fatigue, stress_level):
        if eye_fatigue:
            self._add_log("warning", f"眼疲劳检测中 (压力={stress_level})")

    def on_intervention_triggered(self):
        self.intervention_active = True
        self._add_log("danger", "⚠️ 检测到高压力状态，已暂停追踪，建议休息")

    def on_camera_error(self, reason):
        self._add_log("danger", reason)

    # ---- 操作 ----

    def start(self):
        """开始追踪，返回 (是否成功, 提示信息)。"""
        if self.manager.is_tracking:
            return False, "已在追踪中"
        try:
            ok = self.manager.start()
        except ModelInitError as e:
            logger.error("模型加载失败: %s", e)
            self._add_log("danger", f"模型加载失败: {e}")
            return False, f"模型加载失败: {e}"
        if ok:
            return True, "追踪已开始"
        if self.manager.camera_error:
            return False, self.manager.camera_error
        return False, "模型尚未加载完成"

    def stop(self):
        return self.manager.stop()

    def dismiss_intervention(self):
        """关闭干预弹窗，不影响追踪状态和干预标记"""
        self.intervention_active = False

    def get_data(self):
        manager = self.manager
        runtime = manager.runtime
        stress_level = manager.stress_level
        return {
            "is_loaded": self.is_loaded,
            "is_tracking": manager.is_tracking,
            "stress_level": stress_level,
            "stress_status": "elevated" if stress_level > ELEVATED_STRESS_LEVEL else "optimal",
            "critical_stress_threshold": manager.critical_stress_threshold,
            "eye_fatigue": manager.eye_fatigue,
            "eye_fatigue_warnings": runtime.eye_fatigue_warnings if runtime else 0,
            "peak_stress": runtime.peak_stress if runtime else 0,
            "intervention_active": self.intervention_active,
            "camera_error": manager.camera_error,
        }

    def get_history(self):
        return [_summary_to_dict(s) for s in self.history_store.list_all()]

    def _add_log(self, level, message):
        """添加一条系统日志。level: info / warning / danger"""
        entry = {
            "time": datetime.datetime.now().strftime("%H:%M:%S"),
            "level": level,
            "message": message,
        }
        with self._log_lock:
            self._logs.append(entry)
            self._log_count += 1
            if len(self._logs) > self.MAX_LOG_ENTRIES:
                self._logs = self._logs[-self.MAX_LOG_ENTRIES:]

    def get_logs(self, since=0):
        """获取日志，since 为已读取的日志总数；返回 (新日志, 累计日志总数)。"""
        with self._log_lock:
            dropped = self._log_count - len(self._logs)
            return self._logs[max(0, since - dropped):], self._log_count


def _summary_to_dict(summary):
    return {
        "id": summary.id,
        "timestamp": summary.timestamp.isoformat(),
        "duration_seconds": summary.duration_seconds,
        "peak_stress": summary.peak_stress,
        "eye_fatigue_warning_count": summary.eye_fatigue_warning_count,
    }


# 全局追踪系统实例，首次请求时创建
_system = None
_system_lock = threading.Lock()


def get_system():
    global _system
    with _system_lock:
        if _system is None:
            _system = WebTrackingSystem()
        return _system


@atexit.register
def _shutdown():
    if _system is not None:
        _system.stop()
    shutdown_shared_worker()


# ---- Flask 路由 ----

@app.route("/api/start", methods=["POST"])
def api_start():
    ok, message = get_system().start()
    return jsonify({"success": ok, "message": message})


@app.route("/api/stop", methods=["POST"])
def api_stop():
    summary = get_system().stop()
    if summary is None:
        return jsonify({"success": False, "message": "当前没有进行中的追踪"})
    return jsonify({"success": True, "message": "追踪已停止", "session": _summary_to_dict(summary)})


@app.route("/api/data")
def api_data():
    return jsonify(get_system().get_data())


@app.route("/api/intervention/dismiss", methods=["POST"])
def api_dismiss_intervention():
    get_system().dismiss_intervention()
    return jsonify({"success": True})


@app.route("/api/history")
def api_history():
    return jsonify({"sessions": get_system().get_history()})


@app.route("/api/logs")
def api_logs():
    since = request.args.get("since", 0, type=int)
    logs, total = get_system().get_logs(since)
    return jsonify({"logs": logs, "total": total})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
