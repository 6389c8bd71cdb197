"""眼疲劳压力追踪系统入口文件（命令行版）"""

import argparse
import logging
import sys
import threading

from capture.camera_source import CameraSource
from config import load_config
from evaluators.stress_evaluator import StressEvaluator
from models.errors import ModelInitError
from session.session_manager import SessionListener, SessionManager
from storage.history_store import SessionHistoryStore
from workers.cv_worker import CVWorker

# 等待模型加载的最长时间（秒）
_MODEL_LOAD_TIMEOUT = 60.0


def format_duration(seconds: int) -> str:
    """将秒数格式化为 "Xm Ys"。"""
    return f"{seconds // 60}m {seconds % 60}s"


class ConsoleListener(SessionListener):
    """在终端输出会话事件"""

    def __init__(self, critical_stress_threshold=15):
        self.critical_stress_threshold = critical_stress_threshold
        self.finished = threading.Event()

    def on_loaded(self):
        print("模型加载完成")

    def on_tracking_state_changed(self, is_tracking):
        print("开始追踪" if is_tracking else "追踪已停止")
        if not is_tracking:
            self.finished.set()

    def on_frame_result(self, eye_fatigue, stress_level):
        status = "眼疲劳" if eye_fatigue else "正常"
        print(f"压力 {stress_level}/{self.critical_stress_threshold}  状态: {status}")

    def on_intervention_triggered(self):
        print("⚠️ 检测到高压力状态，建议立即休息：深呼吸 2 分钟或做桌面伸展")

    def on_camera_error(self, reason):
        print(f"摄像头错误: {reason}")


class TrackingSystem:
    """命令行版追踪系统，组装推理线程、会话管理器和历史存储。"""

    def __init__(self, config_path=None, db_path=None):
        self.config = load_config(config_path)
        if db_path is not None:
            self.config["history_db_path"] = db_path

        self.history_store = SessionHistoryStore(self.config["history_db_path"])
        self.listener = ConsoleListener(self.config["critical_stress_threshold"])
        self.worker = CVWorker(evaluator=StressEvaluator.from_config(self.config))
        self.manager = SessionManager(
            worker=self.worker,
            history_store=self.history_store,
            camera_factory=lambda: CameraSource.from_config(self.config),
            listener=self.listener,
            critical_stress_threshold=self.config["critical_stress_threshold"],
            capture_interval=self.config["capture_interval"],
        )

    def run(self):
        """加载模型并运行一次会话，直到 Ctrl+C 或触发干预。"""
        self.worker.start(on_init=self.manager.handle_worker_init)
        print("正在加载模型...")
        if not self.worker.wait_ready(_MODEL_LOAD_TIMEOUT) and self.worker.init_error is None:
            print("模型加载超时")
            self.shutdown()
            return 1

        try:
            started = self.manager.start()
        except ModelInitError as e:
            print(f"模型加载失败: {e}")
            self.shutdown()
            return 1
        if not started:
            self.shutdown()
            return 1

        try:
            while not self.listener.finished.wait(0.5):
                pass
        except KeyboardInterrupt:
            pass
        finally:
            summary = self.manager.stop()
            self.shutdown()

        if summary is not None:
            print(f"本次会话时长 {format_duration(summary.duration_seconds)}")
        return 0

    def shutdown(self):
        """停止推理线程、关闭数据库"""
        self.worker.terminate()
        self.history_store.close()


def print_history(history_store):
    """按时间倒序打印历史会话。"""
    sessions = history_store.list_all()
    if not sessions:
        print("暂无会话记录")
        return

    for session in sessions:
        print(
            f"{session.timestamp:%Y-%m-%d %H:%M}  "
            f"时长 {format_duration(session.duration_seconds)}  "
            f"峰值压力 {session.peak_stress}  "
            f"眼疲劳警告 {session.eye_fatigue_warning_count}"
        )


def build_parser():
    parser = argparse.ArgumentParser(description="眼疲劳压力追踪系统")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON 配置文件路径",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="会话历史数据库路径",
    )
    parser.add_argument(
        "--history",
        action="store_true",
        help="打印历史会话后退出",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="输出调试日志",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.history:
        config = load_config(args.config)
        store = SessionHistoryStore(args.db or config["history_db_path"])
        try:
            print_history(store)
        finally:
            store.close()
        return 0

    system = TrackingSystem(config_path=args.config, db_path=args.db)
    return system.run()


if __name__ == "__main__":
    sys.exit(main())
