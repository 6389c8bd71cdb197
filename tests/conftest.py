import sys
import os

# Add project root to sys.path so tests can import from all modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta

import numpy as np
import pytest
from hypothesis import settings

from evaluators.stress_evaluator import StressEvaluator
from models.data_models import FaceLandmarks
from session.session_manager import SessionListener
from workers.cv_worker import INIT_ERROR, INIT_SUCCESS, RESULTS

# CI profile: more examples for thorough testing
settings.register_profile("ci", max_examples=200)
# Dev profile: fewer examples for faster iteration
settings.register_profile("dev", max_examples=100)
# Default to dev profile
settings.load_profile("dev")

OPEN_EAR = 0.3
CLOSED_EAR = 0.1


def make_eye(ear, width=30.0, origin=(100.0, 100.0)):
    """构造 EAR 恰好为 ear 的 6 点眼部轮廓"""
    ox, oy = origin
    half = ear * width / 2.0
    return [
        (ox, oy),
        (ox + width / 3, oy - half),
        (ox + 2 * width / 3, oy - half),
        (ox + width, oy),
        (ox + 2 * width / 3, oy + half),
        (ox + width / 3, oy + half),
    ]


def make_observation(ear):
    return FaceLandmarks(left_eye=make_eye(ear), right_eye=make_eye(ear, origin=(200.0, 100.0)))


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, start=datetime(2026, 3, 1, 9, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeCamera:
    """按顺序返回预设帧（或抛出预设异常）的摄像头"""

    def __init__(self, frames=None, error=None):
        self.frames = list(frames or [])
        self.error = error
        self.opened = False
        self.released = False

    def open(self):
        if self.error is not None:
            raise self.error
        self.opened = True
        return self

    def read(self):
        if self.frames:
            item = self.frames.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self):
        self.released = True
        self.opened = False


class InlineWorker:
    """同步执行的推理单元：submit 时立即用预设观测计算并回调"""

    def __init__(self, observations=None, evaluator=None, ready=True, init_error=None):
        self.evaluator = evaluator or StressEvaluator()
        self.observations = list(observations or [])
        self.ready = ready
        self.init_error = init_error
        self.submitted = []

    @property
    def is_ready(self):
        return self.ready

    def start(self, on_init=None):
        if on_init is not None:
            if self.ready:
                on_init({"type": INIT_SUCCESS})
            elif self.init_error is not None:
                on_init({"type": INIT_ERROR, "error": self.init_error})

    def submit(self, frame, state, reply):
        if not self.ready:
            return False
        self.submitted.append(state)
        observation = self.observations.pop(0) if self.observations else None
        result, new_state = self.evaluator.process_frame(observation, state)
        reply({"type": RESULTS, "payload": {"result": result, "state": new_state}})
        return True


class RecordingListener(SessionListener):
    """记录所有界面事件"""

    def __init__(self):
        self.events = []

    def on_loaded(self):
        self.events.append(("loaded",))

    def on_tracking_state_changed(self, is_tracking):
        self.events.append(("tracking", is_tracking))

    def on_frame_result(self, eye_fatigue, stress_level):
        self.events.append(("frame", eye_fatigue, stress_level))

    def on_intervention_triggered(self):
        self.events.append(("intervention",))

    def on_camera_error(self, reason):
        self.events.append(("camera_error", reason))

    def count(self, name):
        return sum(1 for e in self.events if e[0] == name)


class MemoryHistoryStore:
    """内存版历史存储"""

    def __init__(self):
        self.sessions = []

    def append(self, summary):
        self.sessions.append(summary)
        return len(self.sessions)

    def list_all(self):
        return sorted(self.sessions, key=lambda s: s.timestamp, reverse=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def history():
    return MemoryHistoryStore()
