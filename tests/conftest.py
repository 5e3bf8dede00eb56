"""
Pytest configuration and shared fixtures.
"""
import logging
import pytest
from drivepower import StandbyError
from spindown_config import Configuration


IOSTAT_LIST = """\
                        extended device statistics  
device       r/s     w/s     kr/s     kw/s  ms/r  ms/w  ms/o  ms/t qlen  %b  
ada0           0       1      0.3     11.2     3     1     0     1    0   0 
ada1           0       1      0.3     11.1     4     1     0     1    0   0 
ada2           0       1      0.3     11.2     3     1     0     1    0   0 
da0            0       0      0.0      0.0     1     0     0     1    0   0 
pass0          0       0      0.0      0.0     0     0     0     0    0   0 
"""

# ada0 only shows up in the totals since boot, ada1 in the window, ada2 in both
IOSTAT_TWO_SAMPLES = """\
                        extended device statistics  
device       r/s     w/s     kr/s     kw/s  ms/r  ms/w  ms/o  ms/t qlen  %b  
ada0           3       1     40.1     12.0     1     2     0     1    0   1 
ada2           1       4      2.0     30.5     2     1     0     1    0   0 
                        extended device statistics  
device       r/s     w/s     kr/s     kw/s  ms/r  ms/w  ms/o  ms/t qlen  %b  
ada1           0       2      0.0      8.0     0     1     0     1    0   0 
ada2           0       1      0.0      4.0     0     1     0     1    0   0 
"""


class FakeStats:
    """Statistics facility double answering with fixed device lists."""
    prefix = "ada"

    def __init__(self, devices=(), active=(), error=None, on_sample=None):
        self.devices = list(devices)
        self.active = list(active)
        self.error = error
        self.on_sample = on_sample
        self.durations = []

    def matches(self, device):
        return device.startswith(self.prefix)

    def list(self):
        return list(self.devices)

    def sample(self, duration, stop=None):
        self.durations.append(duration)
        if self.on_sample is not None:
            self.on_sample(stop)
        if self.error is not None:
            raise self.error
        return list(self.active)


class RecordingStandby:
    """Standby command double that records calls and fails on demand."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    def __call__(self, device):
        self.calls.append(device)
        if device in self.failing:
            raise StandbyError("camcontrol exited with 1: %s: device busy" % device)


@pytest.fixture
def config():
    return Configuration(timeout=5, once=True)


@pytest.fixture
def standby():
    return RecordingStandby()


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
