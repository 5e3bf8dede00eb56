import re
import subprocess
import time


class StatsUnavailable(Exception):
    """The I/O statistics facility could not be invoked at all."""


class ParseError(ValueError):
    """The I/O statistics facility answered with output we do not understand."""


class SamplingInterrupted(Exception):
    """A shutdown was requested while waiting out the sampling window."""


def _unique(names):
    return list(dict.fromkeys(names))


def parse_extended_stats(output, header="extended device statistics"):
    """
    Return the devices listed in the last statistics block of iostat output.

    iostat prints one block per sample: the header line, a row of column
    titles, then one row per device. Only the last block holds the delta for
    the sampling window, earlier blocks are totals since boot.
    """
    lines = output.splitlines()
    marks = [n for n, line in enumerate(lines) if header in line]
    if not marks:
        raise ParseError("No '%s' header found in iostat output" % header)
    rows = lines[marks[-1] + 2:]
    return _unique(line.split()[0] for line in rows if line.strip())


class IostatStats:
    """FreeBSD iostat(8), drives named adaN."""
    prefix = "ada"
    header = "extended device statistics"

    def __init__(self, binary="iostat", poll=1.0):
        self.binary = binary
        self.poll = poll

    def matches(self, device):
        return device.startswith(self.prefix)

    def list(self):
        try:
            proc = subprocess.run([self.binary, "-x"], stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        except OSError as e:
            raise StatsUnavailable("Cannot run %s: %s" % (self.binary, e)) from e
        output = proc.stdout.decode(errors="replace")
        if proc.returncode != 0:
            raise StatsUnavailable("%s exited with %d: %s" % (self.binary, proc.returncode, output.strip()))
        return _unique(line.split()[0] for line in output.splitlines() if line.strip())

    def sample(self, duration, stop=None):
        # -z drops devices without I/O, 2 samples leaves the delta in the second block
        cmd = [self.binary, "-x", "-z", "-d", str(duration), "2"]
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        except OSError as e:
            raise StatsUnavailable("Cannot run %s: %s" % (self.binary, e)) from e

        while True:
            try:
                stdout, _ = proc.communicate(timeout=self.poll)
                break
            except subprocess.TimeoutExpired:
                if stop is not None and stop.is_set():
                    proc.terminate()
                    proc.communicate()
                    raise SamplingInterrupted()

        # Ctrl-C reaches iostat too, don't mistake its exit for bad output
        if stop is not None and stop.is_set():
            raise SamplingInterrupted()
        output = stdout.decode(errors="replace")
        if proc.returncode != 0:
            raise ParseError("%s exited with %d: %s" % (self.binary, proc.returncode, output.strip()))
        return parse_extended_stats(output, header=self.header)


class DiskstatsStats:
    """Linux /proc/diskstats, whole sdX disks."""
    prefix = "sd"
    pattern = re.compile(r"^sd[a-z]+$")

    # columns after major, minor and name, see Documentation/admin-guide/iostats.rst
    fields = [
        'reads_completed',
        'reads_merged',
        'sectors_read',
        'time_reading',
        'writes_completed',
        'writes_merged',
        'sectors_written',
        'time_writing',
        'ios_in_progress',
        'time_ios',
        'time_ios_weighted',
    ]

    def __init__(self, path="/proc/diskstats"):
        self.path = path

    def matches(self, device):
        return self.pattern.match(device) is not None

    def _snapshot(self):
        try:
            with open(self.path, "r") as f:
                lines = f.readlines()
        except OSError as e:
            raise StatsUnavailable("Cannot read %s: %s" % (self.path, e)) from e

        stats = {}
        for line in lines:
            data = line.split()
            if not data:
                continue
            if len(data) < 3 + len(self.fields):
                raise ParseError("Number of fields does not match data input for %r, kernel update?" % line.strip())
            try:
                stats[data[2]] = dict(zip(self.fields, (int(v) for v in data[3:3 + len(self.fields)])))
            except ValueError as e:
                raise ParseError("Bad counter in %r" % line.strip()) from e
        return stats

    def list(self):
        return list(self._snapshot())

    def sample(self, duration, stop=None):
        before = self._snapshot()
        if stop is None:
            time.sleep(duration)
        elif stop.wait(duration):
            raise SamplingInterrupted()
        after = self._snapshot()

        active = []
        for name, now in after.items():
            then = before.get(name)
            if then is None \
                    or now['reads_completed'] != then['reads_completed'] \
                    or now['writes_completed'] != then['writes_completed'] \
                    or now['ios_in_progress'] != 0:
                active.append(name)
        return active


def list_devices(stats, config):
    """Drives following the platform naming convention, minus ignored ones."""
    try:
        devices = stats.list()
    except ParseError as e:
        # without an inventory there is nothing to watch
        raise StatsUnavailable("Cannot list drives: %s" % e) from e
    return _unique(d for d in devices if stats.matches(d) and not config.is_ignored(d))


def sample(stats, duration, stop=None):
    """Block for one window and return the drives that saw I/O in it."""
    return _unique(stats.sample(duration, stop=stop))


def classify(all_devices, active):
    active = set(active)
    return [d for d in all_devices if d not in active]
