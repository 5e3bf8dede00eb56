#!/usr/bin/env python3
from drivestats import IostatStats, DiskstatsStats, StatsUnavailable, ParseError, SamplingInterrupted
from drivestats import list_devices, sample, classify
from drivepower import CamcontrolStandby, LinuxStandby, spin_down
from spindown_config import parse_args
from enum import Enum
import logging
import signal
import sys
import threading

logger = logging.getLogger(__name__)


class CycleState(Enum):
    WAITING = "waiting"
    ACTING = "acting"


class CycleController:
    """
    Enumerate, sample, classify and spin down, over and over.

    The controller sits in WAITING while the sampler blocks for the idle
    window and in ACTING while idle drives are handed to the executor one by
    one. A stop request is honoured between cycles or during the window,
    never while drives are being spun down.
    """

    def __init__(self, config, stats, standby, stop=None):
        self.config = config
        self.stats = stats
        self.standby = standby
        self.stop = stop if stop is not None else threading.Event()
        self.state = CycleState.WAITING

    def run_cycle(self):
        drives = list_devices(self.stats, self.config)
        logger.info("Waiting %d seconds for I/O on the following drives: %s",
                    self.config.timeout, " ".join(drives))

        try:
            active = sample(self.stats, self.config.timeout, stop=self.stop)
        except ParseError as e:
            logger.warning("Could not parse I/O statistics, skipping this cycle: %s", e)
            return []

        self.state = CycleState.ACTING
        try:
            return [spin_down(drive, self.config.dry_run, self.standby)
                    for drive in classify(drives, active)]
        finally:
            self.state = CycleState.WAITING

    def run(self):
        while not self.stop.is_set():
            try:
                self.run_cycle()
            except SamplingInterrupted:
                break
            if self.config.once:
                break


def platform_tools(name):
    if name == "auto":
        name = "linux" if sys.platform.startswith("linux") else "freebsd"
    if name == "linux":
        return DiskstatsStats(), LinuxStandby()
    return IostatStats(), CamcontrolStandby()


def configure_logging(verbose):
    # quiet mode still shows fatal errors
    logging.basicConfig(stream=sys.stdout, format="%(message)s",
                        level=logging.INFO if verbose else logging.ERROR, force=True)


def main(argv=None, stats=None, standby=None):
    config = parse_args(argv)
    configure_logging(config.verbose)

    if stats is None or standby is None:
        default_stats, default_standby = platform_tools(config.platform)
        stats = stats if stats is not None else default_stats
        standby = standby if standby is not None else default_standby

    if config.dry_run:
        logger.info("Performing a dry run...")

    controller = CycleController(config, stats, standby)

    def stop_handler(sig, frame):
        logger.info("Exiting ...")
        controller.stop.set()

    previous = {sig: signal.signal(sig, stop_handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        controller.run()
    except StatsUnavailable as e:
        logger.error("I/O statistics unavailable: %s", e)
        return 1
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
