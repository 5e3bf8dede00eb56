from dataclasses import dataclass
import argparse
import sys

DEFAULT_TIMEOUT = 3600
PLATFORMS = ("auto", "freebsd", "linux")


@dataclass(frozen=True)
class Configuration:
    """Settings for one run of the daemon, fixed once parsed."""
    timeout: int = DEFAULT_TIMEOUT
    ignored: tuple = ()
    verbose: bool = True
    dry_run: bool = False
    once: bool = False
    platform: str = "auto"

    def is_ignored(self, device):
        # fragments match anywhere in the device name
        return any(fragment in device for fragment in self.ignored)


def timeout_value(value):
    try:
        timeout = int(value)
    except (TypeError, ValueError):
        timeout = 0
    if timeout < 1:
        print("Invalid timeout %r, using %d seconds" % (value, DEFAULT_TIMEOUT), file=sys.stderr)
        return DEFAULT_TIMEOUT
    return timeout


def build_parser():
    parser = argparse.ArgumentParser(prog="spindown-timer",
                                     description="Monitors drive I/O and forces HDD spindown after a given idle period")
    parser.add_argument("--timeout", "-t", help="Number of seconds to wait for I/O before considering a drive as idle", type=timeout_value, default=DEFAULT_TIMEOUT)
    parser.add_argument("--ignore", "-i", help="Ignores the given drive and never issue a spindown for it", action="append", default=[], metavar="DRIVE")
    parser.add_argument("--quiet", "-q", help="Quiet mode. Outputs are suppressed if flag is present", default=False, action="store_true")
    parser.add_argument("--dry-run", "-d", help="Dry run. No actual spindown is performed", default=False, action="store_true")
    parser.add_argument("--once", "-o", help="Check once and exit instead of looping", default=False, action="store_true")
    parser.add_argument("--platform", "-p", help="Statistics and standby tools to use", choices=PLATFORMS, default="auto")
    return parser


def parse_args(argv=None):
    args = build_parser().parse_args(argv)
    return Configuration(timeout=args.timeout,
                         ignored=tuple(d for d in args.ignore if d),
                         verbose=not args.quiet,
                         dry_run=args.dry_run,
                         once=args.once,
                         platform=args.platform)
