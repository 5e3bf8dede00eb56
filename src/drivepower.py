from binascii import unhexlify, hexlify
from dataclasses import dataclass
import logging
import subprocess

logger = logging.getLogger(__name__)


class StandbyError(Exception):
    pass


class PowerCondition:
    # (power condition, modifier) for SCSI START STOP UNIT
    STANDBY_Z = (0x3, 0x0)

    # hdparm
    STANDBY = "-y"


@dataclass(frozen=True)
class SpindownOutcome:
    device: str
    simulated: bool
    success: bool
    detail: str = ""


def _run(cmd):
    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
    except OSError as e:
        raise StandbyError("Cannot run %s: %s" % (cmd[0], e)) from e
    output = proc.stdout.decode(errors="replace").strip()
    if proc.returncode != 0:
        raise StandbyError("%s exited with %d: %s" % (cmd[0], proc.returncode, output))
    return output


class CamcontrolStandby:
    """camcontrol(8) on FreeBSD, takes the bare device name."""

    def __init__(self, binary="camcontrol"):
        self.binary = binary

    def __call__(self, device):
        _run([self.binary, "standby", device])


class LinuxStandby:
    """
    Puts a Linux disk into standby.

    SATA disks go through hdparm, SAS disks get a START STOP UNIT with the
    standby power condition sent over SG_IO. The transport is taken from
    smartctl, which only prints "Transport protocol" for SCSI devices.
    """

    def __call__(self, device):
        path = "/dev/" + device
        if self.is_scsi(path):
            self._set_start_stop(path, *PowerCondition.STANDBY_Z)
        else:
            _run(["hdparm", PowerCondition.STANDBY, path])

    def is_scsi(self, path):
        try:
            data = subprocess.run(['smartctl', '-i', path], stdout=subprocess.PIPE).stdout
        except OSError as e:
            raise StandbyError("Cannot run smartctl: %s" % e) from e
        return b"Transport protocol" in data

    def _raw_cmd(self, path, cmd, length=32):
        import sgio

        with open(path, "rb") as f:
            rv = bytearray(length)
            rv_length = sgio.execute(f, cmd, None, rv, max_sense_data_length=length)
            logger.debug("Received: [%d] %s", rv_length, hexlify(rv[:rv_length]))
            return rv[:rv_length]

    def _set_start_stop(self, path, pc, pm):
        cmd = start_stop_unit(pc, pm)
        logger.debug("%s <- %s", path, hexlify(cmd))
        try:
            self._raw_cmd(path, cmd)
        except _scsi_errors() as e:
            raise StandbyError("START STOP UNIT failed on %s: %s" % (path, e)) from e


def _scsi_errors():
    # sgio reports rejected commands with its own exception types
    import sgio
    return (OSError, sgio.CheckConditionError, sgio.UnspecifiedError)


def start_stop_unit(pc, pm):
    """CDB for SCSI START STOP UNIT with power condition ``pc`` and modifier ``pm``."""
    return unhexlify("1B00000%1X%1X000" % (pm, pc))


def spin_down(device, dry_run, standby):
    """Issue ``standby`` for ``device`` unless dry-running. Never raises."""
    if dry_run:
        logger.info("Spun down idle drive: %s (dry run)", device)
        return SpindownOutcome(device, simulated=True, success=True)

    try:
        standby(device)
    except (StandbyError, OSError) as e:
        logger.warning("Failed to spin down %s: %s", device, e)
        return SpindownOutcome(device, simulated=False, success=False, detail=str(e))

    logger.info("Spun down idle drive: %s", device)
    return SpindownOutcome(device, simulated=False, success=True)
