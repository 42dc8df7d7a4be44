import argparse
import sys
from pathlib import Path

from pitflash import __version__
from pitflash.config import settings
from pitflash.domain import DeviceInfo, FileInfo, FirmwareInfo, PlatformInfo
from pitflash.exceptions import PitflashError
from pitflash.flash import (
    HeimdallSession,
    close_pc_screen_command,
    detect_command,
    download_pit_command,
    print_pit_command,
)
from pitflash.flash import adb
from pitflash.logging import LoggerFactory, setup_logging
from pitflash.package import (
    build_package,
    extract_package,
    normalize_pit_path,
    quick_convert,
)
from pitflash.pit import read_pit_file
from pitflash.workspace import FlashWorkspace

log = LoggerFactory.for_system()


def parse_device(text):
    parts = text.split(":")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(
            f"device must be MANUFACTURER:PRODUCT:NAME, got {text!r}"
        )
    return DeviceInfo(*parts)


def parse_binding(text):
    partition_id, sep, path = text.partition("=")
    if not sep or not partition_id.isdigit() or not path:
        raise argparse.ArgumentTypeError(f"file must be ID=PATH, got {text!r}")
    return FileInfo(int(partition_id), path)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="pitflash", description="Samsung PIT and Heimdall firmware package tool"
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    print_pit = subparsers.add_parser("print-pit", help="Print a local PIT file")
    print_pit.add_argument("pit")

    extract = subparsers.add_parser("extract", help="Show a firmware package's contents")
    extract.add_argument("package")

    build = subparsers.add_parser("build", help="Build a firmware package")
    build.add_argument("--pit", required=True)
    build.add_argument("--name", required=True)
    build.add_argument("--fw-version", dest="fw_version", required=True)
    build.add_argument("--platform-name", default="")
    build.add_argument("--platform-version", default="")
    build.add_argument("--developer", action="append", default=[])
    build.add_argument("--device", action="append", type=parse_device, default=[])
    build.add_argument("--url", default="")
    build.add_argument("--donate-url", default="")
    build.add_argument("--repartition", action="store_true")
    build.add_argument("--no-reboot", action="store_true")
    build.add_argument("--file", action="append", type=parse_binding, default=[])
    build.add_argument("-o", "--output", required=True)

    convert = subparsers.add_parser("quick-convert", help="Package loose Samsung images")
    convert.add_argument("--pit", required=True)
    convert.add_argument("files", nargs="+")
    convert.add_argument("-o", "--output", required=True)

    flash = subparsers.add_parser("flash", help="Flash a firmware package with Heimdall")
    flash.add_argument("package")
    flash.add_argument("--resume", action="store_true", default=None)
    flash.add_argument("--verbose", action="store_true", default=None)
    flash.add_argument("--dry-run", action="store_true", help="Print the command only")

    for name, help_text in (
        ("detect", "Detect a device in download mode"),
        ("close-pc-screen", "Close the device's PC screen"),
    ):
        utility = subparsers.add_parser(name, help=help_text)
        utility.add_argument("--resume", action="store_true", default=None)
        utility.add_argument("--verbose", action="store_true", default=None)

    download = subparsers.add_parser("download-pit", help="Download the device PIT")
    download.add_argument("output")
    download.add_argument("--resume", action="store_true", default=None)
    download.add_argument("--verbose", action="store_true", default=None)

    device_pit = subparsers.add_parser("device-pit", help="Print the device PIT via Heimdall")
    device_pit.add_argument("--file", default=None, help="Print a local PIT instead")
    device_pit.add_argument("--resume", action="store_true", default=None)
    device_pit.add_argument("--verbose", action="store_true", default=None)

    adb_parser = subparsers.add_parser("adb", help="Device utility commands")
    adb_parser.add_argument(
        "action",
        choices=[
            "reboot-recovery",
            "reboot-download",
            "reboot-fastboot",
            "shutdown",
            "devices",
            "ls",
            "logcat",
            "check-root",
            "getprop",
            "install",
            "shell",
        ],
    )
    adb_parser.add_argument("params", nargs="*")
    return parser


def _resume(args):
    if getattr(args, "resume", None) is None:
        return settings.get_bool("resume")
    return args.resume


def _verbose(args):
    if getattr(args, "verbose", None) is None:
        return settings.get_bool("verbose_output")
    return args.verbose


def run_heimdall(command):
    session = HeimdallSession(on_output=lambda text: print(text, end="", flush=True))
    outcome = session.run(command)
    # Sticky no-reboot seeds the next run's resume default.
    if outcome.succeeded:
        settings.set_bool("resume", session.monitor.resume)
    if outcome.message:
        print(outcome.message)
    return 0 if outcome.succeeded else 1


def cmd_print_pit(args):
    print(read_pit_file(args.pit).describe())
    return 0


def cmd_extract(args):
    with extract_package(args.package) as package:
        firmware = package.firmware_info
        print(f"Name: {firmware.name}")
        print(f"Version: {firmware.version}")
        print(f"Platform: {firmware.platform.name} {firmware.platform.version}".rstrip())
        for developer in firmware.developers:
            print(f"Developer: {developer}")
        for device in firmware.devices:
            print(f"Device: {device.format_label()}")
        print(f"PIT: {Path(firmware.pit_filename).name}")
        print(f"Repartition: {'yes' if firmware.repartition else 'no'}")
        print(f"No reboot: {'yes' if firmware.no_reboot else 'no'}")
        for file_info in firmware.file_infos:
            print(f"  {file_info.partition_id}: {Path(file_info.filename).name}")
    return 0


def cmd_build(args):
    firmware = FirmwareInfo(
        name=args.name,
        version=args.fw_version,
        platform=PlatformInfo(args.platform_name, args.platform_version),
        developers=tuple(args.developer),
        url=args.url,
        donate_url=args.donate_url,
        devices=tuple(args.device),
        pit_filename=args.pit,
        repartition=args.repartition,
        no_reboot=args.no_reboot,
        file_infos=tuple(args.file),
    )
    path = build_package(args.output, firmware)
    print(f"Package created: {path}")
    return 0


def cmd_quick_convert(args):
    result = quick_convert(args.pit, args.files)
    if result.is_empty:
        log.error(result.failure_message())
        return 1
    for path in result.unmatched:
        print(f"Unmatched: {path}")
    path = build_package(args.output, result.firmware)
    print(f"Package created: {path}")
    return 0


def cmd_flash(args):
    workspace = FlashWorkspace()
    try:
        workspace.load_package(args.package)
        workspace.load_for_flash()
        command = workspace.flash_command(resume=_resume(args), verbose=_verbose(args))
        if args.dry_run:
            print(command.preview(settings.get_setting("heimdall_executable", "heimdall")))
            return 0
        return run_heimdall(command)
    finally:
        workspace.clear()


def cmd_detect(args):
    return run_heimdall(detect_command(verbose=_verbose(args)))


def cmd_close_pc_screen(args):
    return run_heimdall(close_pc_screen_command(resume=_resume(args), verbose=_verbose(args)))


def cmd_download_pit(args):
    output = normalize_pit_path(args.output)
    return run_heimdall(
        download_pit_command(output, resume=_resume(args), verbose=_verbose(args))
    )


def cmd_device_pit(args):
    return run_heimdall(
        print_pit_command(args.file, resume=_resume(args), verbose=_verbose(args))
    )


ADB_ACTIONS = {
    "reboot-recovery": lambda utility, params: utility.reboot_recovery(),
    "reboot-download": lambda utility, params: utility.reboot_download(),
    "reboot-fastboot": lambda utility, params: utility.reboot_fastboot(),
    "shutdown": lambda utility, params: utility.shutdown(),
    "devices": lambda utility, params: utility.devices(),
    "ls": lambda utility, params: utility.shell_ls_root(),
    "logcat": lambda utility, params: utility.logcat(int(params[0]) if params else None),
    "check-root": lambda utility, params: utility.check_root(),
    "getprop": lambda utility, params: utility.getprop(),
    "install": lambda utility, params: utility.install_apk(params[0]),
    "shell": lambda utility, params: utility.custom(" ".join(["shell", *params])),
}


def cmd_adb(args):
    if args.action == "install" and not args.params:
        log.error("install needs an APK path")
        return 2
    if args.action == "logcat" and args.params and not args.params[0].isdigit():
        log.error(f"logcat line count must be a whole number, got {args.params[0]!r}")
        return 2
    result = ADB_ACTIONS[args.action](adb.DeviceUtility(), args.params)
    if result is None:
        return 2
    if result.output:
        print(result.output, end="" if result.output.endswith("\n") else "\n")
    if result.root_detected is not None:
        print("ROOT ACCESS DETECTED" if result.root_detected else "NO ROOT ACCESS - 'su' command not found")
    if result.hint:
        print(result.hint)
    print(f"ADB Status: {result.status}")
    return 0 if result.succeeded else 1


COMMANDS = {
    "print-pit": cmd_print_pit,
    "extract": cmd_extract,
    "build": cmd_build,
    "quick-convert": cmd_quick_convert,
    "flash": cmd_flash,
    "detect": cmd_detect,
    "close-pc-screen": cmd_close_pc_screen,
    "download-pit": cmd_download_pit,
    "device-pit": cmd_device_pit,
    "adb": cmd_adb,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(debug=args.debug)
    try:
        return COMMANDS[args.command](args)
    except PitflashError as error:
        log.error(str(error))
        return 1


if __name__ == "__main__":
    sys.exit(main())
