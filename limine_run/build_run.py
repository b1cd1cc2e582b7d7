#!/usr/bin/env python3
"""
Build a bootable Limine ISO around a kernel binary and run it in QEMU

Usage: build-run <kernel-binary-path> [qemu-args...]
"""

import contextlib
import os
import platform
import shutil
import subprocess
import sys
from pathlib import Path

try:
    import fcntl
except ImportError:  # Windows
    fcntl = None

# Configuration
SCRIPT_DIR = Path(__file__).resolve().parent
TARGET_DIR = Path("target")
STAGING_DIR = TARGET_DIR / "limine"
LIMINE_DIR = STAGING_DIR / "limine"
LOCK_PATH = TARGET_DIR / "limine.lock"

LIMINE_REPO = "https://github.com/limine-bootloader/limine.git"
LIMINE_BRANCH = "v4.x-branch-binary"
LIMINE_CFG = SCRIPT_DIR / "limine.cfg"
LIMINE_FILES = [
    "limine.sys",
    "limine-cd.bin",
    "limine-cd-efi.bin",
]

KERNEL_NAME = "kernel.elf"
ISO_NAME = "os.iso"
ISO_PATH = STAGING_DIR / ISO_NAME

QEMU_ENV = "QEMU"
DEFAULT_QEMU = "qemu-system-x86_64"


def run_command(cmd, cwd=None):
    """Run an external tool, exiting with its code if it fails"""
    cmd = [str(c) for c in cmd]
    print(f"  $ {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, cwd=cwd)
    except FileNotFoundError:
        print(f"ERROR: Command not found: {cmd[0]}")
        sys.exit(127)
    if result.returncode != 0:
        sys.exit(result.returncode)
    return result


@contextlib.contextmanager
def build_lock():
    """Serialize runs that share the checkout and staging directory"""
    if fcntl is None:
        yield
        return
    LOCK_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(LOCK_PATH, "a+") as handle:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            print(f"Waiting for another build to release {LOCK_PATH}...")
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def limine_deploy_path():
    name = "limine-deploy.exe" if platform.system() == "Windows" else "limine-deploy"
    return LIMINE_DIR / name


def stage_1_provision_limine():
    """Clone Limine on first use, then update and rebuild it"""
    print("[STAGE 1] Provisioning Limine...")

    if not LIMINE_DIR.exists():
        LIMINE_DIR.parent.mkdir(parents=True, exist_ok=True)
        run_command([
            "git", "clone", LIMINE_REPO,
            "--branch", LIMINE_BRANCH,
            "--depth=1",
            LIMINE_DIR,
        ])
        print(f"  ✓ Cloned {LIMINE_BRANCH}")

    run_command(["git", "pull"], cwd=LIMINE_DIR)
    run_command(["make"], cwd=LIMINE_DIR)
    deploy = limine_deploy_path()
    if not deploy.exists():
        print(f"ERROR: make did not produce {deploy}")
        return False
    print("  ✓ Limine is up to date")
    return True


def stage_2_assemble_iso(kernel):
    """Stage the kernel and boot files, then package them with xorriso"""
    print("[STAGE 2] Assembling bootable ISO...")

    STAGING_DIR.mkdir(parents=True, exist_ok=True)

    # Everything xorriso needs has to sit in the staging directory first
    shutil.copy(kernel, STAGING_DIR / KERNEL_NAME)
    shutil.copy(LIMINE_CFG, STAGING_DIR / "limine.cfg")
    for name in LIMINE_FILES:
        shutil.copy(LIMINE_DIR / name, STAGING_DIR / name)
    print(f"  ✓ Staged {kernel} and {len(LIMINE_FILES)} Limine files")

    run_command([
        "xorriso", "-as", "mkisofs",
        "-b", "limine-cd.bin",
        "-no-emul-boot", "-boot-load-size", "4", "-boot-info-table",
        "--efi-boot", "limine-cd-efi.bin",
        "-efi-boot-part", "--efi-boot-image",
        "--protective-msdos-label",
        "-m", LIMINE_DIR.name,
        "-m", ISO_NAME,
        STAGING_DIR,
        "-o", ISO_PATH,
    ])
    if not ISO_PATH.exists():
        print(f"ERROR: xorriso did not produce {ISO_PATH}")
        return False
    print(f"  ✓ Packaged {ISO_PATH}")
    return True


def stage_3_deploy_limine():
    """Write Limine's boot record into the packaged ISO"""
    print("[STAGE 3] Deploying Limine...")

    run_command([limine_deploy_path(), ISO_PATH])

    size_mb = ISO_PATH.stat().st_size / (1024 * 1024)
    print(f"  ✓ Bootable ISO: {ISO_PATH} ({size_mb:.1f} MB)")
    return True


def emulator_binary():
    return os.environ.get(QEMU_ENV) or DEFAULT_QEMU


def qemu_command(extra_args=()):
    """Base QEMU invocation for the ISO, followed by the caller's arguments"""
    return [
        emulator_binary(),
        "-M", "q35,smm=off",
        "-cpu", "qemu64",
        "-no-reboot",
        "-serial", "stdio",
        "-cdrom", str(ISO_PATH),
        "-d", "int,cpu_reset",
        *extra_args,
    ]


def stage_4_launch_qemu(extra_args=()):
    """Run QEMU in the foreground and return its exit code"""
    print("[STAGE 4] Launching QEMU...")

    cmd = qemu_command(extra_args)
    print(f"  $ {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd)
    except FileNotFoundError:
        print(f"ERROR: Emulator not found: {cmd[0]} (set {QEMU_ENV} to override)")
        return 127
    return result.returncode


def run_pipeline(kernel, qemu_args=()):
    """Provision, assemble, deploy and launch; returns the exit code"""
    stages = [
        ("Provisioning", stage_1_provision_limine),
        ("Assembly", lambda: stage_2_assemble_iso(kernel)),
        ("Deployment", stage_3_deploy_limine),
    ]

    with build_lock():
        for name, stage_func in stages:
            try:
                if not stage_func():
                    print(f"ERROR: {name} stage failed")
                    return 1
            except OSError as e:
                print(f"ERROR: {name} stage failed: {e}")
                return 1

    return stage_4_launch_qemu(qemu_args)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("Usage: build-run <kernel-binary-path> [qemu-args...]")
        return 1

    return run_pipeline(argv[0], argv[1:])


if __name__ == "__main__":
    sys.exit(main())
