#!/usr/bin/env python3
"""
Kernel debugging helper

  kernel-debug r <kernel-binary-path> [qemu-args...]
      Build and boot the kernel with QEMU halted behind a gdb stub.
  kernel-debug
      Attach gdb to a QEMU started with `kernel-debug r`.
"""

import subprocess
import sys
from pathlib import Path

from . import build_run

GDB_PORT = 4242
GDB_STUB_ARGS = ["-gdb", f"tcp::{GDB_PORT}", "-S"]
GDB_SCRIPT = Path(__file__).resolve().parent / "debug.gdb"


def start_paused(kernel, qemu_args=()):
    """Run the full pipeline with the CPU held at reset"""
    return build_run.run_pipeline(kernel, [*qemu_args, *GDB_STUB_ARGS])


def attach():
    """Launch gdb with the command file that connects to the stub"""
    cmd = ["gdb", "-x", str(GDB_SCRIPT)]
    print(f"  $ {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd)
    except FileNotFoundError:
        print("ERROR: gdb not found")
        return 127
    return result.returncode


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if argv and argv[0] == "r":
        if len(argv) < 2:
            print("Usage: kernel-debug r <kernel-binary-path> [qemu-args...]")
            return 1
        return start_paused(argv[1], argv[2:])

    return attach()


if __name__ == "__main__":
    sys.exit(main())
