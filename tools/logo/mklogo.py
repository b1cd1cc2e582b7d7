#!/usr/bin/env python3
"""
Convert an image into the kernel's boot logo (logo.raw)

The kernel blits a 256x256 RGBA8888 buffer centered on a white screen,
blending each pixel by its alpha.

Usage: mklogo.py <image> [logo.raw]
"""
from PIL import Image
import sys

LOGO_WIDTH = 256
LOGO_HEIGHT = 256


def make_logo(path):
    img = Image.open(path).convert("RGBA")
    img.thumbnail((LOGO_WIDTH, LOGO_HEIGHT))

    # Pad with fully transparent pixels so the background shows through
    canvas = Image.new("RGBA", (LOGO_WIDTH, LOGO_HEIGHT), (0, 0, 0, 0))
    w, h = img.size
    canvas.paste(img, ((LOGO_WIDTH - w) // 2, (LOGO_HEIGHT - h) // 2))
    return canvas.tobytes()


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("Usage: mklogo.py <image> [logo.raw]")
        return 1

    out = argv[1] if len(argv) > 1 else "logo.raw"
    pixels = make_logo(argv[0])
    with open(out, "wb") as f:
        f.write(pixels)

    print(f"{out} generated ({len(pixels)} bytes)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
