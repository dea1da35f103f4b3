# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# COMPATIBILITY QUIRKS TABLE
# https://games.gulrak.net/cadmium/chip8-opcode-table.html#quirk6
#
# MASTERING CHIP-8
# https://github.com/mattmikolay/chip-8/wiki/Mastering-CHIP%E2%80%908
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite


import argparse
import os
import sys

os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame
from pygame.locals import (
    K_1, K_2, K_3, K_4,
    K_q, K_w, K_e, K_r,
    K_a, K_s, K_d, K_f,
    K_z, K_x, K_c, K_v,
)

from cpu import Chip8, Quirks
from machine import SCREEN_HEIGHT, SCREEN_WIDTH, Chip8Error
from scheduler import FrameScheduler


# ******************** STATIC SECTION
# The hex keypad layout is:
#   1 2 3 C
#   4 5 6 D
#   7 8 9 E
#   A 0 B F
# and it is mapped on the left side of a QWERTY keyboard:
#   1 2 3 4
#   Q W E R
#   A S D F
#   Z X C V
KEY_MAPPINGS = {
    K_1: 0x1, K_2: 0x2, K_3: 0x3, K_4: 0xC,
    K_q: 0x4, K_w: 0x5, K_e: 0x6, K_r: 0xD,
    K_a: 0x7, K_s: 0x8, K_d: 0x9, K_f: 0xE,
    K_z: 0xA, K_x: 0x0, K_c: 0xB, K_v: 0xF,
}

CPU_HZ = 500
SCALE = 15
BLUE = pygame.Color(80,69,155,255)
LIGHT_BLUE = pygame.Color(136,126,203,255)


# ******************** UTILITIES SECTION
def get_args(argv=None):
    parser = argparse.ArgumentParser(description="CHIP-8 interpreter")
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("--cpu-hz", type=int, default=CPU_HZ, help="host loop iterations (CPU steps) per second")
    parser.add_argument("--scale", type=int, default=SCALE, help="size in screen pixels of a CHIP-8 pixel")
    parser.add_argument("--keep-vf", action="store_true", help="do not reset VF after OR, AND and XOR")
    parser.add_argument("--stack-depth", type=int, choices=(8, 16), default=8, help="maximum subroutine nesting")
    return parser.parse_args(argv)


# ******************** I/O SECTION
# ********** DRAWS THE MACHINE PIXEL GRID ON A PYGAME WINDOW
class Display:
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT, s=SCALE, bg_color=BLUE, fg_color=LIGHT_BLUE):
        self.w, self.h, self.scale = w, h, s
        self.background = bg_color
        self.foreground = fg_color
        self.surface = pygame.display.set_mode(
            (w * self.scale, h * self.scale),
        )
        self.surface.fill(self.background)

    def render(self, framebuffer):
        """paint every ON pixel of the read only grid and flip the window"""
        self.surface.fill(self.background)
        for y, row in enumerate(framebuffer):
            for x, pixel in enumerate(row):
                if pixel:
                    pygame.draw.rect(
                        self.surface,
                        self.foreground,
                        (x * self.scale, y * self.scale, self.scale, self.scale)
                    )
        pygame.display.flip()


def process_events(chip):
    """drain the pygame event queue into the keypad, return False when the user asks to quit"""
    for event in pygame.event.get():
        if event.type == pygame.QUIT:
            return False
        if event.type == pygame.KEYDOWN:
            if event.key == pygame.K_ESCAPE:
                return False
            if event.key in KEY_MAPPINGS:
                chip.set_key(KEY_MAPPINGS[event.key], True)
        elif event.type == pygame.KEYUP:
            if event.key in KEY_MAPPINGS:
                chip.set_key(KEY_MAPPINGS[event.key], False)
    return True


# ******************** ENTRY POINT SECTION
def main(argv=None):
    args = get_args(argv)
    quirks = Quirks(logic_resets_vf=not args.keep_vf, stack_depth=args.stack_depth)
    chip = Chip8(quirks=quirks)
    try:
        chip.machine.load_rom_file(args.file)
    except (OSError, Chip8Error) as e:
        sys.exit(f"Cannot load {args.file}: {e}")
    # pygame initialization
    pygame.init()
    clock = pygame.time.Clock()
    pygame.display.set_caption(os.path.basename(args.file))
    display = Display(s=args.scale)
    scheduler = FrameScheduler(chip)
    # emulation loop
    run = True
    try:
        while run:
            clock.tick(args.cpu_hz)
            run = process_events(chip)   # key events must be seen by the very next step
            if scheduler.tick():
                display.render(chip.framebuffer())
    except Chip8Error as e:
        sys.exit(f"********** THE EMULATOR CRASHED: {e}\n{chip}")
    finally:
        pygame.quit()


if __name__ == "__main__":
    main()
