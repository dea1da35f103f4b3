# CHIP-8 MACHINE STATE
# memory, registers, call stack, timers, keypad and the 64x32 pixel grid
#
# MASTERING CHIP-8
# https://github.com/mattmikolay/chip-8/wiki/Mastering-CHIP%E2%80%908

import os
import threading
from enum import Enum


# ******************** STATIC SECTION
C8_FONTS = [0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
            0x20, 0x60, 0x20, 0x20, 0x70,  # 1
            0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
            0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
            0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
            0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
            0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
            0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
            0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
            0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
            0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
            0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
            0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
            0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
            0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
            0xF0, 0x80, 0xF0, 0x80, 0x80]  # F

FONT_START_ADDRESS = 0x000
FONT_GLYPH_SIZE = 5
MEMORY_SIZE = 0x1000
ADDRESS_MASK = MEMORY_SIZE - 1
ROM_START_ADDRESS = 0x200
MAX_ROM_SIZE = MEMORY_SIZE - ROM_START_ADDRESS
REGISTERS = 16
FLAG = 0xF
KEYS = 16
STACK_DEPTH = 8
SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64
DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False


# ******************** ERRORS SECTION
class Chip8Error(Exception):
    """base class of every error the interpreter raises"""


class InvalidOpcode(Chip8Error):
    def __init__(self, raw: bytes, pc: int):
        self.raw = raw
        self.pc = pc
        super().__init__(f"Unrecognized instruction {raw.hex().upper()} at address 0x{pc:03x}")


class StackError(Chip8Error):
    pass


class StackOverflow(StackError):
    pass


class StackUnderflow(StackError):
    pass


class LoadError(Chip8Error):
    pass


# ******************** MEMORY SECTION
# ********** WRAPS A BYTEARRAY TO REPRESENT THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB
# every address is taken modulo 4096, so reads and writes can never fall out of bounds
class Memory:
    def __init__(self):
        self.inner = bytearray(MEMORY_SIZE)
        self.inner[FONT_START_ADDRESS:FONT_START_ADDRESS+len(C8_FONTS)] = bytes(C8_FONTS)

    def __setitem__(self, address, value):
        self.inner[address & ADDRESS_MASK] = value & 0xFF

    def __getitem__(self, address):
        return self.inner[address & ADDRESS_MASK]

    def __len__(self):
        return len(self.inner)

    def read(self, address, count):
        """read count consecutive bytes starting at address, wrapping at the end of memory"""
        return [self[address + offset] for offset in range(count)]

    def write(self, address, values):
        for offset, value in enumerate(values):
            self[address + offset] = value

    def load(self, rom: bytes):
        """copy the ROM verbatim at the program start address"""
        if len(rom) > MAX_ROM_SIZE:
            raise LoadError(f"ROM is {len(rom)} bytes long, at most {MAX_ROM_SIZE} bytes fit in memory")
        self.inner[ROM_START_ADDRESS:ROM_START_ADDRESS+len(rom)] = rom

    def load_rom(self, path):
        """load ROM file from user specified path"""
        with open(path, mode='rb') as f:
            rom = f.read()
        self.load(rom)
        if DEBUG: print(f"The ROM at path {path} has been loaded successfully ({len(rom)} bytes)")
        return len(rom)


# ********** WRAPS A LIST TO REPRESENT A STACK OF RETURN ADDRESSES WITH A LIMITED SIZE
class Stack:
    def __init__(self, depth=STACK_DEPTH):
        self.depth = depth
        self.addr_list = []

    def __len__(self):
        return len(self.addr_list)

    def __repr__(self):
        return "[" + ", ".join(f"0x{addr:03x}" for addr in self.addr_list) + "]"

    @property
    def pointer(self):
        """index of the next free slot"""
        return len(self.addr_list)

    def push(self, address):
        if len(self.addr_list) >= self.depth:
            raise StackOverflow(f"The CHIP-8 stack can contain at most {self.depth} addresses. Limit exceeded")
        self.addr_list.append(address)

    def pop(self):
        if not self.addr_list:
            raise StackUnderflow("Return from subroutine with an empty stack")
        return self.addr_list.pop()


# ******************** I/O SECTION
# ********** 16 KEY HOLD STATES, WRITTEN BY THE INPUT SOURCE AND READ BY THE CPU
# the lock lets an input thread write keys while the CPU thread is stepping
class Keypad:
    def __init__(self):
        self._held = [False] * KEYS
        self._lock = threading.Lock()

    def __getitem__(self, key):
        with self._lock:
            return self._held[key & 0xF]

    def __setitem__(self, key, value):
        self.set_key(key, value)

    def __repr__(self):
        return "".join(f"{k:X}" if held else "." for k, held in enumerate(self.snapshot()))

    def set_key(self, index, held: bool):
        if not 0 <= index < KEYS:
            raise IndexError(f"The CHIP-8 keypad has {KEYS} keys, got key index {index}")
        with self._lock:
            self._held[index] = bool(held)

    def release_all(self):
        with self._lock:
            self._held = [False] * KEYS

    def snapshot(self):
        with self._lock:
            return tuple(self._held)

    def untouched(self):
        return not any(self.snapshot())

    def first(self):
        """lowest index among the keys currently held, None if no key is held"""
        for key, held in enumerate(self.snapshot()):
            if held:
                return key
        return None


# ********** 64x32 MONOCHROME PIXEL GRID
class Screen:
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT):
        self.w, self.h = w, h
        self.buffer = [False] * h * w

    def __repr__(self):
        return "\n".join("".join("#" if p else "." for p in row) for row in self.rows())

    def read_pixel(self, x, y):
        return self.buffer[y * self.w + x]

    def clear(self):
        self.buffer = [False] * self.h * self.w

    def draw_sprite(self, x, y, sprite_rows):
        """
        XOR the sprite onto the grid with its top left corner at (x, y), already reduced modulo the screen size
        each row is a byte drawn MSB first, pixels falling past the right or bottom edge are dropped
        return True if any pixel that was ON got turned OFF
        """
        collision = False
        for i, sprite_byte in enumerate(sprite_rows):
            y_coordinate = y + i
            if y_coordinate >= self.h:
                break
            for j in range(8):
                if not (sprite_byte >> (7 - j)) & 0x1:
                    continue
                x_coordinate = x + j
                if x_coordinate >= self.w:
                    break
                offset = y_coordinate * self.w + x_coordinate
                # the only case when a pixel gets erased is when it was ON and is turned ON again
                collision |= self.buffer[offset]
                self.buffer[offset] = not self.buffer[offset]
        return collision

    def rows(self):
        """read only copy of the grid, one tuple of booleans per row"""
        return tuple(tuple(self.buffer[r * self.w:(r + 1) * self.w]) for r in range(self.h))


# ******************** MACHINE SECTION
class RunState(Enum):
    RUNNING = "running"
    AWAITING_KEY = "awaiting key"


class Machine:
    """all the state of one CHIP-8 machine, created zeroed except for the font set"""
    def __init__(self, stack_depth=STACK_DEPTH):
        self.mem = Memory()
        self.stack = Stack(stack_depth)
        self.v_regs = [0] * REGISTERS
        self.pc = ROM_START_ADDRESS
        self.idx = 0    # index register
        self.dt = 0     # delay timer, active when non-zero
        self.st = 0     # sound timer, active when non-zero
        self.keypad = Keypad()
        self.screen = Screen()
        self.run_state = RunState.RUNNING
        self.key_register = None    # register waiting for a key press while AWAITING_KEY

    def __str__(self):
        registers = " ".join(f"V{i:X}:{v:02x}" for i, v in enumerate(self.v_regs))
        pointers = f"PC_REGISTER:0x{self.pc:03x} | IDX_REGISTER:0x{self.idx:03x} | DT:{self.dt} | ST:{self.st}"
        stack = f"STACK:{self.stack} | KEYPAD:{self.keypad!r}"
        state = f"STATE:{self.run_state.value}"
        if self.run_state is RunState.AWAITING_KEY:
            state += f" (V{self.key_register:X})"
        return f"{pointers}\nVARIABLE_REGISTERS: {registers}\n{stack}\n{state}"

    @property
    def sound_active(self):
        return self.st > 0

    def load_rom(self, rom: bytes):
        self.mem.load(rom)

    def load_rom_file(self, path):
        return self.mem.load_rom(path)

    def set_key(self, index, held: bool):
        self.keypad.set_key(index, held)

    def framebuffer(self):
        return self.screen.rows()

    def tick_timers(self):
        """count both timers down by one, never below zero"""
        if self.dt > 0:
            self.dt -= 1
        if self.st > 0:
            self.st -= 1
