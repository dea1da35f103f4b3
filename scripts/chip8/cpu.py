# CHIP-8 INSTRUCTION EXECUTOR
#
# COMPATIBILITY QUIRKS TABLE
# https://games.gulrak.net/cadmium/chip8-opcode-table.html#quirk6
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite

import random
from functools import wraps
from typing import NamedTuple

from machine import (
    ADDRESS_MASK, DEBUG, FLAG, FONT_GLYPH_SIZE, FONT_START_ADDRESS, STACK_DEPTH,
    InvalidOpcode, Chip8Error, Machine, RunState,
)
from opcodes import Instruction, Op, decode


# instructions touching the pixel grid only take effect on a frame boundary
DISPLAY_OPS = frozenset((Op.CLS, Op.DRW))


class Quirks(NamedTuple):
    """
    behaviours CHIP-8 interpreters disagree on
    logic_resets_vf: 8xy1, 8xy2 and 8xy3 set VF to 0 after the operation (original COSMAC VIP behaviour)
    stack_depth: how many nested subroutine calls fit on the stack
    """
    logic_resets_vf: bool = True
    stack_depth: int = STACK_DEPTH


# ******************** UTILITIES SECTION
def asm(msg):
    """decorator to print out the ASM of the instruction being executed"""
    def decorator(fn):
        @wraps(fn)
        def wrapper_fn(*args, **kwargs):
            mem_addr = args[0].instruction_addr     # args[0] equals self of the decorated method
            vals = fn(*args, **kwargs)              # use the locals() values of each decorated function in the print
            vals['mem_addr'] = mem_addr
            if DEBUG: print(msg.format(**vals))
        return wrapper_fn
    return decorator


# ******************** CPU SECTION
class Chip8:
    def __init__(self, machine=None, quirks=Quirks(), rng=None):
        self.quirks = quirks
        self.machine = machine if machine is not None else Machine(quirks.stack_depth)
        self.rng = rng if rng is not None else random.Random()
        self.instruction_addr = self.machine.pc
        self.draw = False   # True when the last step changed the pixel grid
        self.instructions = {
            Op.CLS: self._clear_screen,
            Op.RET: self._return,
            Op.JP: self._jump,
            Op.CALL: self._call_addr,
            Op.SE_BYTE: self._skip_if_eq,
            Op.SNE_BYTE: self._skip_if_not_eq,
            Op.SE_REG: self._skip_if_eq_regs,
            Op.LD_BYTE: self._set_vk,
            Op.ADD_BYTE: self._add_to_vk,
            Op.LD_REG: self._set_vx_to_vy,
            Op.OR: self._set_vx_or_vy,
            Op.AND: self._set_vx_and_vy,
            Op.XOR: self._set_vx_xor_vy,
            Op.ADD_REG: self._add_vx_vy,
            Op.SUB: self._sub_vx_vy,
            Op.SHR: self._shr,
            Op.SUBN: self._subn_vx_vy,
            Op.SHL: self._shl,
            Op.SNE_REG: self._skip_if_not_eq_regs,
            Op.LD_I: self._set_idx,
            Op.JP_V0: self._jump_plus,
            Op.RND: self._random_byte_and,
            Op.DRW: self._to_screen,
            Op.SKP: self._skip_if_pressed,
            Op.SKNP: self._skip_if_not_pressed,
            Op.LD_VX_DT: self._set_vx_dt,
            Op.LD_VX_K: self._wait_keypress,
            Op.LD_DT_VX: self._set_dt_vx,
            Op.LD_ST_VX: self._set_st,
            Op.ADD_I: self._add_to_idx,
            Op.LD_F: self._select_char,
            Op.LD_B: self._bcd_repr,
            Op.LD_MEM_VX: self._store_vregs,
            Op.LD_VX_MEM: self._load_vregs,
        }

    def __str__(self):
        return f"{self.machine}\nDRAW: {self.draw}"

    # ********** SHORTCUTS TO THE MACHINE STATE
    @property
    def pc(self):
        return self.machine.pc

    @pc.setter
    def pc(self, value):
        self.machine.pc = value & ADDRESS_MASK

    @property
    def idx(self):
        return self.machine.idx

    @idx.setter
    def idx(self, value):
        self.machine.idx = value & ADDRESS_MASK

    @property
    def v_regs(self):
        return self.machine.v_regs

    @property
    def mem(self):
        return self.machine.mem

    @property
    def stack(self):
        return self.machine.stack

    @property
    def screen(self):
        return self.machine.screen

    @property
    def keypad(self):
        return self.machine.keypad

    def load_rom(self, rom: bytes):
        self.machine.load_rom(rom)

    def set_key(self, index, held: bool):
        self.machine.set_key(index, held)

    def framebuffer(self):
        return self.machine.framebuffer()

    # ********** FLOW CONTROL
    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RET")
    def _return(self, ins):
        """return from a subroutine"""
        self.pc = self.stack.pop()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP 0x{address:03x}")
    def _jump(self, ins):
        address = ins.nnn
        self.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CALL 0x{address:03x}")
    def _call_addr(self, ins):
        address = ins.nnn
        self.stack.push(self.pc)    # pc already points to the instruction following the call
        self.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP V0, 0x{address:03x}")
    def _jump_plus(self, ins):
        address = ins.nnn
        self.pc = address + self.v_regs[0x0]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x:X}, {comparison_value}")
    def _skip_if_eq(self, ins):
        x, comparison_value = ins.x, ins.nn
        if self.v_regs[x] == comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x:X}, {comparison_value}")
    def _skip_if_not_eq(self, ins):
        x, comparison_value = ins.x, ins.nn
        if self.v_regs[x] != comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x:X}, V{y:X}")
    def _skip_if_eq_regs(self, ins):
        x, y = ins.x, ins.y
        if self.v_regs[x] == self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x:X}, V{y:X}")
    def _skip_if_not_eq_regs(self, ins):
        x, y = ins.x, ins.y
        if self.v_regs[x] != self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    # ********** REGISTERS AND ARITHMETIC
    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, {value}")
    def _set_vk(self, ins):
        """set the value of one of the 16 variable registers, Vx"""
        x, value = ins.x, ins.nn
        self.v_regs[x] = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x:X}, {value}")
    def _add_to_vk(self, ins):
        """add to the value already present in Vx, VF is left untouched"""
        x, value = ins.x, ins.nn
        self.v_regs[x] = (self.v_regs[x] + value) & 0xFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, V{y:X}")
    def _set_vx_to_vy(self, ins):
        x, y = ins.x, ins.y
        self.v_regs[x] = self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: OR V{x:X}, V{y:X}")
    def _set_vx_or_vy(self, ins):
        x, y = ins.x, ins.y
        self.v_regs[x] |= self.v_regs[y]
        self._logic_quirk()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: AND V{x:X}, V{y:X}")
    def _set_vx_and_vy(self, ins):
        x, y = ins.x, ins.y
        self.v_regs[x] &= self.v_regs[y]
        self._logic_quirk()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: XOR V{x:X}, V{y:X}")
    def _set_vx_xor_vy(self, ins):
        x, y = ins.x, ins.y
        self.v_regs[x] ^= self.v_regs[y]
        self._logic_quirk()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x:X}, V{y:X}")
    def _add_vx_vy(self, ins):
        """set Vx = Vx + Vy, VF = carry"""
        x, y = ins.x, ins.y
        total = self.v_regs[x] + self.v_regs[y]
        self.v_regs[x] = total & 0xFF
        self.v_regs[FLAG] = 1 if total > 0xFF else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUB V{x:X}, V{y:X}")
    def _sub_vx_vy(self, ins):
        """set Vx = Vx - Vy, VF = NOT borrow"""
        x, y = ins.x, ins.y
        no_borrow = 1 if self.v_regs[x] >= self.v_regs[y] else 0
        self.v_regs[x] = (self.v_regs[x] - self.v_regs[y]) & 0xFF
        self.v_regs[FLAG] = no_borrow
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUBN V{x:X}, V{y:X}")
    def _subn_vx_vy(self, ins):
        """set Vx = Vy - Vx, VF = NOT borrow"""
        x, y = ins.x, ins.y
        no_borrow = 1 if self.v_regs[y] >= self.v_regs[x] else 0
        self.v_regs[x] = (self.v_regs[y] - self.v_regs[x]) & 0xFF
        self.v_regs[FLAG] = no_borrow
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHR V{x:X}, V{y:X}")
    def _shr(self, ins):
        """set Vx = Vy SHR 1, VF = bit shifted out"""
        x, y = ins.x, ins.y
        lsb = self.v_regs[y] & 0x1
        self.v_regs[x] = self.v_regs[y] >> 1
        self.v_regs[FLAG] = lsb
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHL V{x:X}, V{y:X}")
    def _shl(self, ins):
        """set Vx = Vy SHL 1, VF = bit shifted out"""
        x, y = ins.x, ins.y
        msb = (self.v_regs[y] & 0x80) >> 7
        self.v_regs[x] = (self.v_regs[y] << 1) & 0xFF
        self.v_regs[FLAG] = msb
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RND V{x:X}, 0x{kk:02x}")
    def _random_byte_and(self, ins):
        x, kk = ins.x, ins.nn
        self.v_regs[x] = self.rng.randint(0, 255) & kk
        return locals()

    # ********** INDEX REGISTER AND MEMORY
    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD I, 0x{value:03x}")
    def _set_idx(self, ins):
        value = ins.nnn
        self.idx = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD I, V{x:X}")
    def _add_to_idx(self, ins):
        """set I = I + Vx"""
        x = ins.x
        self.idx = self.idx + self.v_regs[x]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD F, V{x:X}")
    def _select_char(self, ins):
        """set I to location of sprite for digit Vx"""
        x = ins.x
        self.idx = FONT_START_ADDRESS + (self.v_regs[x] & 0xF) * FONT_GLYPH_SIZE
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD B, V{x:X}")
    def _bcd_repr(self, ins):
        """store the hundreds digit of Vx in memory at I, the tens digit at I+1, the ones digit at I+2"""
        x = ins.x
        value = self.v_regs[x]
        self.mem.write(self.idx, (value // 100, value // 10 % 10, value % 10))
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD [I], V{x:X}")
    def _store_vregs(self, ins):
        """store registers V0 through Vx (included) in memory starting at location I"""
        x = ins.x
        self.mem.write(self.idx, self.v_regs[:x+1])
        self.idx = self.idx + x + 1     # compatibility quirk 6
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, [I]")
    def _load_vregs(self, ins):
        """read registers V0 through Vx (included) from memory starting at location I"""
        x = ins.x
        self.v_regs[:x+1] = self.mem.read(self.idx, x + 1)
        self.idx = self.idx + x + 1     # compatibility quirk 6
        return locals()

    # ********** TIMERS AND KEYPAD
    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, DT")
    def _set_vx_dt(self, ins):
        x = ins.x
        self.v_regs[x] = self.machine.dt
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD DT, V{x:X}")
    def _set_dt_vx(self, ins):
        x = ins.x
        self.machine.dt = self.v_regs[x]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD ST, V{x:X}")
    def _set_st(self, ins):
        x = ins.x
        self.machine.st = self.v_regs[x]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKP V{x:X}")
    def _skip_if_pressed(self, ins):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is held"""
        x = ins.x
        key = self.v_regs[x]
        if self.keypad[key]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKNP V{x:X}")
    def _skip_if_not_pressed(self, ins):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is NOT held"""
        x = ins.x
        key = self.v_regs[x]
        if not self.keypad[key]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, K")
    def _wait_keypress(self, ins):
        """wait for a key press and store its value in Vx"""
        x = ins.x
        key = self.keypad.first()
        if key is None:
            self.pc -= 0x2      # stay on the same instruction until a key is held
            self.machine.run_state = RunState.AWAITING_KEY
            self.machine.key_register = x
        else:
            self.v_regs[x] = key
        return locals()

    # ********** DISPLAY
    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CLS")
    def _clear_screen(self, ins):
        self.screen.clear()
        self.draw = True
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: DRW V{x:X}, V{y:X}, {n_bytes}")
    def _to_screen(self, ins):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        x, y, n_bytes = ins.x, ins.y, ins.n
        x_coordinate = self.v_regs[x] % self.screen.w
        y_coordinate = self.v_regs[y] % self.screen.h
        sprite = self.mem.read(self.idx, n_bytes)
        collision = self.screen.draw_sprite(x_coordinate, y_coordinate, sprite)
        self.v_regs[FLAG] = 1 if collision else 0
        self.draw = True
        return locals()

    # ********** EXECUTION
    def _logic_quirk(self):
        if self.quirks.logic_resets_vf:
            self.v_regs[FLAG] = 0

    def _goto_next_instruction(self):
        self.pc += 0x2

    def fetch(self):
        """read the big endian instruction word at PC, return its two bytes"""
        return self.mem[self.pc], self.mem[self.pc + 1]

    def decode(self, high, low) -> Instruction:
        return decode(high, low)

    def _resume_key_wait(self):
        """poll the keypad on behalf of a pending LD Vx, K, return True once a key has been stored"""
        key = self.keypad.first()
        if key is None:
            return False
        self.v_regs[self.machine.key_register] = key
        self.machine.run_state = RunState.RUNNING
        self.machine.key_register = None
        self._goto_next_instruction()
        if DEBUG: print(f"mem_addr: 0x{self.pc - 2:04x}    key 0x{key:x} pressed")
        return True

    def step(self, frame_boundary=True):
        """
        emulate one machine step: update timers on a frame boundary, then fetch, decode and execute one instruction
        return the instruction executed, None if nothing was executed (waiting for a key or for a frame boundary)
        """
        self.draw = False
        if frame_boundary:
            self.machine.tick_timers()
        if self.machine.run_state is RunState.AWAITING_KEY:
            self._resume_key_wait()
            return None

        self.instruction_addr = self.pc
        instruction = self.decode(*self.fetch())
        if instruction.op is Op.UNKNOWN:
            raise InvalidOpcode(instruction.raw, self.instruction_addr)
        if instruction.op in DISPLAY_OPS and not frame_boundary:
            return None     # re-issued on the next step

        self._goto_next_instruction()
        try:
            self.instructions[instruction.op](instruction)
        except Chip8Error:
            self.pc = self.instruction_addr
            raise
        return instruction

    def run(self, steps, frame_boundary=True):
        """execute a fixed number of steps, mostly useful for tests and headless runs"""
        for _ in range(steps):
            self.step(frame_boundary)
