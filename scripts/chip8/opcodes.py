# CHIP-8 INSTRUCTION DECODER
# turns a raw 2-byte instruction word into a tagged Instruction value
#
# REFERENCE
# http://devernay.free.fr/hacks/chip8/C8TECH10.HTM#3.1

from enum import Enum
from typing import NamedTuple


class Op(Enum):
    CLS = "00E0"
    RET = "00EE"
    JP = "1nnn"
    CALL = "2nnn"
    SE_BYTE = "3xnn"
    SNE_BYTE = "4xnn"
    SE_REG = "5xy0"
    LD_BYTE = "6xnn"
    ADD_BYTE = "7xnn"
    LD_REG = "8xy0"
    OR = "8xy1"
    AND = "8xy2"
    XOR = "8xy3"
    ADD_REG = "8xy4"
    SUB = "8xy5"
    SHR = "8xy6"
    SUBN = "8xy7"
    SHL = "8xyE"
    SNE_REG = "9xy0"
    LD_I = "Annn"
    JP_V0 = "Bnnn"
    RND = "Cxnn"
    DRW = "Dxyn"
    SKP = "Ex9E"
    SKNP = "ExA1"
    LD_VX_DT = "Fx07"
    LD_VX_K = "Fx0A"
    LD_DT_VX = "Fx15"
    LD_ST_VX = "Fx18"
    ADD_I = "Fx1E"
    LD_F = "Fx29"
    LD_B = "Fx33"
    LD_MEM_VX = "Fx55"
    LD_VX_MEM = "Fx65"
    UNKNOWN = "????"


class Instruction(NamedTuple):
    """one decoded instruction, operand fields not used by the family are left at 0"""
    op: Op
    raw: bytes
    x: int = 0
    y: int = 0
    n: int = 0
    nn: int = 0
    nnn: int = 0

    @property
    def word(self) -> int:
        return self.raw[0] << 8 | self.raw[1]

    def __str__(self):
        return f"{self.raw.hex().upper()} ({self.op.name})"


# ******************** DISPATCH TABLES
# the top nibble alone identifies these families
BY_TOP_NIBBLE = {
    0x1: Op.JP,
    0x2: Op.CALL,
    0x3: Op.SE_BYTE,
    0x4: Op.SNE_BYTE,
    0x6: Op.LD_BYTE,
    0x7: Op.ADD_BYTE,
    0xA: Op.LD_I,
    0xB: Op.JP_V0,
    0xC: Op.RND,
    0xD: Op.DRW,
}

# ambiguous families need a second look at the low nibble or at the low byte
BY_LOW_NIBBLE = {
    0x5: {0x0: Op.SE_REG},
    0x8: {
        0x0: Op.LD_REG,
        0x1: Op.OR,
        0x2: Op.AND,
        0x3: Op.XOR,
        0x4: Op.ADD_REG,
        0x5: Op.SUB,
        0x6: Op.SHR,
        0x7: Op.SUBN,
        0xE: Op.SHL,
    },
    0x9: {0x0: Op.SNE_REG},
}

BY_LOW_BYTE = {
    0x0: {0xE0: Op.CLS, 0xEE: Op.RET},
    0xE: {0x9E: Op.SKP, 0xA1: Op.SKNP},
    0xF: {
        0x07: Op.LD_VX_DT,
        0x0A: Op.LD_VX_K,
        0x15: Op.LD_DT_VX,
        0x18: Op.LD_ST_VX,
        0x1E: Op.ADD_I,
        0x29: Op.LD_F,
        0x33: Op.LD_B,
        0x55: Op.LD_MEM_VX,
        0x65: Op.LD_VX_MEM,
    },
}


def nibbles(high: int, low: int):
    """split the instruction word in its four nibbles, most significant first"""
    return high >> 4, high & 0xF, low >> 4, low & 0xF


def address(n0: int, n1: int, n2: int) -> int:
    """assemble a 12-bit address out of three nibbles"""
    return n0 * 256 + n1 * 16 + n2


def lookup(high: int, low: int) -> Op:
    top, _, _, last = nibbles(high, low)
    if top in BY_TOP_NIBBLE:
        return BY_TOP_NIBBLE[top]
    if top in BY_LOW_NIBBLE:
        return BY_LOW_NIBBLE[top].get(last, Op.UNKNOWN)
    # 0x0 0xE and 0xF are the only top nibbles left
    return BY_LOW_BYTE[top].get(low, Op.UNKNOWN)


def decode(high: int, low: int) -> Instruction:
    """
    decode the instruction word made of the byte fetched at PC (high) and the one at PC+1 (low)
    words matching no known pattern come back as Op.UNKNOWN instead of raising
    """
    high, low = high & 0xFF, low & 0xFF
    raw = bytes((high, low))
    op = lookup(high, low)
    top, x, y, n = nibbles(high, low)

    if op in (Op.CLS, Op.RET, Op.UNKNOWN):
        return Instruction(op, raw)
    if op in (Op.JP, Op.CALL, Op.LD_I, Op.JP_V0):
        return Instruction(op, raw, nnn=address(x, y, n))
    if op in (Op.SE_BYTE, Op.SNE_BYTE, Op.LD_BYTE, Op.ADD_BYTE, Op.RND):
        return Instruction(op, raw, x=x, nn=low)
    if op is Op.DRW:
        return Instruction(op, raw, x=x, y=y, n=n)
    if top in (0x5, 0x8, 0x9):
        return Instruction(op, raw, x=x, y=y)
    # Ex.. and Fx.. only carry the register index
    return Instruction(op, raw, x=x)
