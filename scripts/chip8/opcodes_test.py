import unittest
from opcodes import Instruction, Op, address, decode


class TestDecoding(unittest.TestCase):
    def test_system(self):
        self.assertEqual(decode(0x00, 0xE0), Instruction(Op.CLS, b"\x00\xe0"))
        self.assertEqual(decode(0x00, 0xEE), Instruction(Op.RET, b"\x00\xee"))

    def test_address(self):
        self.assertEqual(address(0x1, 0x2, 0x3), 0x123)
        self.assertEqual(decode(0x1A, 0xBC).nnn, 0xABC)
        self.assertEqual(decode(0x2A, 0xBC).op, Op.CALL)
        self.assertEqual(decode(0xA1, 0x23), Instruction(Op.LD_I, b"\xa1\x23", nnn=0x123))
        self.assertEqual(decode(0xB3, 0x00).op, Op.JP_V0)

    def test_register_and_byte(self):
        self.assertEqual(decode(0x6A, 0x42), Instruction(Op.LD_BYTE, b"\x6a\x42", x=0xA, nn=0x42))
        self.assertEqual(decode(0x3B, 0x01).op, Op.SE_BYTE)
        self.assertEqual(decode(0x4B, 0x01).op, Op.SNE_BYTE)
        self.assertEqual(decode(0x7B, 0x01).op, Op.ADD_BYTE)
        self.assertEqual(decode(0xCB, 0x0F).op, Op.RND)

    def test_alu(self):
        expected = {0x0: Op.LD_REG, 0x1: Op.OR, 0x2: Op.AND, 0x3: Op.XOR, 0x4: Op.ADD_REG,
                    0x5: Op.SUB, 0x6: Op.SHR, 0x7: Op.SUBN, 0xE: Op.SHL}
        for last, op in expected.items():
            ins = decode(0x81, 0x20 | last)
            self.assertEqual((ins.op, ins.x, ins.y), (op, 1, 2))
        for last in (0x8, 0x9, 0xA, 0xB, 0xC, 0xD, 0xF):
            self.assertEqual(decode(0x81, 0x20 | last).op, Op.UNKNOWN)

    def test_register_pairs_need_zero_low_nibble(self):
        self.assertEqual(decode(0x51, 0x20), Instruction(Op.SE_REG, b"\x51\x20", x=1, y=2))
        self.assertEqual(decode(0x91, 0x20).op, Op.SNE_REG)
        self.assertEqual(decode(0x51, 0x21).op, Op.UNKNOWN)
        self.assertEqual(decode(0x91, 0x2F).op, Op.UNKNOWN)

    def test_draw(self):
        self.assertEqual(decode(0xD1, 0x2F), Instruction(Op.DRW, b"\xd1\x2f", x=1, y=2, n=0xF))

    def test_keys_and_misc(self):
        self.assertEqual(decode(0xE5, 0x9E), Instruction(Op.SKP, b"\xe5\x9e", x=5))
        self.assertEqual(decode(0xE5, 0xA1).op, Op.SKNP)
        expected = {0x07: Op.LD_VX_DT, 0x0A: Op.LD_VX_K, 0x15: Op.LD_DT_VX, 0x18: Op.LD_ST_VX,
                    0x1E: Op.ADD_I, 0x29: Op.LD_F, 0x33: Op.LD_B, 0x55: Op.LD_MEM_VX, 0x65: Op.LD_VX_MEM}
        for low, op in expected.items():
            self.assertEqual(decode(0xF7, low), Instruction(op, bytes((0xF7, low)), x=7))

    def test_unrecognized_keeps_raw_bytes(self):
        for high, low in ((0x01, 0x23), (0x00, 0x00), (0xE0, 0x00), (0xF0, 0xFF)):
            ins = decode(high, low)
            self.assertEqual(ins.op, Op.UNKNOWN)
            self.assertEqual(ins.raw, bytes((high, low)))
            self.assertEqual(ins.word, high << 8 | low)


if __name__ == "__main__":
    unittest.main()
