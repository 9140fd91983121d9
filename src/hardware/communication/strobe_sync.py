"""
Parallel Strobe Synchronizer for the Perceptron Branch Predictor.

The host presents a branch address and its outcome on parallel inputs and
raises `sample_valid`.  A one-cycle-delayed copy of the strobe detects the
rising edge, so one strobe yields exactly one `input_complete` pulse one
cycle later regardless of how long the strobe is held.

Ports
-----
sample_valid   : Signal(),          in   — host strobe (level, any width >= 1)
address_in     : Signal(addr_bits), in
outcome_in     : Signal(),          in
address        : Signal(addr_bits), out  — latched on the strobe's rising edge
outcome        : Signal(),          out  — latched with address
input_complete : Signal(),          out  — pulsed for one cycle per strobe
"""

from amaranth import *


class StrobeSynchronizer(Elaboratable):
    """Rising-edge strobe capture into the internal clock domain."""

    def __init__(self, addr_bits: int = 16):
        self.addr_bits = addr_bits

        self.sample_valid = Signal()
        self.address_in   = Signal(addr_bits)
        self.outcome_in   = Signal()

        self.address        = Signal(addr_bits)
        self.outcome        = Signal()
        self.input_complete = Signal()

    def elaborate(self, platform):
        m = Module()

        strobe_prev = Signal()
        rising_edge = Signal()

        m.d.sync += strobe_prev.eq(self.sample_valid)
        m.d.comb += rising_edge.eq(self.sample_valid & ~strobe_prev)

        m.d.sync += self.input_complete.eq(rising_edge)
        with m.If(rising_edge):
            m.d.sync += [
                self.address.eq(self.address_in),
                self.outcome.eq(self.outcome_in),
            ]

        return m
