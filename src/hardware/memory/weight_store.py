"""
Weight Store Memory Module for the Perceptron Branch Predictor.

Holds every perceptron's signed weights as consecutive W-bit words.
Perceptron p occupies words [p * (H + 1), p * (H + 1) + H]: the H history
weights followed by the bias weight.

A single address bus is shared by reads and writes; the engine never has
more than one access outstanding.  Reads have a fixed `read_latency`
(default 2 cycles, BRAM output register plus one pipeline stage).  Writes
commit on the clock edge that samples `wr_en`.
"""

from amaranth import *
from amaranth.lib.memory import Memory


# Default configuration
WEIGHT_BITS = 8
TABLE_DEPTH = 64
READ_LATENCY = 2
WRITE_LATENCY = 2


class WeightStore(Elaboratable):
    """
    Perceptron Weight Store.

    Parameters
    ----------
    depth : int
        Number of W-bit words (num_perceptrons * (H + 1)).
    weight_bits : int
        Width of each signed weight.
    read_latency : int
        Cycles between rd_en and rd_data being valid (>= 1).

    Ports
    -----
    addr : Signal(range(depth)), in
        Word address for the current read or write.
    rd_en : Signal(), in
        Read enable.
    rd_data : Signal(signed(weight_bits)), out
        Weight read from addr, valid read_latency cycles after rd_en.
    rd_valid : Signal(), out
        rd_en delayed by read_latency cycles.
    wr_data : Signal(signed(weight_bits)), in
        Weight to write.
    wr_en : Signal(), in
        Write enable.
    """

    def __init__(self, depth=TABLE_DEPTH, weight_bits=WEIGHT_BITS,
                 read_latency=READ_LATENCY):
        if depth < 1:
            raise ValueError(f"depth must be positive, got {depth}")
        if read_latency < 1:
            raise ValueError(f"read_latency must be at least 1, got {read_latency}")

        self.depth = depth
        self.weight_bits = weight_bits
        self.read_latency = read_latency

        self.addr = Signal(range(depth))

        # Read side
        self.rd_en = Signal()
        self.rd_data = Signal(signed(weight_bits))
        self.rd_valid = Signal()

        # Write side
        self.wr_data = Signal(signed(weight_bits))
        self.wr_en = Signal()

    def elaborate(self, platform):
        m = Module()

        m.submodules.mem = mem = Memory(
            shape=signed(self.weight_bits), depth=self.depth, init=[]
        )

        # --- Write port (synchronous) ---
        wr_port = mem.write_port()
        m.d.comb += [
            wr_port.addr.eq(self.addr),
            wr_port.data.eq(self.wr_data),
            wr_port.en.eq(self.wr_en),
        ]

        # --- Read port (synchronous, 1 cycle from BRAM) ---
        rd_port = mem.read_port(domain="sync")
        m.d.comb += [
            rd_port.addr.eq(self.addr),
            rd_port.en.eq(self.rd_en),
        ]

        # Extra output registers up to the configured latency
        data = rd_port.data
        valid = Signal(name="rd_en_pipe1")
        m.d.sync += valid.eq(self.rd_en)
        for stage in range(2, self.read_latency + 1):
            data_reg = Signal(signed(self.weight_bits), name=f"rd_data_pipe{stage}")
            valid_reg = Signal(name=f"rd_en_pipe{stage}")
            m.d.sync += [
                data_reg.eq(data),
                valid_reg.eq(valid),
            ]
            data, valid = data_reg, valid_reg

        m.d.comb += [
            self.rd_data.eq(data),
            self.rd_valid.eq(valid),
        ]

        return m
