"""
Sample FIFO Module for the Perceptron Branch Predictor.

Holds branch samples delivered by the input synchronizer until the engine
returns to IDLE.  Standard synchronous circular-buffer FIFO with push/pop
handshaking.  A push that arrives while the FIFO is full is dropped and
latches the sticky `overrun` flag; previously queued samples are kept.
"""

from amaranth import *
from amaranth.lib.memory import Memory


DEFAULT_FIFO_DEPTH = 2


class SampleFIFO(Elaboratable):
    """
    Sample FIFO.

    Parameters
    ----------
    addr_bits : int
        Width of the branch address carried by each entry.
    fifo_depth : int
        Number of entries the FIFO can hold (default 2).

    Ports
    -----
    push_valid : Signal(), in
        Asserted for one cycle by the synchronizer to push a sample.
    push_address : Signal(addr_bits), in
    push_outcome : Signal(), in
    pop_valid : Signal(), out
        Asserted when a sample is available at the head.
    pop_address : Signal(addr_bits), out
    pop_outcome : Signal(), out
    pop_ready : Signal(), in
        Asserted by the engine to consume the head entry.
    fifo_empty : Signal(), out
    fifo_full : Signal(), out
    overrun : Signal(), out
        Sticky: a sample was dropped because the FIFO was full.
    clear : Signal(), in
        Drop every queued entry and clear `overrun`.
    """

    def __init__(self, addr_bits=16, fifo_depth=DEFAULT_FIFO_DEPTH):
        if fifo_depth < 1:
            raise ValueError(f"fifo_depth must be positive, got {fifo_depth}")
        self.addr_bits = addr_bits
        self.fifo_depth = fifo_depth

        # Push side (from the input synchronizer)
        self.push_valid = Signal()
        self.push_address = Signal(addr_bits)
        self.push_outcome = Signal()

        # Pop side (to the engine)
        self.pop_valid = Signal()
        self.pop_address = Signal(addr_bits)
        self.pop_outcome = Signal()
        self.pop_ready = Signal()

        # Status / control
        self.fifo_empty = Signal()
        self.fifo_full = Signal()
        self.overrun = Signal()
        self.clear = Signal()

    def elaborate(self, platform):
        m = Module()

        depth = self.fifo_depth
        addr_bits = self.addr_bits
        entry_width = addr_bits + 1

        m.submodules.mem = mem = Memory(
            shape=entry_width, depth=depth, init=[]
        )

        def ring_next(ptr):
            return Mux(ptr == depth - 1, 0, ptr + 1)

        wr_ptr = Signal(range(depth))
        rd_ptr = Signal(range(depth))
        count = Signal(range(depth + 1))

        m.d.comb += [
            self.fifo_empty.eq(count == 0),
            self.fifo_full.eq(count == depth),
            self.pop_valid.eq(~self.fifo_empty),
        ]

        do_push = Signal()
        do_pop = Signal()
        m.d.comb += [
            do_push.eq(self.push_valid & ~self.fifo_full),
            do_pop.eq(self.pop_ready & ~self.fifo_empty),
        ]

        # --- Write port (synchronous) ---
        wr_port = mem.write_port()
        m.d.comb += [
            # Pack: address [0:addr_bits] | outcome [addr_bits]
            wr_port.addr.eq(wr_ptr),
            wr_port.data.eq(Cat(self.push_address, self.push_outcome)),
            wr_port.en.eq(do_push),
        ]

        # --- Read port (combinational) ---
        rd_port = mem.read_port(domain="comb")
        m.d.comb += [
            rd_port.addr.eq(rd_ptr),
            self.pop_address.eq(rd_port.data[:addr_bits]),
            self.pop_outcome.eq(rd_port.data[addr_bits]),
        ]

        with m.If(self.clear):
            m.d.sync += [
                count.eq(0),
                wr_ptr.eq(0),
                rd_ptr.eq(0),
                self.overrun.eq(0),
            ]
        with m.Else():
            with m.If(self.push_valid & self.fifo_full):
                m.d.sync += self.overrun.eq(1)

            m.d.sync += count.eq(count + do_push - do_pop)
            with m.If(do_push):
                m.d.sync += wr_ptr.eq(ring_next(wr_ptr))
            with m.If(do_pop):
                m.d.sync += rd_ptr.eq(ring_next(rd_ptr))

        return m
