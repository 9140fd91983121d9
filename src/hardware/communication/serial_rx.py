"""
Serial Branch Receiver for the Perceptron Branch Predictor.

Receives one (address, outcome) sample per transaction over a three-wire
link clocked by the host at a slower rate than the internal clock:

    chip_select  ‾‾‾\\_____________________________/‾‾‾‾‾‾‾‾‾‾‾‾
    serial_clock _____/‾\\_/‾\\_ ... _/‾\\___________/‾\\_______
    serial_data       A[n-1] A[n-2]   A[0]         outcome

The host drives chip_select low, shifts `addr_bits` address bits MSB-first
(each sampled on a rising edge of serial_clock), raises chip_select, then
presents the outcome bit, sampled on the next rising edge.

All three inputs are asynchronous to the internal clock and pass through a
2-FF synchroniser; serial_clock edges are detected in the internal domain,
so the internal clock must run at least 4x faster than serial_clock.

Malformed transactions (chip_select raised after the wrong number of bits,
or lowered again before the outcome bit) are dropped: `input_complete`
stays low, `address`/`outcome` keep the previously committed sample, and
`discard` pulses for one cycle.

Ports
-----
chip_select    : Signal(1), in   — active low (idle high)
serial_clock   : Signal(1), in
serial_data    : Signal(1), in
address        : Signal(addr_bits), out — committed address
outcome        : Signal(),  out  — committed outcome
input_complete : Signal(),  out  — pulsed for one cycle per good transaction
discard        : Signal(),  out  — pulsed for one cycle per dropped transaction
"""

from amaranth import *


class SerialReceiver(Elaboratable):
    """
    Chip-select framed, MSB-first shift receiver.

    FSM: IDLE -> SHIFT -> OUTCOME -> COMPLETE -> IDLE
    """

    def __init__(self, addr_bits: int = 16):
        self.addr_bits = addr_bits

        self.chip_select  = Signal(init=1)   # idle high
        self.serial_clock = Signal()
        self.serial_data  = Signal()

        self.address        = Signal(addr_bits)
        self.outcome        = Signal()
        self.input_complete = Signal()
        self.discard        = Signal()

    def elaborate(self, platform):
        m = Module()

        addr_bits = self.addr_bits

        # Synchronise the async inputs into the clock domain (2-FF sync)
        cs_sync0   = Signal(init=1)
        cs_sync1   = Signal(init=1)
        sclk_sync0 = Signal()
        sclk_sync1 = Signal()
        sclk_prev  = Signal()
        sdat_sync0 = Signal()
        sdat_sync1 = Signal()
        m.d.sync += [
            cs_sync0.eq(self.chip_select),
            cs_sync1.eq(cs_sync0),
            sclk_sync0.eq(self.serial_clock),
            sclk_sync1.eq(sclk_sync0),
            sclk_prev.eq(sclk_sync1),
            sdat_sync0.eq(self.serial_data),
            sdat_sync1.eq(sdat_sync0),
        ]

        selected  = ~cs_sync1
        sclk_rise = sclk_sync1 & ~sclk_prev

        shift_reg = Signal(addr_bits)
        # Saturates at addr_bits + 1 so over-length transfers stay detectable
        bit_count = Signal(range(addr_bits + 2))

        with m.FSM():
            with m.State("IDLE"):
                with m.If(selected):
                    m.d.sync += bit_count.eq(0)
                    m.next = "SHIFT"

            with m.State("SHIFT"):
                with m.If(~selected):
                    with m.If(bit_count == addr_bits):
                        m.next = "OUTCOME"
                    with m.Else():
                        m.d.comb += self.discard.eq(1)
                        m.next = "IDLE"
                with m.Elif(sclk_rise):
                    # MSB-first: new bit enters at the LSB
                    m.d.sync += shift_reg.eq(Cat(sdat_sync1, shift_reg[:-1]))
                    with m.If(bit_count <= addr_bits):
                        m.d.sync += bit_count.eq(bit_count + 1)

            with m.State("OUTCOME"):
                with m.If(selected):
                    # chip_select reasserted before the outcome bit
                    m.d.comb += self.discard.eq(1)
                    m.next = "IDLE"
                with m.Elif(sclk_rise):
                    m.d.sync += [
                        self.address.eq(shift_reg),
                        self.outcome.eq(sdat_sync1),
                    ]
                    m.next = "COMPLETE"

            with m.State("COMPLETE"):
                m.d.comb += self.input_complete.eq(1)
                m.next = "IDLE"

        return m
