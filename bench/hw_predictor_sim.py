"""
Hardware predictor simulation bridge — replays a branch trace through
PerceptronPredictor in an Amaranth testbench.

Each branch is delivered over the selected host link (parallel strobe or
the serial chip-select protocol), the testbench waits for training to
complete, then reads the trained perceptron back through the host port so
the result can be compared field-for-field with the reference model.
"""

import sys
import os
from dataclasses import dataclass, field

# Add hardware source to path
_hw_dir = os.path.join(os.path.dirname(__file__), "..", "src", "hardware")
if _hw_dir not in sys.path:
    sys.path.insert(0, _hw_dir)

from amaranth import *
from amaranth.sim import Simulator

from modules.branch_predictor import PerceptronPredictor
from modules.config import PredictorConfig

from .reference_model import BranchRecord

# Internal clock cycles per serial-clock half period (serial clock = clk / 4)
SERIAL_HALF_PERIOD = 2
MAX_WAIT_CYCLES = 5000


# ── Cycle counters ────────────────────────────────────────────────────────

@dataclass
class CycleCounters:
    total_cycles: int = 0        # total sync clock ticks
    clear_cycles: int = 0        # reset-time weight clear sweep
    input_cycles: int = 0        # ticks spent driving the host link
    engine_cycles: int = 0       # ticks from end of transfer to training_complete
    readback_cycles: int = 0     # ticks reading weights through the host port
    samples: int = 0
    per_sample_cycles: list = field(default_factory=list)


# ── Hardware predictor simulator ──────────────────────────────────────────

class HWPredictorSimulator:
    """Run a branch trace through the predictor gateware in simulation."""

    def __init__(self, config=None, interface="strobe",
                 serial_half_period=SERIAL_HALF_PERIOD, verbose=False):
        self.config = config or PredictorConfig()
        self.interface = interface
        self.serial_half_period = serial_half_period
        self.verbose = verbose
        self.counters = CycleCounters()
        self.records = []

    def run(self, branches, vcd_path=None):
        """Simulate every (address, taken) pair. Returns (records, counters)."""
        dut = PerceptronPredictor(config=self.config, interface=self.interface)
        sim = Simulator(dut)
        sim.add_clock(1e-7)  # 10 MHz

        async def testbench(ctx):
            await self._run_trace(ctx, dut, branches)

        sim.add_testbench(testbench)
        if vcd_path:
            with sim.write_vcd(vcd_path):
                sim.run()
        else:
            sim.run()

        return self.records, self.counters

    # ── Clocking helpers ──────────────────────────────────────────────────

    async def _tick(self, ctx, n=1):
        for _ in range(n):
            await ctx.tick()
        self.counters.total_cycles += n
        return n

    async def _wait_for(self, ctx, signal, value=1, what="signal"):
        """Tick until `signal == value`. Returns cycles waited."""
        cycles = 0
        while ctx.get(signal) != value:
            if cycles >= MAX_WAIT_CYCLES:
                raise RuntimeError(
                    f"Timed out waiting for {what} after {MAX_WAIT_CYCLES} cycles")
            cycles += await self._tick(ctx)
        return cycles

    # ── Host link drivers ─────────────────────────────────────────────────

    async def _send_strobe(self, ctx, dut, address, taken):
        src = dut.source
        ctx.set(src.address_in, address)
        ctx.set(src.outcome_in, taken)
        ctx.set(src.sample_valid, 1)
        cycles = await self._tick(ctx)
        ctx.set(src.sample_valid, 0)
        return cycles

    async def _send_serial(self, ctx, dut, address, taken):
        src = dut.source
        half = self.serial_half_period
        addr_bits = self.config.addr_bits
        cycles = 0

        ctx.set(src.chip_select, 0)
        for i in range(addr_bits):
            ctx.set(src.serial_data, (address >> (addr_bits - 1 - i)) & 1)
            cycles += await self._tick(ctx, half)
            ctx.set(src.serial_clock, 1)
            cycles += await self._tick(ctx, half)
            ctx.set(src.serial_clock, 0)

        ctx.set(src.chip_select, 1)
        ctx.set(src.serial_data, taken)
        cycles += await self._tick(ctx, half)
        ctx.set(src.serial_clock, 1)
        cycles += await self._tick(ctx, half)
        ctx.set(src.serial_clock, 0)
        return cycles

    # ── Host port readback ────────────────────────────────────────────────

    async def _read_weights(self, ctx, dut, base):
        weights = []
        for i in range(self.config.words_per_perceptron):
            ctx.set(dut.host_addr, base + i)
            ctx.set(dut.host_rd_en, 1)
            await self._tick(ctx)
            ctx.set(dut.host_rd_en, 0)
            await self._tick(ctx, self.config.read_latency - 1)
            weights.append(ctx.get(dut.host_rd_data))
        return weights

    # ── Trace replay ──────────────────────────────────────────────────────

    async def _run_trace(self, ctx, dut, branches):
        c = self.config
        counters = self.counters

        counters.clear_cycles = await self._wait_for(
            ctx, dut.busy, 0, what="weight clear")

        send = self._send_serial if self.interface == "serial" else self._send_strobe

        for address, taken in branches:
            address &= c.address_mask
            start = counters.total_cycles

            counters.input_cycles += await send(ctx, dut, address, int(taken))
            counters.engine_cycles += await self._wait_for(
                ctx, dut.training_complete, what="training_complete")

            # Results are held by the engine until the next sample
            index = ctx.get(dut.perceptron_index)
            base = ctx.get(dut.base_address)
            y = ctx.get(dut.sum)
            prediction = bool(ctx.get(dut.prediction))
            await self._tick(ctx)   # DONE → IDLE

            before = counters.total_cycles
            weights = await self._read_weights(ctx, dut, base)
            counters.readback_cycles += counters.total_cycles - before

            record = BranchRecord(
                address=address,
                hash_index=index,
                start_addr=base,
                taken=bool(taken),
                prediction=prediction,
                y=y,
                weights=weights,
            )
            self.records.append(record)
            counters.samples += 1
            counters.per_sample_cycles.append(counters.total_cycles - start)

            if self.verbose:
                print(f"  [hw] {address:#06x} idx={index} y={y} "
                      f"pred={int(prediction)} taken={int(taken)}")
